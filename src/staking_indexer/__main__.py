"""Run the indexer: ``python -m staking_indexer [--init-schema]``."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal

from staking_indexer.config import get_settings
from staking_indexer.logging_config import configure_logging
from staking_indexer.pipeline import Pipeline

logger = logging.getLogger("staking_indexer")


async def _run(pipeline: Pipeline) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        # Not available on every platform (e.g. Windows).
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, pipeline.request_stop)
    await pipeline.run()


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(prog="staking_indexer", description=__doc__)
    parser.add_argument(
        "--init-schema",
        action="store_true",
        help="create missing tables before starting (local runs)",
    )
    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(settings)
    logger.info("Settings: %s", settings.redacted_summary())

    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(_run(Pipeline(settings, init_schema=args.init_schema)))


if __name__ == "__main__":
    main()
