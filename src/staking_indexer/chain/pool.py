"""Per-chain RPC endpoint pools.

Each scan picks one endpoint uniformly at random from the chain's pool.
There is no health tracking: a failing endpoint only costs the chain one
cycle, and the next cycle draws again.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Callable, Mapping, Sequence

from redis.asyncio import Redis

from staking_indexer.chain.client import ChainClient

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str, int], ChainClient]


class RpcPool:
    """Lazily built ``ChainClient`` instances keyed by endpoint URL.

    Example:
        ```python
        pool = RpcPool({1: ["https://a", "https://b"], 56: ["https://c"]})
        client = pool.pick(1)
        await pool.aclose()
        ```
    """

    def __init__(
        self,
        endpoints: Mapping[int, Sequence[str]],
        *,
        redis: Redis | None = None,
        client_factory: ClientFactory | None = None,
        rng: random.Random | None = None,
        **client_options: object,
    ) -> None:
        """Initialize the pool.

        Args:
            endpoints: Chain id to RPC URLs.
            redis: Optional Redis client shared by every ``ChainClient``.
            client_factory: Builds a client for ``(url, chain_id)``; defaults
                to ``ChainClient`` with ``client_options``.
            rng: Random source for endpoint selection.
            **client_options: Extra keyword arguments for ``ChainClient``.
        """
        self._endpoints = {chain_id: list(urls) for chain_id, urls in endpoints.items() if urls}
        self._redis = redis
        self._client_factory = client_factory or self._default_factory
        self._client_options = client_options
        self._rng = rng or random.Random()
        self._clients: dict[tuple[int, str], ChainClient] = {}

    def _default_factory(self, url: str, chain_id: int) -> ChainClient:
        return ChainClient(url, chain_id=chain_id, redis=self._redis, **self._client_options)  # type: ignore[arg-type]

    @property
    def chain_ids(self) -> list[int]:
        return sorted(self._endpoints)

    def endpoints(self, chain_id: int) -> list[str]:
        return list(self._endpoints.get(chain_id, []))

    def pick(self, chain_id: int) -> ChainClient | None:
        """Pick a client for a random endpoint of the chain, or None if unconfigured."""
        urls = self._endpoints.get(chain_id)
        if not urls:
            return None
        url = self._rng.choice(urls)
        key = (chain_id, url)
        client = self._clients.get(key)
        if client is None:
            client = self._client_factory(url, chain_id)
            self._clients[key] = client
        return client

    async def aclose(self) -> None:
        """Close every client created so far."""
        clients = list(self._clients.values())
        self._clients.clear()
        for client in clients:
            await client.aclose()
        logger.debug("Closed %d RPC client(s)", len(clients))
