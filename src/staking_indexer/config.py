"""Configuration management service with Pydantic Settings.

This module provides centralized configuration management for the staking
indexer, loading and validating environment variables at startup.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_ENV_FILE = ".env"
_ENV_FILE_ENCODING = "utf-8"

MAINNET_CHAIN_ID = 1


class DatabaseSettings(BaseSettings):
    """Database connection settings."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    url: str = Field(
        alias="DATABASE_URL",
        description="PostgreSQL (or SQLite for local runs) connection string",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate database URL format."""
        if not v.startswith(("postgresql://", "postgresql+asyncpg://", "sqlite+aiosqlite://")):
            raise ValueError("DATABASE_URL must be a PostgreSQL or sqlite+aiosqlite connection string")
        return v


class RedisSettings(BaseSettings):
    """Redis connection settings (optional RPC lookup cache)."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    url: str | None = Field(
        default=None,
        alias="REDIS_URL",
        description="Redis connection string; caching is disabled when unset",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str | None) -> str | None:
        """Validate Redis URL format."""
        if v is None:
            return v
        if not v.startswith(("redis://", "rediss://")):
            raise ValueError("REDIS_URL must start with redis:// or rediss://")
        return v


class ChainSettings(BaseSettings):
    """Per-chain RPC endpoint pools."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    rpc_pools: dict[int, list[str]] = Field(
        default_factory=dict,
        alias="CHAIN_RPC_POOLS",
        description='JSON object mapping chain id to RPC URLs, e.g. {"1": ["https://..."]}',
    )
    eth_rpc_mainnet: str | None = Field(
        default=None,
        alias="ETH_RPC_MAINNET",
        description="Single Ethereum mainnet endpoint, merged into the chain 1 pool",
    )

    @field_validator("rpc_pools")
    @classmethod
    def validate_rpc_pools(cls, v: dict[int, list[str]]) -> dict[int, list[str]]:
        """Validate RPC URL format for every pool entry."""
        for chain_id, urls in v.items():
            for url in urls:
                if not url.startswith(("http://", "https://")):
                    raise ValueError(f"RPC URL for chain {chain_id} must be an HTTP(S) endpoint")
        return v

    @field_validator("eth_rpc_mainnet")
    @classmethod
    def validate_mainnet_url(cls, v: str | None) -> str | None:
        if v is None:
            return v
        if not v.startswith(("http://", "https://")):
            raise ValueError("ETH_RPC_MAINNET must be an HTTP(S) endpoint")
        return v

    def endpoint_pools(self) -> dict[int, list[str]]:
        """Get the effective endpoint pools, including the legacy mainnet URL."""
        pools = {chain_id: list(urls) for chain_id, urls in self.rpc_pools.items()}
        if self.eth_rpc_mainnet:
            mainnet = pools.setdefault(MAINNET_CHAIN_ID, [])
            if self.eth_rpc_mainnet not in mainnet:
                mainnet.append(self.eth_rpc_mainnet)
        return pools


class RpcSettings(BaseSettings):
    """RPC client behaviour shared by all chains."""

    model_config = SettingsConfigDict(env_prefix="RPC_", extra="ignore")

    max_retries: int = Field(
        default=3,
        alias="RPC_MAX_RETRIES",
        ge=1,
        le=20,
        description="Attempts per RPC call before giving up",
    )
    retry_delay_seconds: float = Field(
        default=1.0,
        alias="RPC_RETRY_DELAY_SECONDS",
        ge=0.0,
        le=60.0,
        description="Initial backoff delay between attempts",
    )
    max_requests_per_second: float = Field(
        default=25.0,
        alias="RPC_MAX_REQUESTS_PER_SECOND",
        gt=0.0,
        le=10_000.0,
        description="Rate limit per endpoint",
    )
    cache_ttl_seconds: int = Field(
        default=3600,
        alias="RPC_CACHE_TTL_SECONDS",
        ge=1,
        description="Redis TTL for cached transaction senders and block timestamps",
    )


class ScanSettings(BaseSettings):
    """Log scanning and ingestion settings."""

    model_config = SettingsConfigDict(env_prefix="SCAN_", extra="ignore")

    block_range: int = Field(
        default=100,
        alias="SCAN_BLOCK_RANGE",
        ge=1,
        le=1_000_000,
        description="Maximum block span scanned per chain per cycle",
    )
    confirmation_lag: int = Field(
        default=6,
        alias="SCAN_CONFIRMATION_LAG",
        ge=0,
        le=10_000,
        description="Blocks subtracted from chain head before scanning",
    )
    interval_seconds: float = Field(
        default=10.0,
        alias="SCAN_INTERVAL_SECONDS",
        gt=0.0,
        le=86_400.0,
        description="Delay between the end of one scan cycle and the start of the next",
    )
    insert_batch_size: int = Field(
        default=1000,
        alias="SCAN_INSERT_BATCH_SIZE",
        ge=1,
        le=100_000,
        description="Rows per INSERT statement when persisting scanned events",
    )


class ParseSettings(BaseSettings):
    """Event parsing settings."""

    model_config = SettingsConfigDict(env_prefix="PARSE_", extra="ignore")

    interval_seconds: float = Field(
        default=30.0,
        alias="PARSE_INTERVAL_SECONDS",
        gt=0.0,
        le=86_400.0,
        description="Delay between the end of one parse cycle and the start of the next",
    )
    page_size: int = Field(
        default=10,
        alias="PARSE_PAGE_SIZE",
        ge=1,
        le=10_000,
        description="Unprocessed events handled per parse cycle",
    )


class Settings(BaseSettings):
    """Main application settings.

    Loads configuration from environment variables with support for
    .env files via python-dotenv.

    Example:
        ```python
        from staking_indexer.config import get_settings

        settings = get_settings()
        print(settings.database.url)
        print(settings.scan.block_range)
        ```
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding=_ENV_FILE_ENCODING,
        extra="ignore",
    )

    # NOTE: Each nested BaseSettings must be given the same env_file, otherwise it
    # will only read from the process environment (and ignore `.env`).
    database: DatabaseSettings = Field(
        default_factory=lambda: DatabaseSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    redis: RedisSettings = Field(
        default_factory=lambda: RedisSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    chains: ChainSettings = Field(
        default_factory=lambda: ChainSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    rpc: RpcSettings = Field(
        default_factory=lambda: RpcSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    scan: ScanSettings = Field(
        default_factory=lambda: ScanSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    parse: ParseSettings = Field(
        default_factory=lambda: ParseSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level",
    )
    log_dir: str | None = Field(
        default=None,
        alias="LOG_DIR",
        description="Directory for daily log files; console only when unset",
    )

    def get_logging_level(self) -> int:
        """Get the numeric logging level."""
        level: int = getattr(logging, self.log_level)
        return level

    def redacted_summary(self) -> dict[str, str | dict[str, str]]:
        """Get a summary of settings with secrets redacted.

        Returns:
            Dictionary of settings with sensitive values masked.
        """
        pools = self.chains.endpoint_pools()
        return {
            "database_url": self._redact_url(self.database.url),
            "redis_url": self._redact_url(self.redis.url) if self.redis.url else "(not set)",
            "chains": {
                str(chain_id): f"{len(urls)} endpoint(s)" for chain_id, urls in sorted(pools.items())
            },
            "scan": {
                "block_range": str(self.scan.block_range),
                "confirmation_lag": str(self.scan.confirmation_lag),
                "interval_seconds": str(self.scan.interval_seconds),
                "insert_batch_size": str(self.scan.insert_batch_size),
            },
            "parse": {
                "interval_seconds": str(self.parse.interval_seconds),
                "page_size": str(self.parse.page_size),
            },
            "log_level": self.log_level,
            "log_dir": self.log_dir or "(not set)",
        }

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact password from URL if present."""
        if "@" in url and "://" in url:
            protocol_end = url.index("://") + 3
            at_pos = url.index("@")
            creds_part = url[protocol_end:at_pos]
            if ":" in creds_part:
                username = creds_part.split(":")[0]
                return f"{url[:protocol_end]}{username}:***@{url[at_pos + 1 :]}"
        return url


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the application settings singleton.

    Uses LRU cache to ensure settings are loaded only once and
    reused across the application.

    Returns:
        The Settings instance.

    Raises:
        ValidationError: If required environment variables are missing
            or have invalid values.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Useful for testing when you need to reload settings with
    different environment variables.
    """
    get_settings.cache_clear()
