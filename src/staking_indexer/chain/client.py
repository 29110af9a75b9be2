"""EVM JSON-RPC client with rate limiting, retries and optional caching.

This module provides a per-endpoint client exposing the few calls the
indexer needs:
- Current block height
- Logs filtered by address, block range and topics
- Transaction sender and block timestamp lookups (cached in Redis when
  available, since both are immutable once confirmed)
- keccak256 event signature hashing
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from redis.asyncio import Redis
from web3 import AsyncWeb3, Web3
from web3.eth import AsyncEth
from web3.exceptions import BlockNotFound, TransactionNotFound, Web3Exception
from web3.middleware import ExtraDataToPOAMiddleware
from web3.providers import AsyncHTTPProvider

logger = logging.getLogger(__name__)

# Default configuration
DEFAULT_CACHE_TTL_SECONDS = 3600
DEFAULT_MAX_REQUESTS_PER_SECOND = 25
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY_SECONDS = 1.0

# Placeholder sender when a transaction cannot be resolved.
UNKNOWN_SENDER = "0x0"

T = TypeVar("T")


class ChainClientError(Exception):
    """Base exception for chain client errors."""


class TransientNetworkError(ChainClientError):
    """Raised when an RPC call still fails after all retries."""


def to_hex(value: Any) -> str:
    """Normalize HexBytes/bytes/str RPC values to a lower-case 0x-prefixed string."""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return "0x" + bytes(value).hex()
    text = str(value).lower()
    return text if text.startswith("0x") else "0x" + text


def signature_hash(signature: str) -> str:
    """keccak256 of an event signature such as ``Staked(address,uint256)``."""
    return Web3.to_hex(Web3.keccak(text=signature)).lower()


@dataclass
class RateLimiter:
    """Token bucket rate limiter."""

    max_tokens: float
    refill_rate: float  # tokens per second
    tokens: float
    last_refill: float

    @classmethod
    def create(cls, max_requests_per_second: float) -> "RateLimiter":
        """Create a rate limiter with specified max requests per second."""
        return cls(
            max_tokens=max_requests_per_second,
            refill_rate=max_requests_per_second,
            tokens=max_requests_per_second,
            last_refill=time.monotonic(),
        )

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self.last_refill
        self.tokens = min(self.max_tokens, self.tokens + elapsed * self.refill_rate)
        self.last_refill = now

    async def acquire(self, tokens: float = 1.0) -> None:
        """Acquire tokens, waiting if necessary."""
        while True:
            self._refill()
            if self.tokens >= tokens:
                self.tokens -= tokens
                return
            wait_time = (tokens - self.tokens) / self.refill_rate
            await asyncio.sleep(wait_time)


class ChainClient:
    """JSON-RPC client bound to a single endpoint of one chain.

    Example:
        ```python
        client = ChainClient("https://rpc.ankr.com/eth", chain_id=1)
        head = await client.get_block_number()
        logs = await client.get_logs({
            "address": [contract],
            "fromBlock": 100,
            "toBlock": 200,
            "topics": [[signature_hash("Staked(address,uint256)")]],
        })
        ```
    """

    def __init__(
        self,
        rpc_url: str,
        *,
        chain_id: int,
        redis: Redis | None = None,
        cache_ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS,
        max_requests_per_second: float = DEFAULT_MAX_REQUESTS_PER_SECOND,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay_seconds: float = DEFAULT_RETRY_DELAY_SECONDS,
        web3: AsyncWeb3 | None = None,
    ) -> None:
        """Initialize the chain client.

        Args:
            rpc_url: RPC endpoint URL.
            chain_id: Chain the endpoint serves (used for cache keys and logs).
            redis: Optional Redis client for caching immutable lookups.
            cache_ttl_seconds: Cache TTL in seconds.
            max_requests_per_second: Rate limit for RPC calls.
            max_retries: Maximum attempts per call.
            retry_delay_seconds: Initial delay between attempts.
            web3: Pre-built AsyncWeb3 instance (tests).
        """
        self.rpc_url = rpc_url
        self.chain_id = chain_id
        self._redis = redis
        self._cache_ttl = cache_ttl_seconds
        self._max_retries = max_retries
        self._retry_delay = retry_delay_seconds

        self._w3 = web3 or self._new_web3_client(rpc_url)
        self._rate_limiter = RateLimiter.create(max_requests_per_second)
        self._cache_prefix = f"chain:{chain_id}:"

    def _new_web3_client(self, rpc_url: str) -> AsyncWeb3:
        client = AsyncWeb3(AsyncHTTPProvider(rpc_url))
        # Several EVM chains (BSC, Polygon) carry PoA extra-data in headers.
        try:
            client.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
        except Exception as e:
            logger.warning("Failed to inject PoA middleware (rpc=%s): %s", rpc_url, e)
        return client

    signature_hash = staticmethod(signature_hash)

    async def _get_cached(self, key: str) -> str | None:
        if not self._redis:
            return None
        try:
            value = await self._redis.get(key)
            if isinstance(value, bytes):
                return value.decode()
            return str(value) if value is not None else None
        except Exception as e:
            logger.warning("Cache get failed: %s", e)
            return None

    async def _set_cached(self, key: str, value: str) -> None:
        if not self._redis:
            return
        try:
            await self._redis.set(key, value, ex=self._cache_ttl)
        except Exception as e:
            logger.warning("Cache set failed: %s", e)

    async def _execute_with_retry(
        self,
        label: str,
        call: Callable[[AsyncEth], Awaitable[T]],
    ) -> T:
        """Execute an RPC call with retry and exponential backoff.

        Raises:
            TransientNetworkError: If every attempt fails.
        """
        await self._rate_limiter.acquire()

        last_error: Exception | None = None
        delay = self._retry_delay
        for attempt in range(self._max_retries):
            try:
                return await call(self._w3.eth)
            except (TransactionNotFound, BlockNotFound):
                raise
            except (Web3Exception, OSError, TimeoutError) as e:
                last_error = e
                logger.warning(
                    "RPC %s failed on chain %d (attempt %d/%d): %s",
                    label,
                    self.chain_id,
                    attempt + 1,
                    self._max_retries,
                    e,
                )
                if attempt < self._max_retries - 1:
                    await asyncio.sleep(delay)
                    delay *= 2

        raise TransientNetworkError(
            f"RPC call {label} failed on chain {self.chain_id} after all retries: {last_error}"
        )

    async def get_block_number(self) -> int:
        """Get the current chain head height."""
        number = await self._execute_with_retry("block_number", lambda eth: eth.block_number)
        return int(number)

    async def get_logs(self, filter_params: dict[str, Any]) -> list[dict[str, Any]]:
        """Fetch logs via ``eth_getLogs``.

        ``topics`` follows JSON-RPC semantics: one entry per position, each an
        exact value, an OR-list, or ``None`` for a wildcard.
        """
        logs = await self._execute_with_retry("get_logs", lambda eth: eth.get_logs(filter_params))
        return [dict(log) for log in logs]

    async def get_transaction_sender(self, tx_hash: str) -> str:
        """Resolve the ``from`` address of a transaction."""
        cache_key = f"{self._cache_prefix}sender:{tx_hash.lower()}"
        cached = await self._get_cached(cache_key)
        if cached is not None:
            return cached

        try:
            tx = await self._execute_with_retry(
                "get_transaction", lambda eth: eth.get_transaction(tx_hash)
            )
        except TransactionNotFound:
            logger.warning("Transaction %s not found on chain %d", tx_hash, self.chain_id)
            return UNKNOWN_SENDER
        sender = str(tx.get("from") or UNKNOWN_SENDER) if tx else UNKNOWN_SENDER
        if sender != UNKNOWN_SENDER:
            await self._set_cached(cache_key, sender)
        return sender

    async def get_block_timestamp(self, block_number: int) -> int:
        """Resolve the unix timestamp of a block."""
        if block_number < 0:
            raise ValueError("block_number must be >= 0")

        cache_key = f"{self._cache_prefix}block_ts:{block_number}"
        cached = await self._get_cached(cache_key)
        if cached is not None:
            return int(cached)

        try:
            block = await self._execute_with_retry("get_block", lambda eth: eth.get_block(block_number))
        except BlockNotFound:
            logger.warning("Block %d not found on chain %d", block_number, self.chain_id)
            return 0
        timestamp = int(block.get("timestamp") or 0) if block else 0
        if timestamp:
            await self._set_cached(cache_key, str(timestamp))
        return timestamp

    async def health_check(self) -> bool:
        """Check if the client can reach its endpoint."""
        try:
            await self.get_block_number()
            return True
        except ChainClientError:
            return False

    async def aclose(self) -> None:
        """Close the async HTTP provider session."""
        disconnect = getattr(self._w3.provider, "disconnect", None)
        if not callable(disconnect):
            return
        try:
            result = disconnect()
            if asyncio.iscoroutine(result):
                await result
        except Exception as e:
            logger.warning("Failed to close RPC provider session (rpc=%s): %s", self.rpc_url, e)
