"""Tests for the EVM JSON-RPC client."""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from hexbytes import HexBytes
from web3.exceptions import BlockNotFound, TransactionNotFound, Web3Exception

from staking_indexer.chain.client import (
    UNKNOWN_SENDER,
    ChainClient,
    RateLimiter,
    TransientNetworkError,
    signature_hash,
    to_hex,
)

TX_HASH = "0x" + "ab" * 32
SENDER = "0x1234567890AbcdEF1234567890aBcdef12345678"
TRANSFER_TOPIC = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"


class FakeEth:
    """Stand-in for ``AsyncEth`` that fails a configurable number of times."""

    def __init__(self, *, failures: int = 0, error: Exception | None = None) -> None:
        self.failures = failures
        self.error = error or Web3Exception("upstream unavailable")
        self.calls = 0
        self.head = 1234
        self.logs: list[dict[str, Any]] = []
        self.transactions: dict[str, dict[str, Any]] = {}
        self.blocks: dict[int, dict[str, Any]] = {}

    async def _answer(self, value: Any) -> Any:
        self.calls += 1
        if self.failures > 0:
            self.failures -= 1
            raise self.error
        return value

    @property
    def block_number(self):
        return self._answer(self.head)

    def get_logs(self, filter_params: dict[str, Any]):
        self.last_filter = filter_params
        return self._answer(self.logs)

    async def get_transaction(self, tx_hash: str) -> dict[str, Any]:
        await self._answer(None)
        if tx_hash not in self.transactions:
            raise TransactionNotFound(f"Transaction with hash {tx_hash} not found")
        return self.transactions[tx_hash]

    async def get_block(self, block_number: int) -> dict[str, Any]:
        await self._answer(None)
        if block_number not in self.blocks:
            raise BlockNotFound(f"Block {block_number} not found")
        return self.blocks[block_number]


def _client(eth: FakeEth, *, redis: Any = None, max_retries: int = 3) -> ChainClient:
    web3 = MagicMock()
    web3.eth = eth
    return ChainClient(
        "https://rpc.example",
        chain_id=1,
        redis=redis,
        max_requests_per_second=10_000,
        max_retries=max_retries,
        retry_delay_seconds=0,
        web3=web3,
    )


class TestHexHelpers:
    def test_to_hex(self) -> None:
        assert to_hex(b"\x01\xab") == "0x01ab"
        assert to_hex(HexBytes("0xABCD")) == "0xabcd"
        assert to_hex("ABCD") == "0xabcd"
        assert to_hex("0xAbCd") == "0xabcd"

    def test_signature_hash(self) -> None:
        assert signature_hash("Transfer(address,address,uint256)") == TRANSFER_TOPIC
        assert ChainClient.signature_hash("Transfer(address,address,uint256)") == TRANSFER_TOPIC

    def test_signature_hash_differs_per_event(self) -> None:
        assert signature_hash("Staked(address,uint256)") != signature_hash("UnStaked(address,uint256)")


class TestRetries:
    @pytest.mark.asyncio
    async def test_block_number(self) -> None:
        eth = FakeEth()
        assert await _client(eth).get_block_number() == 1234

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self) -> None:
        eth = FakeEth(failures=2)
        assert await _client(eth).get_block_number() == 1234
        assert eth.calls == 3

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self) -> None:
        eth = FakeEth(failures=5, error=OSError("connection reset"))
        with pytest.raises(TransientNetworkError):
            await _client(eth, max_retries=2).get_block_number()
        assert eth.calls == 2

    @pytest.mark.asyncio
    async def test_health_check(self) -> None:
        assert await _client(FakeEth()).health_check() is True
        assert await _client(FakeEth(failures=5), max_retries=1).health_check() is False

    @pytest.mark.asyncio
    async def test_get_logs_passes_filter(self) -> None:
        eth = FakeEth()
        eth.logs = [{"blockNumber": 10, "topics": [HexBytes(TRANSFER_TOPIC)]}]
        params = {"address": ["0x" + "1" * 40], "fromBlock": 1, "toBlock": 2, "topics": [[TRANSFER_TOPIC]]}

        logs = await _client(eth).get_logs(params)

        assert eth.last_filter == params
        assert logs == [{"blockNumber": 10, "topics": [HexBytes(TRANSFER_TOPIC)]}]


class TestLookups:
    @pytest.mark.asyncio
    async def test_transaction_sender(self) -> None:
        eth = FakeEth()
        eth.transactions[TX_HASH] = {"from": SENDER}
        assert await _client(eth).get_transaction_sender(TX_HASH) == SENDER

    @pytest.mark.asyncio
    async def test_missing_transaction_is_not_retried(self) -> None:
        eth = FakeEth()
        assert await _client(eth).get_transaction_sender(TX_HASH) == UNKNOWN_SENDER
        assert eth.calls == 1

    @pytest.mark.asyncio
    async def test_block_timestamp(self) -> None:
        eth = FakeEth()
        eth.blocks[150] = {"timestamp": 1_700_000_000}
        client = _client(eth)
        assert await client.get_block_timestamp(150) == 1_700_000_000
        assert await client.get_block_timestamp(151) == 0

    @pytest.mark.asyncio
    async def test_negative_block_rejected(self) -> None:
        with pytest.raises(ValueError):
            await _client(FakeEth()).get_block_timestamp(-1)

    @pytest.mark.asyncio
    async def test_lookups_use_cache(self) -> None:
        redis = MagicMock()
        redis.get = AsyncMock(side_effect=[None, SENDER.encode(), None, b"1700000000"])
        redis.set = AsyncMock()
        eth = FakeEth()
        eth.transactions[TX_HASH] = {"from": SENDER}
        eth.blocks[150] = {"timestamp": 1_700_000_000}
        client = _client(eth, redis=redis)

        assert await client.get_transaction_sender(TX_HASH) == SENDER
        assert await client.get_transaction_sender(TX_HASH) == SENDER
        assert await client.get_block_timestamp(150) == 1_700_000_000
        assert await client.get_block_timestamp(150) == 1_700_000_000

        # One RPC call per lookup; the second of each came from the cache
        assert eth.calls == 2
        redis.set.assert_any_await(f"chain:1:sender:{TX_HASH}", SENDER, ex=3600)
        redis.set.assert_any_await("chain:1:block_ts:150", "1700000000", ex=3600)

    @pytest.mark.asyncio
    async def test_cache_failure_falls_back_to_rpc(self) -> None:
        redis = MagicMock()
        redis.get = AsyncMock(side_effect=ConnectionError("redis down"))
        redis.set = AsyncMock(side_effect=ConnectionError("redis down"))
        eth = FakeEth()
        eth.blocks[150] = {"timestamp": 42}

        assert await _client(eth, redis=redis).get_block_timestamp(150) == 42


class TestRateLimiter:
    @pytest.mark.asyncio
    async def test_acquire_within_budget(self) -> None:
        limiter = RateLimiter.create(max_requests_per_second=5)
        for _ in range(5):
            await limiter.acquire()
        assert limiter.tokens < 1
