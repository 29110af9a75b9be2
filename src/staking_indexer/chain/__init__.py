"""Chain access layer - EVM JSON-RPC clients and endpoint pools."""

from staking_indexer.chain.client import (
    ChainClient,
    ChainClientError,
    TransientNetworkError,
    signature_hash,
)
from staking_indexer.chain.pool import RpcPool

__all__ = [
    "ChainClient",
    "ChainClientError",
    "RpcPool",
    "TransientNetworkError",
    "signature_hash",
]
