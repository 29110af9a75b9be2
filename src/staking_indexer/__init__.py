"""Multi-chain staking event indexer.

Scans EVM chains for staking contract events, persists them once, and
reconciles them into a per-wallet staking ledger.
"""

__version__ = "0.1.0"
