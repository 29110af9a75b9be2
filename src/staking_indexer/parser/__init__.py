"""Parsing layer - event payload decoding and staking ledger updates."""

from staking_indexer.parser.decoder import DecodePayloadError, StakePayload, decode_stake_payload
from staking_indexer.parser.ledger import STAKED, UNSTAKED, LedgerUpdater
from staking_indexer.parser.service import EventParser, ParseStats

__all__ = [
    "STAKED",
    "UNSTAKED",
    "DecodePayloadError",
    "EventParser",
    "LedgerUpdater",
    "ParseStats",
    "StakePayload",
    "decode_stake_payload",
]
