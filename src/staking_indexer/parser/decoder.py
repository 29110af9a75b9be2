"""Decoding of staking event payloads.

Staked/UnStaked events carry two ABI words in their data field:
``(address wallet, uint256 amount)``. The payload is therefore ``0x``
followed by exactly 128 hex digits.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

PAYLOAD_LENGTH = 130
_WALLET_SLICE = slice(26, 66)
_AMOUNT_SLICE = slice(66, 130)
_HEX_RE = re.compile(r"[0-9a-fA-F]+")


class DecodePayloadError(ValueError):
    """Raised when an event payload does not have the expected layout."""


@dataclass(frozen=True)
class StakePayload:
    wallet: str
    amount: int


def decode_stake_payload(data: str) -> StakePayload:
    """Extract ``(wallet, amount)`` from a hex-encoded event payload.

    The wallet is the low 20 bytes of the first word; the amount is the
    second word as an unsigned integer.

    Raises:
        DecodePayloadError: If the payload is not 130 characters of hex.
    """
    if len(data) != PAYLOAD_LENGTH:
        raise DecodePayloadError(f"Invalid data length: {len(data)} (expected {PAYLOAD_LENGTH})")

    wallet_hex = data[_WALLET_SLICE]
    amount_hex = data[_AMOUNT_SLICE]
    if not (_HEX_RE.fullmatch(wallet_hex) and _HEX_RE.fullmatch(amount_hex)):
        raise DecodePayloadError("Payload is not hex encoded")

    return StakePayload(wallet="0x" + wallet_hex.lower(), amount=int(amount_hex, 16))
