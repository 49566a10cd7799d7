"""Wallet address checks and event id derivation."""

from __future__ import annotations

import hashlib
import re
from datetime import datetime

from ratbridge.backend.errors import InvalidAddress
from ratbridge.backend.models import Direction


ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")


def is_valid_address(address: str) -> bool:
    """Return True for EVM style addresses (0x followed by 40 hex digits)."""
    return bool(ADDRESS_PATTERN.match(address.strip()))


def normalize_address(address: str) -> str:
    candidate = address.strip()
    if not ADDRESS_PATTERN.match(candidate):
        raise InvalidAddress(address)
    return candidate


def derive_event_id(
    player_id: str,
    item_id: str,
    amount: int,
    direction: Direction,
    occurred_at: datetime,
    sequence: int = 0,
) -> str:
    """Create a deterministic event id via sha256 over the event content.

    Redelivery of the same physical event (same timestamp and sequence) yields
    the same id, so the ledger can recognise it.
    """
    payload = "|".join(
        [player_id, item_id, str(amount), direction.value, occurred_at.isoformat(), str(sequence)]
    ).encode("utf-8")
    return hashlib.sha256(payload).hexdigest()
