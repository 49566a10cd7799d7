"""Domain models for relay events, wallet links and bridge results."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Direction(str, Enum):
    MINT = "mint"
    BURN = "burn"


class RelayState(str, Enum):
    PENDING = "pending"
    RESOLVING = "resolving"
    DISPATCHING = "dispatching"
    COMMITTED = "committed"
    REJECTED = "rejected"
    DROPPED = "dropped"

    @property
    def is_terminal(self) -> bool:
        return self in (RelayState.COMMITTED, RelayState.REJECTED, RelayState.DROPPED)


class BridgeOutcome(str, Enum):
    ACCEPTED = "accepted"
    REJECTED_BY_REMOTE = "rejected_by_remote"
    TRANSIENT_FAILURE = "transient_failure"
    PERMANENT_FAILURE = "permanent_failure"


@dataclass(frozen=True)
class WalletLink:
    player_id: str
    address: str
    linked_at: datetime


@dataclass(frozen=True)
class ItemTokenEntry:
    item_id: str
    token_id: int


@dataclass(frozen=True)
class RelayEvent:
    player_id: str
    item_id: str
    amount: int
    direction: Direction
    event_id: str


@dataclass(frozen=True)
class BridgeResult:
    outcome: BridgeOutcome
    reason: str | None = None
    status_code: int | None = None

    @property
    def accepted(self) -> bool:
        return self.outcome is BridgeOutcome.ACCEPTED

    @property
    def retryable(self) -> bool:
        return self.outcome is BridgeOutcome.TRANSIENT_FAILURE


@dataclass(frozen=True)
class RelayOutcome:
    event_id: str
    state: RelayState
    reason: str | None = None
    attempts: int = 0
    duplicate: bool = False


@dataclass(frozen=True)
class InventoryEntry:
    token_id: int
    amount: int
