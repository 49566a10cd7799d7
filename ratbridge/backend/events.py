"""Game engine callbacks: the only surface the host plugin needs to call."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable

from ratbridge.backend.identity import derive_event_id
from ratbridge.backend.models import Direction, RelayEvent
from ratbridge.backend.relay import EventRelay, RelayTicket
from ratbridge.backend.store import WalletStore

logger = logging.getLogger(__name__)

JOIN_REMINDER = "Link a wallet with /linkwallet <address> to sync your items to the blockchain."


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class GameEventSink:
    def __init__(
        self,
        relay: EventRelay,
        wallets: WalletStore,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._relay = relay
        self._wallets = wallets
        self._clock = clock

    def on_item_pickup(
        self,
        player_id: str,
        item_id: str,
        amount: int,
        *,
        event_id: str | None = None,
        occurred_at: datetime | None = None,
        sequence: int = 0,
    ) -> RelayTicket:
        return self._enqueue(Direction.MINT, player_id, item_id, amount, event_id, occurred_at, sequence)

    def on_item_consume(
        self,
        player_id: str,
        item_id: str,
        amount: int,
        *,
        event_id: str | None = None,
        occurred_at: datetime | None = None,
        sequence: int = 0,
    ) -> RelayTicket:
        return self._enqueue(Direction.BURN, player_id, item_id, amount, event_id, occurred_at, sequence)

    def on_player_join(self, player_id: str) -> str | None:
        """Return an onboarding reminder for players without a linked wallet."""
        if self._wallets.lookup(player_id) is None:
            return JOIN_REMINDER
        return None

    def _enqueue(
        self,
        direction: Direction,
        player_id: str,
        item_id: str,
        amount: int,
        event_id: str | None,
        occurred_at: datetime | None,
        sequence: int,
    ) -> RelayTicket:
        if amount <= 0:
            raise ValueError(f"amount must be positive, got {amount}")
        if event_id is None:
            if occurred_at is None:
                # Without an engine timestamp a redelivered event gets a new id.
                occurred_at = self._clock()
                logger.debug(f"No event id or timestamp for {direction.value} of {item_id}; using receive time")
            event_id = derive_event_id(player_id, item_id, amount, direction, occurred_at, sequence)
        event = RelayEvent(
            player_id=player_id,
            item_id=item_id,
            amount=amount,
            direction=direction,
            event_id=event_id,
        )
        return self._relay.submit(event)
