"""Persistence interfaces and implementations for wallet links and the event ledger."""

from __future__ import annotations

import json
import logging
import os
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

from ratbridge.backend.errors import ConfigError
from ratbridge.backend.identity import normalize_address
from ratbridge.backend.models import RelayEvent, WalletLink

logger = logging.getLogger(__name__)


class WalletStore(Protocol):
    def link(self, player_id: str, address: str) -> WalletLink:
        """Validate and durably store the address, replacing any prior link."""

    def lookup(self, player_id: str) -> str | None:
        """Return the linked address for the player, if any."""

    def get_link(self, player_id: str) -> WalletLink | None:
        """Return the full link record for the player, if any."""


class EventLedger(Protocol):
    def is_committed(self, event_id: str) -> bool:
        """Return True when the event was already accepted by the bridge."""

    def record_committed(self, event: RelayEvent) -> None:
        """Durably mark the event as processed; repeated calls are no-ops."""


class RelayStore(WalletStore, EventLedger, Protocol):
    pass


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _ledger_row(event: RelayEvent, committed_at: datetime) -> dict[str, Any]:
    return {
        "playerId": event.player_id,
        "itemId": event.item_id,
        "amount": event.amount,
        "direction": event.direction.value,
        "committedAt": committed_at.isoformat(),
    }


class InMemoryRelayStore:
    """Process-local store for tests and local development; nothing survives a restart."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._links: dict[str, WalletLink] = {}
        self._committed: dict[str, dict[str, Any]] = {}

    def link(self, player_id: str, address: str) -> WalletLink:
        wallet_link = WalletLink(player_id=player_id, address=normalize_address(address), linked_at=_utc_now())
        with self._lock:
            self._links[player_id] = wallet_link
        return wallet_link

    def lookup(self, player_id: str) -> str | None:
        wallet_link = self.get_link(player_id)
        return wallet_link.address if wallet_link is not None else None

    def get_link(self, player_id: str) -> WalletLink | None:
        with self._lock:
            return self._links.get(player_id)

    def is_committed(self, event_id: str) -> bool:
        with self._lock:
            return event_id in self._committed

    def record_committed(self, event: RelayEvent) -> None:
        with self._lock:
            self._committed.setdefault(event.event_id, _ledger_row(event, _utc_now()))


class JsonFileRelayStore:
    """Keeps the whole snapshot in memory and rewrites the file on every mutation."""

    def __init__(self, storage_path: str | Path) -> None:
        self._lock = threading.Lock()
        self._storage_path = Path(storage_path)
        self._links: dict[str, WalletLink] = {}
        self._committed: dict[str, dict[str, Any]] = {}
        self._load_from_disk()

    def _load_from_disk(self) -> None:
        if not self._storage_path.exists():
            return
        try:
            payload = json.loads(self._storage_path.read_text(encoding="utf-8"))
            links = {
                player_id: WalletLink(
                    player_id=player_id,
                    address=row["address"],
                    linked_at=datetime.fromisoformat(row["linkedAt"]),
                )
                for player_id, row in payload.get("wallets", {}).items()
            }
            committed = dict(payload.get("committed", {}))
        except OSError as exc:
            raise ConfigError(f"Cannot read relay store {self._storage_path}: {exc}") from exc
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            raise ConfigError(f"Cannot load relay store {self._storage_path}: {exc}") from exc
        self._links = links
        self._committed = committed
        logger.info(
            f"Loaded {len(self._links)} wallet links and {len(self._committed)} committed events "
            f"from {self._storage_path}"
        )

    def _snapshot_locked(self) -> dict[str, object]:
        return {
            "wallets": {
                player_id: {"address": wallet_link.address, "linkedAt": wallet_link.linked_at.isoformat()}
                for player_id, wallet_link in self._links.items()
            },
            "committed": self._committed,
        }

    def _persist_locked(self) -> None:
        self._storage_path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self._storage_path.with_suffix(f"{self._storage_path.suffix}.tmp")
        with temp_path.open("w", encoding="utf-8") as handle:
            json.dump(self._snapshot_locked(), handle, indent=2)
            handle.flush()
            os.fsync(handle.fileno())
        temp_path.replace(self._storage_path)

    def link(self, player_id: str, address: str) -> WalletLink:
        wallet_link = WalletLink(player_id=player_id, address=normalize_address(address), linked_at=_utc_now())
        with self._lock:
            previous = self._links.get(player_id)
            self._links[player_id] = wallet_link
            try:
                self._persist_locked()
            except OSError:
                if previous is None:
                    self._links.pop(player_id, None)
                else:
                    self._links[player_id] = previous
                raise
        return wallet_link

    def lookup(self, player_id: str) -> str | None:
        wallet_link = self.get_link(player_id)
        return wallet_link.address if wallet_link is not None else None

    def get_link(self, player_id: str) -> WalletLink | None:
        with self._lock:
            return self._links.get(player_id)

    def is_committed(self, event_id: str) -> bool:
        with self._lock:
            return event_id in self._committed

    def record_committed(self, event: RelayEvent) -> None:
        with self._lock:
            if event.event_id in self._committed:
                return
            self._committed[event.event_id] = _ledger_row(event, _utc_now())
            try:
                self._persist_locked()
            except OSError:
                self._committed.pop(event.event_id, None)
                raise


@dataclass
class PostgresRelayStore:
    database_url: str

    def _connect(self) -> Any:
        import psycopg

        return psycopg.connect(self.database_url)

    def link(self, player_id: str, address: str) -> WalletLink:
        wallet_link = WalletLink(player_id=player_id, address=normalize_address(address), linked_at=_utc_now())
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO wallet_links (player_id, address, linked_at)
                    VALUES (%s, %s, %s)
                    ON CONFLICT (player_id)
                    DO UPDATE SET address = EXCLUDED.address, linked_at = EXCLUDED.linked_at
                    """,
                    (wallet_link.player_id, wallet_link.address, wallet_link.linked_at),
                )
            conn.commit()
        return wallet_link

    def lookup(self, player_id: str) -> str | None:
        wallet_link = self.get_link(player_id)
        return wallet_link.address if wallet_link is not None else None

    def get_link(self, player_id: str) -> WalletLink | None:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT address, linked_at FROM wallet_links WHERE player_id = %s",
                    (player_id,),
                )
                row = cur.fetchone()

        if row is None:
            return None
        address, linked_at = row
        return WalletLink(player_id=player_id, address=address, linked_at=linked_at)

    def is_committed(self, event_id: str) -> bool:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1 FROM processed_events WHERE event_id = %s", (event_id,))
                row = cur.fetchone()
        return row is not None

    def record_committed(self, event: RelayEvent) -> None:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO processed_events (event_id, player_id, item_id, amount, direction, committed_at)
                    VALUES (%s, %s, %s, %s, %s, %s)
                    ON CONFLICT (event_id) DO NOTHING
                    """,
                    (
                        event.event_id,
                        event.player_id,
                        event.item_id,
                        event.amount,
                        event.direction.value,
                        _utc_now(),
                    ),
                )
            conn.commit()


def create_store(database_url: str | None, storage_path: str | None = None) -> RelayStore:
    if database_url:
        return PostgresRelayStore(database_url=database_url)
    if storage_path:
        return JsonFileRelayStore(storage_path=storage_path)
    logger.warning("No database URL or storage path configured; wallet links will not survive a restart")
    return InMemoryRelayStore()
