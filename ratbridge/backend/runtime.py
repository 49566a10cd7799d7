"""Builds the relay components once at startup and wires them together."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ratbridge.backend.bridge_client import BridgeClient, TokenBridge
from ratbridge.backend.commands import CommandHandlers
from ratbridge.backend.config import RelaySettings
from ratbridge.backend.events import GameEventSink
from ratbridge.backend.item_tokens import ItemTokenMap, load_item_tokens
from ratbridge.backend.relay import EventRelay, RetryPolicy
from ratbridge.backend.store import RelayStore, create_store

logger = logging.getLogger(__name__)


@dataclass
class RelayRuntime:
    store: RelayStore
    item_tokens: ItemTokenMap
    bridge: TokenBridge
    relay: EventRelay
    events: GameEventSink
    commands: CommandHandlers
    shutdown_grace: float = 5.0

    def start(self) -> None:
        self.relay.start()

    def stop(self) -> None:
        self.relay.stop(grace_period=self.shutdown_grace)
        close = getattr(self.bridge, "close", None)
        if callable(close):
            close()


def assemble_runtime(
    store: RelayStore,
    item_tokens: ItemTokenMap,
    bridge: TokenBridge,
    retry: RetryPolicy | None = None,
    queue_bound: int = 100,
    workers: int = 4,
    shutdown_grace: float = 5.0,
) -> RelayRuntime:
    relay = EventRelay(
        wallets=store,
        item_tokens=item_tokens,
        bridge=bridge,
        ledger=store,
        retry=retry,
        queue_bound=queue_bound,
        workers=workers,
    )
    return RelayRuntime(
        store=store,
        item_tokens=item_tokens,
        bridge=bridge,
        relay=relay,
        events=GameEventSink(relay=relay, wallets=store),
        commands=CommandHandlers(wallets=store, bridge=bridge, item_tokens=item_tokens),
        shutdown_grace=shutdown_grace,
    )


def build_runtime(settings: RelaySettings) -> RelayRuntime:
    """Create every component from settings; raises ConfigError on bad configuration."""
    item_tokens = load_item_tokens(inline_json=settings.item_tokens, path=settings.item_tokens_path)
    store = create_store(database_url=settings.database_url, storage_path=settings.storage_path)
    bridge = BridgeClient(
        base_url=settings.bridge_url,
        api_key=settings.bridge_api_key,
        timeout=settings.bridge_timeout,
    )
    logger.info(f"Relay configured for bridge {settings.bridge_url} with {len(item_tokens)} tracked items")
    return assemble_runtime(
        store=store,
        item_tokens=item_tokens,
        bridge=bridge,
        retry=RetryPolicy(
            max_attempts=settings.max_attempts,
            backoff_base=settings.backoff_base,
            backoff_max=settings.backoff_max,
        ),
        queue_bound=settings.queue_bound,
        workers=settings.workers,
        shutdown_grace=settings.shutdown_grace,
    )
