"""Backend package for the Rat Game bridge relay."""

from .bridge_client import BridgeClient, TokenBridge
from .commands import CommandHandlers
from .config import RelaySettings, load_settings
from .errors import BridgeError, ConfigError, InvalidAddress, RelayError
from .events import GameEventSink
from .identity import derive_event_id, is_valid_address, normalize_address
from .item_tokens import ItemTokenMap, load_item_tokens
from .models import BridgeOutcome, BridgeResult, Direction, RelayEvent, RelayOutcome, RelayState, WalletLink
from .relay import EventRelay, RelayTicket, RetryPolicy
from .runtime import RelayRuntime, assemble_runtime, build_runtime
from .store import (
    EventLedger,
    InMemoryRelayStore,
    JsonFileRelayStore,
    PostgresRelayStore,
    RelayStore,
    WalletStore,
    create_store,
)

__all__ = [
    "assemble_runtime",
    "BridgeClient",
    "BridgeError",
    "BridgeOutcome",
    "BridgeResult",
    "build_runtime",
    "CommandHandlers",
    "ConfigError",
    "create_store",
    "derive_event_id",
    "Direction",
    "EventLedger",
    "EventRelay",
    "GameEventSink",
    "InMemoryRelayStore",
    "InvalidAddress",
    "is_valid_address",
    "ItemTokenMap",
    "JsonFileRelayStore",
    "load_item_tokens",
    "load_settings",
    "normalize_address",
    "PostgresRelayStore",
    "RelayError",
    "RelayEvent",
    "RelayOutcome",
    "RelayRuntime",
    "RelaySettings",
    "RelayState",
    "RelayStore",
    "RelayTicket",
    "RetryPolicy",
    "TokenBridge",
    "WalletLink",
    "WalletStore",
]
