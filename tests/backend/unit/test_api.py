import threading
import time

import pytest

fastapi = pytest.importorskip("fastapi")
pytest.importorskip("httpx")
from fastapi.testclient import TestClient

from ratbridge.backend.api import create_app
from ratbridge.backend.errors import BridgeError
from ratbridge.backend.item_tokens import ItemTokenMap
from ratbridge.backend.models import BridgeOutcome, BridgeResult, InventoryEntry
from ratbridge.backend.relay import RetryPolicy
from ratbridge.backend.runtime import RelayRuntime, assemble_runtime
from ratbridge.backend.store import InMemoryRelayStore

ADDRESS = "0xAbC0000000000000000000000000000000000001"


class FakeBridge:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str, int, int, str]] = []
        self.inventory: list[InventoryEntry] = []
        self.inventory_error: BridgeError | None = None
        self._lock = threading.Lock()

    def mint(self, address: str, token_id: int, amount: int, event_id: str) -> BridgeResult:
        with self._lock:
            self.calls.append(("mint", address, token_id, amount, event_id))
        return BridgeResult(outcome=BridgeOutcome.ACCEPTED, status_code=200)

    def burn(self, address: str, token_id: int, amount: int, event_id: str) -> BridgeResult:
        with self._lock:
            self.calls.append(("burn", address, token_id, amount, event_id))
        return BridgeResult(outcome=BridgeOutcome.ACCEPTED, status_code=200)

    def inventory_of(self, address: str) -> list[InventoryEntry]:
        if self.inventory_error is not None:
            raise self.inventory_error
        return list(self.inventory)


def _runtime() -> RelayRuntime:
    return assemble_runtime(
        store=InMemoryRelayStore(),
        item_tokens=ItemTokenMap.from_config({"ore_copper": 7, "hytale:cheese": 1}),
        bridge=FakeBridge(),
        retry=RetryPolicy(max_attempts=3, backoff_base=0.0),
        queue_bound=10,
        workers=2,
        shutdown_grace=1.0,
    )


def _wait_until(predicate, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


def test_health_reports_relay_lifecycle() -> None:
    runtime = _runtime()
    app = create_app(runtime=runtime)

    with TestClient(app) as client:
        running = client.get("/health").json()

    assert running == {"status": "ok", "relay_running": True, "pending": 0}
    assert runtime.relay.is_running is False


def test_pickup_event_is_relayed_as_mint() -> None:
    runtime = _runtime()
    app = create_app(runtime=runtime)

    with TestClient(app) as client:
        client.post("/api/players/player-1/wallet", json={"address": ADDRESS})
        response = client.post(
            "/api/events/pickup",
            json={"player_id": "player-1", "item_id": "ore_copper", "amount": 3, "event_id": "evt-1"},
        )

        assert response.status_code == 202
        assert response.json()["event_id"] == "evt-1"
        assert _wait_until(lambda: runtime.store.is_committed("evt-1"))

        duplicate = client.post(
            "/api/events/pickup",
            json={"player_id": "player-1", "item_id": "ore_copper", "amount": 3, "event_id": "evt-1"},
        )

    assert duplicate.status_code == 202
    assert duplicate.json()["state"] == "committed"
    assert runtime.bridge.calls == [("mint", ADDRESS, 7, 3, "evt-1")]


def test_consume_event_is_relayed_as_burn_with_derived_event_id() -> None:
    runtime = _runtime()
    app = create_app(runtime=runtime)

    with TestClient(app) as client:
        client.post("/api/players/player-1/wallet", json={"address": ADDRESS})
        response = client.post(
            "/api/events/consume",
            json={
                "player_id": "player-1",
                "item_id": "hytale:cheese",
                "amount": 1,
                "occurred_at": "2026-03-01T12:00:00+00:00",
                "sequence": 2,
            },
        )
        event_id = response.json()["event_id"]
        assert _wait_until(lambda: runtime.store.is_committed(event_id))

    assert len(event_id) == 64
    assert runtime.bridge.calls == [("burn", ADDRESS, 1, 1, event_id)]


def test_event_endpoints_validate_payload() -> None:
    client = TestClient(create_app(runtime=_runtime()))

    zero_amount = client.post("/api/events/pickup", json={"player_id": "player-1", "item_id": "ore_copper", "amount": 0})
    blank_player = client.post("/api/events/consume", json={"player_id": "", "item_id": "ore_copper", "amount": 1})

    assert zero_amount.status_code == 422
    assert blank_player.status_code == 422


def test_join_reports_wallet_link_status() -> None:
    runtime = _runtime()
    client = TestClient(create_app(runtime=runtime))

    before = client.post("/api/events/join", json={"player_id": "player-1"}).json()
    runtime.store.link("player-1", ADDRESS)
    after = client.post("/api/events/join", json={"player_id": "player-1"}).json()

    assert before["wallet_linked"] is False
    assert "/linkwallet" in before["message"]
    assert after == {"wallet_linked": True, "message": None}


def test_wallet_link_roundtrip_and_invalid_address() -> None:
    client = TestClient(create_app(runtime=_runtime()))

    missing = client.get("/api/players/player-1/wallet")
    linked = client.post("/api/players/player-1/wallet", json={"address": ADDRESS})
    invalid = client.post("/api/players/player-1/wallet", json={"address": "notanaddress"})
    fetched = client.get("/api/players/player-1/wallet")

    assert missing.status_code == 404
    assert linked.status_code == 200
    assert linked.json()["address"] == ADDRESS
    assert invalid.status_code == 422
    assert fetched.json()["address"] == ADDRESS


def test_inventory_endpoint() -> None:
    runtime = _runtime()
    runtime.bridge.inventory = [InventoryEntry(token_id=7, amount=3)]
    client = TestClient(create_app(runtime=runtime))

    missing = client.get("/api/players/player-1/inventory")
    runtime.store.link("player-1", ADDRESS)
    found = client.get("/api/players/player-1/inventory")
    runtime.bridge.inventory_error = BridgeError("HTTP 500", transient=True)
    unavailable = client.get("/api/players/player-1/inventory")
    runtime.bridge.inventory_error = BridgeError("unknown address", transient=False)
    refused = client.get("/api/players/player-1/inventory")

    assert missing.status_code == 404
    assert found.json() == {"address": ADDRESS, "inventory": [{"token_id": 7, "amount": 3}]}
    assert unavailable.status_code == 503
    assert refused.status_code == 502


def test_command_endpoint_runs_player_commands() -> None:
    runtime = _runtime()
    client = TestClient(create_app(runtime=runtime))

    linked = client.post("/api/players/player-1/commands", json={"command": f"/linkwallet {ADDRESS}"})
    inventory = client.post("/api/players/player-1/commands", json={"command": "/checkinventory"})

    assert linked.json()["messages"][0] == f"Wallet linked: {ADDRESS}"
    assert inventory.json()["messages"] == [f"No tokens found for {ADDRESS}"]
    assert runtime.store.lookup("player-1") == ADDRESS
