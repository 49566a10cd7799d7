"""HTTP client for the external token bridge (mint, burn and inventory endpoints)."""

from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx

from ratbridge.backend.errors import BridgeError
from ratbridge.backend.models import BridgeOutcome, BridgeResult, Direction, InventoryEntry

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


def classify_status(status_code: int) -> BridgeOutcome:
    """Map an HTTP status to a bridge outcome (only 200 counts as success)."""
    if status_code == 200:
        return BridgeOutcome.ACCEPTED
    if 500 <= status_code <= 599:
        return BridgeOutcome.TRANSIENT_FAILURE
    return BridgeOutcome.PERMANENT_FAILURE


def _decode_json(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return None


def _error_reason(response: httpx.Response) -> str:
    decoded = _decode_json(response)
    if isinstance(decoded, dict):
        for key in ("error", "message", "detail"):
            if decoded.get(key):
                return str(decoded[key])
    text = response.text.strip()
    return text[:200] if text else f"HTTP {response.status_code}"


class TokenBridge(Protocol):
    def mint(self, address: str, token_id: int, amount: int, event_id: str) -> BridgeResult:
        """Ask the bridge to mint tokens to the address."""

    def burn(self, address: str, token_id: int, amount: int, event_id: str) -> BridgeResult:
        """Ask the bridge to burn tokens held by the address."""

    def inventory_of(self, address: str) -> list[InventoryEntry]:
        """Return every (token, amount) pair the address holds."""


class BridgeClient:
    """Synchronous bridge client.

    Every mint/burn carries the event id both in the JSON body and as an
    ``Idempotency-Key`` header; delivery is at-least-once and deduplication is
    the remote side's (and the local ledger's) job.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        http_client: httpx.Client | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._owns_client = http_client is None
        self._http = http_client if http_client is not None else httpx.Client(timeout=timeout)
        self._headers = headers

    def __enter__(self) -> BridgeClient:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self._http.close()

    def mint(self, address: str, token_id: int, amount: int, event_id: str) -> BridgeResult:
        return self._transfer(Direction.MINT, address, token_id, amount, event_id)

    def burn(self, address: str, token_id: int, amount: int, event_id: str) -> BridgeResult:
        return self._transfer(Direction.BURN, address, token_id, amount, event_id)

    def _transfer(
        self,
        direction: Direction,
        address: str,
        token_id: int,
        amount: int,
        event_id: str,
    ) -> BridgeResult:
        url = f"{self.base_url}/bridge/{direction.value}"
        body = {
            "playerAddress": address,
            "itemId": token_id,
            "amount": amount,
            "eventId": event_id,
        }
        headers = dict(self._headers)
        headers["Idempotency-Key"] = event_id
        try:
            response = self._http.post(url, json=body, headers=headers)
        except httpx.TimeoutException as exc:
            logger.debug(f"Bridge {direction.value} timed out for event {event_id}: {exc}")
            return BridgeResult(outcome=BridgeOutcome.TRANSIENT_FAILURE, reason="Bridge request timed out")
        except httpx.TransportError as exc:
            logger.debug(f"Bridge {direction.value} transport error for event {event_id}: {exc}")
            return BridgeResult(outcome=BridgeOutcome.TRANSIENT_FAILURE, reason=f"Bridge unreachable: {exc}")
        except httpx.RequestError as exc:
            logger.debug(f"Bridge {direction.value} request failed for event {event_id}: {exc}")
            return BridgeResult(outcome=BridgeOutcome.PERMANENT_FAILURE, reason=f"Bridge request failed: {exc}")

        outcome = classify_status(response.status_code)
        if outcome is not BridgeOutcome.ACCEPTED:
            return BridgeResult(outcome=outcome, reason=_error_reason(response), status_code=response.status_code)

        decoded = _decode_json(response)
        if isinstance(decoded, dict) and decoded.get("success") is False:
            return BridgeResult(
                outcome=BridgeOutcome.REJECTED_BY_REMOTE,
                reason=str(decoded.get("error") or "Rejected by bridge"),
                status_code=response.status_code,
            )
        return BridgeResult(outcome=BridgeOutcome.ACCEPTED, status_code=response.status_code)

    def inventory_of(self, address: str) -> list[InventoryEntry]:
        url = f"{self.base_url}/bridge/inventory/{address}"
        try:
            response = self._http.get(url, headers=self._headers)
        except httpx.TimeoutException as exc:
            raise BridgeError("Bridge request timed out", transient=True) from exc
        except httpx.TransportError as exc:
            raise BridgeError(f"Bridge unreachable: {exc}", transient=True) from exc
        except httpx.RequestError as exc:
            raise BridgeError(f"Bridge request failed: {exc}", transient=False) from exc

        outcome = classify_status(response.status_code)
        if outcome is not BridgeOutcome.ACCEPTED:
            raise BridgeError(
                _error_reason(response),
                transient=outcome is BridgeOutcome.TRANSIENT_FAILURE,
                status_code=response.status_code,
            )
        return parse_inventory(_decode_json(response))


def parse_inventory(decoded: Any) -> list[InventoryEntry]:
    if isinstance(decoded, dict):
        decoded = decoded.get("inventory")
    if not isinstance(decoded, list):
        raise BridgeError("Bridge returned a malformed inventory", transient=False)

    entries: list[InventoryEntry] = []
    for row in decoded:
        if isinstance(row, dict):
            token_id = row.get("tokenId", row.get("itemId"))
            amount = row.get("amount")
        elif isinstance(row, (list, tuple)) and len(row) == 2:
            token_id, amount = row
        else:
            raise BridgeError(f"Bridge returned a malformed inventory entry: {row!r}", transient=False)
        try:
            entries.append(InventoryEntry(token_id=int(token_id), amount=int(amount)))
        except (TypeError, ValueError) as exc:
            raise BridgeError(f"Bridge returned a malformed inventory entry: {row!r}", transient=False) from exc
    return entries
