"""FastAPI endpoints the game plugin calls for inventory events, wallets and commands."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator

from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel, Field

from .config import load_settings
from .errors import BridgeError, InvalidAddress
from .relay import RelayTicket
from .runtime import RelayRuntime, build_runtime


class ItemEventRequest(BaseModel):
    player_id: str = Field(min_length=1, max_length=200)
    item_id: str = Field(min_length=1, max_length=200)
    amount: int = Field(gt=0)
    event_id: str | None = Field(default=None, min_length=1, max_length=200)
    occurred_at: datetime | None = None
    sequence: int = Field(default=0, ge=0)


class ItemEventResponse(BaseModel):
    event_id: str
    state: str
    reason: str | None = None


class PlayerJoinRequest(BaseModel):
    player_id: str = Field(min_length=1, max_length=200)


class PlayerJoinResponse(BaseModel):
    wallet_linked: bool
    message: str | None = None


class LinkWalletRequest(BaseModel):
    address: str = Field(min_length=1, max_length=200)


class WalletLinkResponse(BaseModel):
    player_id: str
    address: str
    linked_at: datetime


class InventoryItem(BaseModel):
    token_id: int
    amount: int


class InventoryResponse(BaseModel):
    address: str
    inventory: list[InventoryItem]


class CommandRequest(BaseModel):
    command: str = Field(min_length=1, max_length=500)


class CommandResponse(BaseModel):
    messages: list[str]


class HealthResponse(BaseModel):
    status: str
    relay_running: bool
    pending: int


def _ticket_response(ticket: RelayTicket) -> ItemEventResponse:
    reason = ticket.result().reason if ticket.done() else None
    return ItemEventResponse(event_id=ticket.event_id, state=ticket.state.value, reason=reason)


def create_app(runtime: RelayRuntime | None = None) -> FastAPI:
    relay_runtime = runtime if runtime is not None else build_runtime(load_settings())

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        relay_runtime.start()
        try:
            yield
        finally:
            await asyncio.to_thread(relay_runtime.stop)

    app = FastAPI(title="Rat Game Bridge Relay", version="0.1.0", lifespan=lifespan)
    app.state.runtime = relay_runtime

    def get_runtime() -> RelayRuntime:
        return relay_runtime

    @app.get("/health", response_model=HealthResponse)
    def health(local_runtime: RelayRuntime = Depends(get_runtime)) -> HealthResponse:
        return HealthResponse(
            status="ok",
            relay_running=local_runtime.relay.is_running,
            pending=local_runtime.relay.pending_count,
        )

    @app.post("/api/events/pickup", response_model=ItemEventResponse, status_code=202)
    def item_pickup(
        payload: ItemEventRequest,
        local_runtime: RelayRuntime = Depends(get_runtime),
    ) -> ItemEventResponse:
        ticket = local_runtime.events.on_item_pickup(
            payload.player_id,
            payload.item_id,
            payload.amount,
            event_id=payload.event_id,
            occurred_at=payload.occurred_at,
            sequence=payload.sequence,
        )
        return _ticket_response(ticket)

    @app.post("/api/events/consume", response_model=ItemEventResponse, status_code=202)
    def item_consume(
        payload: ItemEventRequest,
        local_runtime: RelayRuntime = Depends(get_runtime),
    ) -> ItemEventResponse:
        ticket = local_runtime.events.on_item_consume(
            payload.player_id,
            payload.item_id,
            payload.amount,
            event_id=payload.event_id,
            occurred_at=payload.occurred_at,
            sequence=payload.sequence,
        )
        return _ticket_response(ticket)

    @app.post("/api/events/join", response_model=PlayerJoinResponse)
    def player_join(
        payload: PlayerJoinRequest,
        local_runtime: RelayRuntime = Depends(get_runtime),
    ) -> PlayerJoinResponse:
        message = local_runtime.events.on_player_join(payload.player_id)
        return PlayerJoinResponse(wallet_linked=message is None, message=message)

    @app.post("/api/players/{player_id}/wallet", response_model=WalletLinkResponse)
    def link_wallet(
        player_id: str,
        payload: LinkWalletRequest,
        local_runtime: RelayRuntime = Depends(get_runtime),
    ) -> WalletLinkResponse:
        try:
            wallet_link = local_runtime.store.link(player_id, payload.address)
        except InvalidAddress as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        return WalletLinkResponse(
            player_id=wallet_link.player_id,
            address=wallet_link.address,
            linked_at=wallet_link.linked_at,
        )

    @app.get("/api/players/{player_id}/wallet", response_model=WalletLinkResponse)
    def get_wallet(
        player_id: str,
        local_runtime: RelayRuntime = Depends(get_runtime),
    ) -> WalletLinkResponse:
        wallet_link = local_runtime.store.get_link(player_id)
        if wallet_link is None:
            raise HTTPException(status_code=404, detail="No wallet linked")
        return WalletLinkResponse(
            player_id=wallet_link.player_id,
            address=wallet_link.address,
            linked_at=wallet_link.linked_at,
        )

    @app.get("/api/players/{player_id}/inventory", response_model=InventoryResponse)
    def get_inventory(
        player_id: str,
        local_runtime: RelayRuntime = Depends(get_runtime),
    ) -> InventoryResponse:
        address = local_runtime.store.lookup(player_id)
        if address is None:
            raise HTTPException(status_code=404, detail="No wallet linked")
        try:
            entries = local_runtime.bridge.inventory_of(address)
        except BridgeError as exc:
            raise HTTPException(status_code=503 if exc.transient else 502, detail=str(exc)) from exc
        return InventoryResponse(
            address=address,
            inventory=[InventoryItem(token_id=entry.token_id, amount=entry.amount) for entry in entries],
        )

    @app.post("/api/players/{player_id}/commands", response_model=CommandResponse)
    def run_command(
        player_id: str,
        payload: CommandRequest,
        local_runtime: RelayRuntime = Depends(get_runtime),
    ) -> CommandResponse:
        return CommandResponse(messages=local_runtime.commands.dispatch(player_id, payload.command))

    return app
