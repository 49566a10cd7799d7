"""Player-facing commands: wallet linking and blockchain inventory checks."""

from __future__ import annotations

import logging
import shlex

from ratbridge.backend.bridge_client import TokenBridge
from ratbridge.backend.errors import BridgeError, InvalidAddress
from ratbridge.backend.item_tokens import ItemTokenMap
from ratbridge.backend.store import WalletStore

logger = logging.getLogger(__name__)

LINK_USAGE = "Usage: /linkwallet <wallet_address>"
NO_WALLET = "No wallet linked. Use /linkwallet <address> first."

LINK_COMMANDS = ("linkwallet", "syncwallet")
INVENTORY_COMMANDS = ("checkinventory", "checkinv")


class CommandHandlers:
    def __init__(self, wallets: WalletStore, bridge: TokenBridge, item_tokens: ItemTokenMap | None = None) -> None:
        self._wallets = wallets
        self._bridge = bridge
        self._token_names: dict[int, str] = {}
        if item_tokens is not None:
            self._token_names = {entry.token_id: entry.item_id for entry in item_tokens.items()}

    def dispatch(self, player_id: str, command_line: str) -> list[str]:
        try:
            parts = shlex.split(command_line)
        except ValueError:
            parts = command_line.split()
        if not parts:
            return ["Unknown command."]

        name = parts[0].lstrip("/").lower()
        if name in LINK_COMMANDS:
            return self.link_wallet(player_id, parts[1:])
        if name in INVENTORY_COMMANDS:
            return self.check_inventory(player_id)
        return [f"Unknown command: {name}"]

    def link_wallet(self, player_id: str, args: list[str]) -> list[str]:
        if len(args) != 1:
            return [LINK_USAGE]
        try:
            wallet_link = self._wallets.link(player_id, args[0])
        except InvalidAddress:
            return [f"Invalid wallet address: {args[0]}"]
        logger.info(f"Player {player_id} linked wallet {wallet_link.address}")
        return [
            f"Wallet linked: {wallet_link.address}",
            "Your items will now sync to blockchain!",
        ]

    def check_inventory(self, player_id: str) -> list[str]:
        address = self._wallets.lookup(player_id)
        if address is None:
            return [NO_WALLET]
        try:
            entries = self._bridge.inventory_of(address)
        except BridgeError as exc:
            logger.warning(f"Inventory lookup for {address} failed: {exc}")
            return ["Failed to fetch inventory, try again later." if exc.transient else f"Failed to fetch inventory: {exc}"]

        if not entries:
            return [f"No tokens found for {address}"]
        lines = ["Blockchain Inventory:"]
        for entry in entries:
            name = self._token_names.get(entry.token_id)
            label = f"{name} (token {entry.token_id})" if name else f"token {entry.token_id}"
            lines.append(f"- {label}: {entry.amount}")
        return lines
