"""Item id to token id table loaded once at startup."""

from __future__ import annotations

import json
from collections.abc import Iterator, Mapping
from pathlib import Path
from typing import Any

from ratbridge.backend.errors import ConfigError
from ratbridge.backend.models import ItemTokenEntry


DEFAULT_ITEM_TOKENS: dict[str, int] = {
    "hytale:cheese": 1,
    "hytale:void_scythe": 2,
}


class ItemTokenMap:
    """Read-only mapping; safe to share between worker threads after load."""

    def __init__(self, entries: list[ItemTokenEntry]) -> None:
        table: dict[str, int] = {}
        for entry in entries:
            if entry.item_id in table:
                raise ConfigError(f"Duplicate item id in token table: {entry.item_id!r}")
            table[entry.item_id] = entry.token_id
        self._table = table

    @classmethod
    def from_config(cls, raw: Any) -> ItemTokenMap:
        return cls(_parse_entries(raw))

    def token_for(self, item_id: str) -> int | None:
        return self._table.get(item_id)

    def items(self) -> list[ItemTokenEntry]:
        return [ItemTokenEntry(item_id=item_id, token_id=token_id) for item_id, token_id in self._table.items()]

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._table

    def __iter__(self) -> Iterator[str]:
        return iter(self._table)

    def __len__(self) -> int:
        return len(self._table)


def _parse_entries(raw: Any) -> list[ItemTokenEntry]:
    if isinstance(raw, Mapping):
        pairs = list(raw.items())
    elif isinstance(raw, list):
        pairs = []
        for row in raw:
            if isinstance(row, Mapping):
                pairs.append((row.get("itemId"), row.get("tokenId")))
            elif isinstance(row, (list, tuple)) and len(row) == 2:
                pairs.append((row[0], row[1]))
            else:
                raise ConfigError(f"Malformed item token entry: {row!r}")
    else:
        raise ConfigError("Item token table must be an object or a list of entries")

    entries: list[ItemTokenEntry] = []
    for item_id, token_id in pairs:
        if not isinstance(item_id, str) or item_id.strip() == "":
            raise ConfigError(f"Item id must be a non-empty string, got {item_id!r}")
        if isinstance(token_id, bool) or not isinstance(token_id, int):
            raise ConfigError(f"Token id for {item_id!r} must be an integer, got {token_id!r}")
        if token_id < 0:
            raise ConfigError(f"Token id for {item_id!r} must not be negative, got {token_id}")
        entries.append(ItemTokenEntry(item_id=item_id, token_id=token_id))
    return entries


def _reject_duplicate_keys(pairs: list[tuple[str, Any]]) -> Any:
    seen: set[str] = set()
    for key, _ in pairs:
        if key in seen:
            raise ConfigError(f"Duplicate item id in token table: {key!r}")
        seen.add(key)
    return dict(pairs)


def load_item_tokens(inline_json: str | None = None, path: str | Path | None = None) -> ItemTokenMap:
    """Build the table from inline JSON, a JSON file, or the built-in defaults."""
    if inline_json is not None and path is not None:
        raise ConfigError("Configure either inline item tokens or an item tokens file, not both")

    if path is not None:
        try:
            inline_json = Path(path).read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigError(f"Cannot read item token file {path}: {exc}") from exc

    if inline_json is None:
        return ItemTokenMap.from_config(DEFAULT_ITEM_TOKENS)

    try:
        raw = json.loads(inline_json, object_pairs_hook=_reject_duplicate_keys)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Item token table is not valid JSON: {exc}") from exc
    return ItemTokenMap.from_config(raw)
