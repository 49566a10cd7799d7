"""Configuration helpers for the relay runtime."""

from __future__ import annotations

import os
from dataclasses import dataclass

from ratbridge.backend.errors import ConfigError


@dataclass(frozen=True)
class RelaySettings:
    bridge_url: str
    bridge_api_key: str | None
    bridge_timeout: float
    item_tokens: str | None
    item_tokens_path: str | None
    database_url: str | None
    storage_path: str | None
    max_attempts: int
    backoff_base: float
    backoff_max: float
    queue_bound: int
    workers: int
    shutdown_grace: float
    host: str
    port: int
    log_level: str


def _int_env(name: str, default: str, minimum: int | None = None) -> int:
    raw = os.getenv(name, default)
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from exc
    if minimum is not None and value < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {value}")
    return value


def _float_env(name: str, default: str) -> float:
    raw = os.getenv(name, default)
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from exc
    if value < 0:
        raise ConfigError(f"{name} must not be negative, got {value}")
    return value


def load_settings() -> RelaySettings:
    return RelaySettings(
        bridge_url=os.getenv("RATBRIDGE_BRIDGE_URL", "http://localhost:3000").rstrip("/"),
        bridge_api_key=os.getenv("RATBRIDGE_BRIDGE_API_KEY") or None,
        bridge_timeout=_float_env("RATBRIDGE_BRIDGE_TIMEOUT", "10.0"),
        item_tokens=os.getenv("RATBRIDGE_ITEM_TOKENS") or None,
        item_tokens_path=os.getenv("RATBRIDGE_ITEM_TOKENS_PATH") or None,
        database_url=os.getenv("RATBRIDGE_DATABASE_URL") or None,
        storage_path=os.getenv("RATBRIDGE_STORAGE_PATH") or None,
        max_attempts=_int_env("RATBRIDGE_MAX_ATTEMPTS", "3", minimum=1),
        backoff_base=_float_env("RATBRIDGE_BACKOFF_BASE", "0.5"),
        backoff_max=_float_env("RATBRIDGE_BACKOFF_MAX", "8.0"),
        queue_bound=_int_env("RATBRIDGE_QUEUE_BOUND", "100", minimum=1),
        workers=_int_env("RATBRIDGE_WORKERS", "4", minimum=1),
        shutdown_grace=_float_env("RATBRIDGE_SHUTDOWN_GRACE", "5.0"),
        host=os.getenv("RATBRIDGE_HOST", "127.0.0.1"),
        port=_int_env("RATBRIDGE_PORT", "8000", minimum=1),
        log_level=os.getenv("RATBRIDGE_LOG_LEVEL", "INFO").upper(),
    )
