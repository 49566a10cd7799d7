"""Exception taxonomy shared by the relay components."""

from __future__ import annotations


class RelayError(Exception):
    """Base class for errors raised by the relay service."""


class ConfigError(RelayError):
    """Configuration is malformed; raised at startup and never swallowed."""


class InvalidAddress(RelayError):
    def __init__(self, address: str) -> None:
        super().__init__(f"Invalid wallet address: {address!r}")
        self.address = address


class BridgeError(RelayError):
    """A bridge read failed. ``transient`` marks failures worth retrying later."""

    def __init__(self, message: str, transient: bool, status_code: int | None = None) -> None:
        super().__init__(message)
        self.transient = transient
        self.status_code = status_code
