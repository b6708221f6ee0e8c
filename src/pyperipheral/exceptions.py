"""Custom exception hierarchy for pyperipheral."""

from __future__ import annotations


class PeripheralError(Exception):
    """Base exception for all pyperipheral errors."""


class ScanConfigError(PeripheralError):
    """Invalid or missing configuration."""


class DiscoveryError(PeripheralError):
    """A discovery adapter could not do its job."""


class DiscoveryTransportError(DiscoveryError):
    """Connection-level failure (broker unreachable, websocket closed, ...)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class DiscoveryProtocolError(DiscoveryError):
    """A discovery frame could not be decoded.

    Adapters log and drop such frames; the engine never sees them.
    """
