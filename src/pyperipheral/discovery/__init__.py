"""Discovery source interface and adapters.

A discovery source (a) accepts "start scanning for X" requests, (b) emits
batches of raw observations keyed by peripheral identifier and (c) emits a
payload-less scan-timeout signal.  Adapters must deliver both kinds of event
on the engine's event loop, one at a time.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any, Protocol

BatchHandler = Callable[[Mapping[str, Any]], None]
TimeoutHandler = Callable[[], None]
Unsubscribe = Callable[[], None]

_logger = logging.getLogger(__name__)


class DiscoverySource(Protocol):
    """Structural interface the scan engine talks to.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production adapters concrete.
    """

    def subscribe(self, on_batch: BatchHandler, on_timeout: TimeoutHandler) -> Unsubscribe:
        """Register handlers; the returned callable removes them again."""
        ...

    def request_scan(self, target_id: str) -> None:
        """Ask the source to (re)start scanning.  No acknowledgment is given."""
        ...


class _Subscribers:
    """Handler bookkeeping shared by the adapters."""

    def __init__(self) -> None:
        self._handlers: list[tuple[BatchHandler, TimeoutHandler]] = []

    def __bool__(self) -> bool:
        return bool(self._handlers)

    def add(self, on_batch: BatchHandler, on_timeout: TimeoutHandler) -> Unsubscribe:
        pair = (on_batch, on_timeout)
        self._handlers.append(pair)

        def _remove() -> None:
            self._handlers = [item for item in self._handlers if item is not pair]

        return _remove

    def emit_batch(self, batch: Mapping[str, Any]) -> None:
        for on_batch, _ in list(self._handlers):
            on_batch(batch)

    def emit_timeout(self) -> None:
        for _, on_timeout in list(self._handlers):
            on_timeout()


class InMemoryDiscoverySource:
    """Discovery source driven from code.

    Scan requests are recorded in :attr:`scan_requests`; batches and
    timeouts are pushed with :meth:`emit_batch` / :meth:`emit_timeout`.
    """

    def __init__(self) -> None:
        self._subscribers = _Subscribers()
        self.scan_requests: list[str] = []

    @property
    def has_subscribers(self) -> bool:
        return bool(self._subscribers)

    def subscribe(self, on_batch: BatchHandler, on_timeout: TimeoutHandler) -> Unsubscribe:
        return self._subscribers.add(on_batch, on_timeout)

    def request_scan(self, target_id: str) -> None:
        _logger.debug("Scan requested target=%s", target_id)
        self.scan_requests.append(target_id)

    def emit_batch(self, batch: Mapping[str, Any]) -> None:
        self._subscribers.emit_batch(batch)

    def emit_timeout(self) -> None:
        self._subscribers.emit_timeout()


__all__ = [
    "BatchHandler",
    "DiscoverySource",
    "InMemoryDiscoverySource",
    "TimeoutHandler",
    "Unsubscribe",
]
