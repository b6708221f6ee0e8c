"""Peripheral scan engine.

Owns the registry and turns discovery events plus the passage of time into
a ranked, UI-ready list of visible peripherals.

Everything runs on one asyncio event loop: discovery events and the
maintenance timer each run to completion before the next one starts, so the
registry needs no locking.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any

from pyperipheral.config import ScanConfig
from pyperipheral.discovery import DiscoverySource, Unsubscribe
from pyperipheral.exceptions import DiscoveryError, ScanConfigError
from pyperipheral.ingestion.discovery import build_batch
from pyperipheral.ingestion.normalize import safe_str
from pyperipheral.models.snapshot import EngineState, SnapshotEntry
from pyperipheral.registry.events import DiscoveryBatch
from pyperipheral.registry.policy import Freshness, classify, should_rescan
from pyperipheral.registry.snapshot import publish_snapshot
from pyperipheral.registry.store import PeripheralRegistry

_logger = logging.getLogger(__name__)

StateListener = Callable[[EngineState], None]
Connector = Callable[[str], Awaitable[None] | None]


@dataclass(frozen=True, slots=True)
class MaintenanceReport:
    """What a single maintenance tick did."""

    removed: tuple[str, ...] = ()
    republished: bool = False
    rescanned: bool = False


class ScanEngine:
    """Registry maintenance engine.

    Usage::

        async with ScanEngine(config, source, on_state=render) as engine:
            ...
            engine.refresh()

    Parameters
    ----------
    config
        Time windows and the scan target.
    source
        The discovery source to subscribe to and send scan requests to.
    clock
        Monotonic clock in seconds.  Inject a fake one to simulate time.
    on_state
        Called with the new :class:`EngineState` whenever it changes.
    connector
        Receives the identifier passed to :meth:`connect`.
    """

    def __init__(
        self,
        config: ScanConfig,
        source: DiscoverySource,
        *,
        clock: Callable[[], float] = time.monotonic,
        on_state: StateListener | None = None,
        connector: Connector | None = None,
    ) -> None:
        self._config = config
        self._source = source
        self._clock = clock
        self._connector = connector
        self._listeners: list[StateListener] = [on_state] if on_state is not None else []

        self._registry = PeripheralRegistry()
        self._scanning = False
        self._snapshot: tuple[SnapshotEntry, ...] = ()
        now = clock()
        self._last_list_update = now
        self._last_scan_request = now

        self._unsubscribe: Unsubscribe | None = None
        self._maintenance_task: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> ScanEngine:
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    @property
    def is_running(self) -> bool:
        return self._maintenance_task is not None

    async def start(self) -> None:
        """Subscribe to the source, start the maintenance timer and scan."""
        if self._maintenance_task is not None:
            return
        self._unsubscribe = self._source.subscribe(self.on_discovery_batch, self.on_scan_timeout)
        self._maintenance_task = asyncio.create_task(self._maintenance_loop(), name="pyperipheral-maintenance")
        self.start_scan()

    async def close(self) -> None:
        """Detach from the source and stop the timer, then drop the registry."""
        unsubscribe = self._unsubscribe
        self._unsubscribe = None
        if unsubscribe is not None:
            unsubscribe()

        task = self._maintenance_task
        self._maintenance_task = None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        self._registry.clear()
        self._snapshot = ()
        self._scanning = False

    # ------------------------------------------------------------------
    # Presentation
    # ------------------------------------------------------------------

    @property
    def state(self) -> EngineState:
        return EngineState(scanning=self._scanning, snapshot=self._snapshot)

    @property
    def scanning(self) -> bool:
        return self._scanning

    @property
    def snapshot(self) -> tuple[SnapshotEntry, ...]:
        return self._snapshot

    def add_listener(self, listener: StateListener) -> Callable[[], None]:
        """Register a state listener; returns a callable that removes it."""
        self._listeners.append(listener)

        def _remove() -> None:
            # By identity: distinct listeners may compare equal.
            self._listeners = [item for item in self._listeners if item is not listener]

        return _remove

    def _notify(self) -> None:
        state = self.state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                _logger.debug("State listener failed", exc_info=True)

    def _publish(self, now: float) -> None:
        self._snapshot = publish_snapshot(self._registry, now, self._config.stale_threshold)
        self._notify()

    # ------------------------------------------------------------------
    # Inbound discovery events
    # ------------------------------------------------------------------

    def on_discovery_batch(self, batch: Mapping[str, Any] | DiscoveryBatch | None) -> None:
        """Merge a batch of observations and republish.

        Empty batches still count as "discovery is alive".
        """
        parsed = build_batch(batch)
        now = self._clock()
        changed = self._registry.merge(parsed, now)
        self._last_list_update = now
        _logger.debug("Merged discovery batch size=%d changed=%s registry=%d", len(parsed), changed, len(self._registry))
        self._publish(now)

    def on_scan_timeout(self) -> None:
        """The source gave up scanning: forget everything and go idle."""
        _logger.debug("Scan timed out; clearing %d peripherals", len(self._registry))
        self._registry.clear()
        self._scanning = False
        self._snapshot = ()
        self._notify()

    # ------------------------------------------------------------------
    # Caller commands
    # ------------------------------------------------------------------

    def refresh(self) -> None:
        """Restart scanning from an empty list."""
        self.start_scan(preserve=False)

    def start_scan(self, preserve: bool = False) -> None:
        """Send a scan request.

        With ``preserve=False`` the registry and snapshot are cleared and both
        timers restart.  With ``preserve=True`` the current list stays visible
        and only the scan-request timer moves.
        """
        now = self._clock()
        self._request_scan()
        self._last_scan_request = now
        if preserve:
            if not self._scanning:
                self._scanning = True
                self._notify()
            return

        self._registry.clear()
        self._last_list_update = now
        self._scanning = True
        self._snapshot = ()
        self._notify()

    def _request_scan(self) -> None:
        target = self._config.target_id
        _logger.debug("Requesting scan target=%s", target)
        try:
            self._source.request_scan(target)
        except DiscoveryError:
            # No acknowledgment channel exists; the quiescence check retries.
            _logger.warning("Scan request for %s failed", target, exc_info=True)

    async def connect(self, peripheral_id: str) -> None:
        """Forward a connection request to the configured connector."""
        identifier = safe_str(peripheral_id)
        if identifier is None:
            raise ValueError("peripheral_id must be non-empty")
        if self._connector is None:
            raise ScanConfigError("No connector configured")
        _logger.debug("Connecting to %s", identifier)
        result = self._connector(identifier)
        if inspect.isawaitable(result):
            await result

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def maintenance_tick(self) -> MaintenanceReport:
        """Expire old entries, surface stale transitions and rescan when quiet."""
        now = self._clock()
        config = self._config
        republished = False

        removed = self._registry.expire(now, config.expiration_threshold)
        if removed:
            _logger.debug("Expired peripherals: %s", removed)
            self._publish(now)
            republished = True
        elif self._snapshot and self._staleness_changed(now):
            self._publish(now)
            republished = True

        rescanned = False
        if should_rescan(
            now=now,
            last_list_update=self._last_list_update,
            last_scan_request=self._last_scan_request,
            interval=config.auto_rescan_interval,
        ):
            _logger.debug("No discovery updates for %.1fs; rescanning", now - self._last_list_update)
            self.start_scan(preserve=True)
            rescanned = True

        return MaintenanceReport(removed=tuple(removed), republished=republished, rescanned=rescanned)

    def _staleness_changed(self, now: float) -> bool:
        for item in self._snapshot:
            last_seen = self._registry.last_seen(item.peripheral_id)
            if last_seen is None:
                return True
            freshness = classify(
                now,
                last_seen,
                stale_threshold=self._config.stale_threshold,
                expiration_threshold=self._config.expiration_threshold,
            )
            if item.is_stale != (freshness is not Freshness.FRESH):
                return True
        return False

    async def _maintenance_loop(self) -> None:
        interval = self._config.maintenance_tick
        while True:
            await asyncio.sleep(interval)
            try:
                self.maintenance_tick()
            except Exception:
                _logger.warning("Maintenance tick failed", exc_info=True)
