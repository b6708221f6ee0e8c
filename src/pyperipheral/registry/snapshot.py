"""Snapshot publishing: registry contents -> ordered, immutable entries."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from pyperipheral.models.snapshot import SnapshotEntry
from pyperipheral.registry.policy import is_stale
from pyperipheral.registry.store import RegistryEntry
from pyperipheral.rssi import sanitize_rssi


def snapshot_sort_key(entry: SnapshotEntry) -> tuple[Any, ...]:
    """Sort key putting the best and freshest peripherals first.

    Known readings come before unknown ones; among known readings the
    stronger one wins, then the more recent ``last_seen``.  Unknown readings
    are ordered by recency alone.  The identifier makes the order total.
    """
    reading = sanitize_rssi(entry.rssi)
    if reading is None:
        return (1, 0.0, -entry.last_seen, entry.peripheral_id)
    return (0, -reading, -entry.last_seen, entry.peripheral_id)


def to_snapshot_entry(entry: RegistryEntry, *, now: float, stale_threshold: float) -> SnapshotEntry:
    data = entry.model_copy(deep=True).data
    return SnapshotEntry(
        peripheral_id=entry.peripheral_id,
        name=data.get("name"),
        rssi=data.get("rssi"),
        last_seen=entry.last_seen,
        is_stale=is_stale(now, entry.last_seen, stale_threshold),
        data=data,
    )


def publish_snapshot(
    registry: Iterable[RegistryEntry],
    now: float,
    stale_threshold: float,
) -> tuple[SnapshotEntry, ...]:
    """Build the ordered snapshot for the current registry contents at *now*."""
    entries = [to_snapshot_entry(entry, now=now, stale_threshold=stale_threshold) for entry in registry]
    return tuple(sorted(entries, key=snapshot_sort_key))
