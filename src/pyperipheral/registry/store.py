"""Deterministic in-memory peripheral registry.

This is the only component allowed to merge discovery batches.
"""

from __future__ import annotations

import copy
from collections.abc import Iterator
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from pyperipheral.ingestion.discovery import observation_patch
from pyperipheral.registry.events import DiscoveryBatch
from pyperipheral.registry.policy import is_expired

# Fields whose change makes a redraw necessary (as opposed to a timestamp bump).
_IDENTITY_KEYS: tuple[str, ...] = ("name", "rssi")


def _merge_patch(target: dict[str, Any], patch: dict[str, Any]) -> None:
    """Apply a patch: keys in the patch overwrite, even with ``None``; missing keys are kept."""
    if not patch:
        return
    target.update(copy.deepcopy(patch))


class RegistryEntry(BaseModel):
    model_config = ConfigDict(extra="forbid")

    peripheral_id: str
    data: dict[str, Any] = Field(default_factory=dict)
    last_seen: float

    @property
    def name(self) -> str | None:
        return self.data.get("name")

    @property
    def rssi(self) -> Any:
        return self.data.get("rssi")


class PeripheralRegistry:
    """Mapping of peripheral identifier to :class:`RegistryEntry`.

    Given the same sequence of batches and clock readings the registry always
    ends up with the same contents.  Entries never leave the registry by
    reference: every accessor hands out deep copies.
    """

    def __init__(self) -> None:
        self._entries: dict[str, RegistryEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, peripheral_id: object) -> bool:
        return peripheral_id in self._entries

    def __iter__(self) -> Iterator[RegistryEntry]:
        # Snapshot the values so callers may mutate the registry while iterating.
        return iter([entry.model_copy(deep=True) for entry in self._entries.values()])

    def get(self, peripheral_id: str) -> RegistryEntry | None:
        entry = self._entries.get(peripheral_id)
        return entry.model_copy(deep=True) if entry is not None else None

    def last_seen(self, peripheral_id: str) -> float | None:
        entry = self._entries.get(peripheral_id)
        return entry.last_seen if entry is not None else None

    def merge(self, batch: DiscoveryBatch, now: float) -> bool:
        """Fold a batch into the registry.

        Every observed entry is created or updated and stamped with *now*.
        ``last_seen`` never moves backwards, even if the clock does.

        Returns True when an entry was created or its name or raw reading
        changed.
        """
        changed = False
        for peripheral_id, observation in batch.observations.items():
            patch = observation_patch(observation)
            previous = self._entries.get(peripheral_id)
            if previous is None:
                entry = RegistryEntry(peripheral_id=peripheral_id, data={}, last_seen=now)
                _merge_patch(entry.data, patch)
                self._entries[peripheral_id] = entry
                changed = True
                continue

            before = {key: previous.data.get(key) for key in _IDENTITY_KEYS}
            _merge_patch(previous.data, patch)
            previous.last_seen = max(previous.last_seen, now)
            if any(previous.data.get(key) != before[key] for key in _IDENTITY_KEYS):
                changed = True
        return changed

    def expire(self, now: float, expiration_threshold: float) -> list[str]:
        """Remove entries unseen for longer than *expiration_threshold*.

        Returns the removed identifiers, sorted.
        """
        removed = sorted(
            peripheral_id
            for peripheral_id, entry in self._entries.items()
            if is_expired(now, entry.last_seen, expiration_threshold)
        )
        for peripheral_id in removed:
            del self._entries[peripheral_id]
        return removed

    def clear(self) -> None:
        self._entries.clear()
