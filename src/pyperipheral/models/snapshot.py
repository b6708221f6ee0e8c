"""Published snapshot models consumed by the presentation layer."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from pyperipheral._constants import DEFAULT_BAR_COUNT
from pyperipheral.rssi import Reading, format_signal_label, sanitize_rssi, signal_level, signal_percentage


class SnapshotEntry(BaseModel):
    """Immutable view of one registry entry at publish time.

    Parameters
    ----------
    peripheral_id : str
        Always present; falls back to the registry key.
    name : str or None
        Last known display name.
    rssi : Any
        Last known raw reading.
    last_seen : float
        Clock reading of the last observation.
    is_stale : bool
        Whether the entry went unobserved for longer than the stale threshold.
    data : dict
        Copy of every merged field, including opaque ones.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    peripheral_id: str
    name: str | None = None
    rssi: Any = None
    last_seen: float
    is_stale: bool = False
    data: dict[str, Any] = Field(default_factory=dict)

    @property
    def display_name(self) -> str:
        return self.name or self.peripheral_id

    @property
    def signal(self) -> Reading:
        """Sanitized reading (``None`` when unknown)."""
        return sanitize_rssi(self.rssi)

    @property
    def signal_percentage(self) -> int:
        return signal_percentage(self.signal)

    @property
    def signal_label(self) -> str:
        return format_signal_label(self.signal, stale=self.is_stale)

    def signal_level(self, bar_count: int = DEFAULT_BAR_COUNT) -> int:
        return signal_level(self.signal, bar_count)


class EngineState(BaseModel):
    """The only state the presentation layer ever sees."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    scanning: bool = False
    snapshot: tuple[SnapshotEntry, ...] = ()
