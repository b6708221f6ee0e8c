"""Signal strength helpers.

Host adapters mix real negative dBm readings with platform "no data"
values.  Everything here is pure: a reading is either a finite negative
number or ``None`` (unknown), and ``None`` flows through normalization and
display like any other value.
"""

from __future__ import annotations

import math
from typing import Any

from pyperipheral._constants import (
    DEFAULT_BAR_COUNT,
    RSSI_MAX,
    RSSI_MIN,
    RSSI_NO_READING,
    RSSI_RESOLUTION,
)

Reading = int | float | None


def sanitize_rssi(raw: Any) -> Reading:
    """Return *raw* if it is a usable reading, else ``None``.

    Rejected: non-numbers (including bools and numeric strings), NaN and
    infinities, the ``127`` "no reading" sentinel, ``0``, and positive
    values some adapters report before they have a measurement.
    """
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        return None
    if not math.isfinite(raw):
        return None
    if raw == RSSI_NO_READING or raw >= 0:
        return None
    return raw


def normalize_rssi(reading: Reading) -> float:
    """Map a sanitized reading onto ``[0, 1]``; unknown maps to ``0``."""
    if reading is None:
        return 0.0
    clamped = min(RSSI_MAX, max(RSSI_MIN, reading))
    return (clamped - RSSI_MIN) / RSSI_RESOLUTION


def signal_level(reading: Reading, bar_count: int = DEFAULT_BAR_COUNT) -> int:
    """Number of lit bars out of *bar_count* for a sanitized reading.

    Unknown readings light no bars.  Any valid reading lights at least one
    and the strongest reading lights all of them.
    """
    if reading is None:
        return 0
    safe_bar_count = max(1, bar_count)
    bars = math.ceil(normalize_rssi(reading) * safe_bar_count)
    return min(safe_bar_count, max(1, bars))


def signal_percentage(reading: Reading) -> int:
    """Normalized reading as an integer percentage (halves round up)."""
    return math.floor(normalize_rssi(reading) * 100 + 0.5)


def format_signal_label(reading: Reading, *, stale: bool = False) -> str:
    """Human readable label, e.g. ``"-42 dBm"`` or ``"-- dBm ..."`` when stale."""
    if reading is None:
        label = "-- dBm"
    elif isinstance(reading, float) and reading.is_integer():
        label = f"{int(reading)} dBm"
    else:
        label = f"{reading} dBm"
    return f"{label} ..." if stale else label
