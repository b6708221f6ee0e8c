"""Time-window policy for registry entries.

Pure functions over clock readings (seconds). All comparisons are strict:
an entry exactly at a threshold is still on the younger side of it.
"""

from __future__ import annotations

from enum import StrEnum


class Freshness(StrEnum):
    FRESH = "fresh"
    STALE = "stale"
    EXPIRED = "expired"


def elapsed(now: float, since: float) -> float:
    return now - since


def is_stale(now: float, last_seen: float, stale_threshold: float) -> bool:
    return elapsed(now, last_seen) > stale_threshold


def is_expired(now: float, last_seen: float, expiration_threshold: float) -> bool:
    return elapsed(now, last_seen) > expiration_threshold


def classify(
    now: float,
    last_seen: float,
    *,
    stale_threshold: float,
    expiration_threshold: float,
) -> Freshness:
    """Classify an entry by the age of its last observation."""
    if is_expired(now, last_seen, expiration_threshold):
        return Freshness.EXPIRED
    if is_stale(now, last_seen, stale_threshold):
        return Freshness.STALE
    return Freshness.FRESH


def should_rescan(
    *,
    now: float,
    last_list_update: float,
    last_scan_request: float,
    interval: float,
) -> bool:
    """Decide whether discovery went quiet long enough to ask for a new scan.

    Both the last batch and the last scan request must be older than
    *interval*; the second condition keeps requests from piling up while a
    source stays silent.
    """
    return elapsed(now, last_list_update) > interval and elapsed(now, last_scan_request) > interval
