from __future__ import annotations

import pytest
from pydantic import ValidationError

from pyperipheral.ingestion.discovery import build_batch
from pyperipheral.registry.snapshot import publish_snapshot
from pyperipheral.registry.store import PeripheralRegistry


def _registry(*batches: tuple[float, dict]) -> PeripheralRegistry:
    registry = PeripheralRegistry()
    for now, payload in batches:
        registry.merge(build_batch(payload), now=now)
    return registry


def _ids(snapshot) -> list[str]:
    return [entry.peripheral_id for entry in snapshot]


def test_known_readings_rank_by_strength_before_unknown() -> None:
    t = 100.0
    registry = _registry(
        (t, {"A": {"rssi": -40}, "B": {"rssi": -60}}),
        (t + 5, {"C": {"rssi": 127}}),
    )

    snapshot = publish_snapshot(registry, now=t + 5, stale_threshold=6.0)

    assert _ids(snapshot) == ["A", "B", "C"]


def test_equal_readings_prefer_more_recent() -> None:
    registry = _registry((1.0, {"old": {"rssi": -50}}), (3.0, {"new": {"rssi": -50}}))

    assert _ids(publish_snapshot(registry, now=3.0, stale_threshold=6.0)) == ["new", "old"]


def test_unknown_readings_rank_by_recency() -> None:
    registry = _registry(
        (1.0, {"zero": {"rssi": 0}}),
        (2.0, {"missing": {"name": "no reading"}}),
        (3.0, {"positive": {"rssi": 12}}),
    )

    assert _ids(publish_snapshot(registry, now=3.0, stale_threshold=6.0)) == ["positive", "missing", "zero"]


def test_unknown_never_outranks_known_even_if_newer() -> None:
    registry = _registry((1.0, {"weak": {"rssi": -99}}), (9.0, {"fresh": {"rssi": "n/a"}}))

    assert _ids(publish_snapshot(registry, now=9.0, stale_threshold=6.0)) == ["weak", "fresh"]


def test_identifier_breaks_remaining_ties() -> None:
    registry = _registry((1.0, {"b": {"rssi": -50}, "a": {"rssi": -50}}))

    assert _ids(publish_snapshot(registry, now=1.0, stale_threshold=6.0)) == ["a", "b"]


def test_stale_flag_is_strictly_past_threshold() -> None:
    registry = _registry((0.0, {"old": {}}), (0.5, {"edge": {}}), (1.0, {"fresh": {}}))

    snapshot = {entry.peripheral_id: entry for entry in publish_snapshot(registry, now=6.5, stale_threshold=6.0)}

    assert snapshot["old"].is_stale is True
    assert snapshot["edge"].is_stale is False
    assert snapshot["fresh"].is_stale is False


def test_snapshot_entries_expose_display_fields() -> None:
    registry = _registry((1.0, {"AA:BB": {"rssi": -20, "extra": 1}, "CC": {"name": "Hub", "rssi": 127}}))

    snapshot = {entry.peripheral_id: entry for entry in publish_snapshot(registry, now=1.0, stale_threshold=6.0)}

    anonymous = snapshot["AA:BB"]
    assert anonymous.display_name == "AA:BB"
    assert anonymous.signal == -20
    assert anonymous.signal_level(8) == 8
    assert anonymous.signal_percentage == 100
    assert anonymous.signal_label == "-20 dBm"
    assert anonymous.data["extra"] == 1

    hub = snapshot["CC"]
    assert hub.display_name == "Hub"
    assert hub.rssi == 127
    assert hub.signal is None
    assert hub.signal_level() == 0
    assert hub.signal_label == "-- dBm"


def test_snapshot_is_a_value_copy() -> None:
    registry = _registry((1.0, {"a": {"name": "A", "tags": ["x"]}}))
    snapshot = publish_snapshot(registry, now=1.0, stale_threshold=6.0)

    with pytest.raises(ValidationError):
        snapshot[0].name = "changed"  # type: ignore[misc]
    snapshot[0].data["tags"].append("y")

    entry = registry.get("a")
    assert entry is not None
    assert entry.data["tags"] == ["x"]


def test_empty_registry_publishes_empty_snapshot() -> None:
    assert publish_snapshot(PeripheralRegistry(), now=0.0, stale_threshold=6.0) == ()
