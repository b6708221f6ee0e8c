"""Pydantic models for discovery payloads and published snapshots."""

from pyperipheral.models.peripheral import PeripheralObservation
from pyperipheral.models.snapshot import EngineState, SnapshotEntry

__all__ = [
    "EngineState",
    "PeripheralObservation",
    "SnapshotEntry",
]
