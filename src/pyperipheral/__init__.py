"""pyperipheral - ranked, self-maintaining list of nearby peripherals."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pyperipheral")
except PackageNotFoundError:
    __version__ = "0+local"
from pyperipheral.config import BrokerProfile, ScanConfig
from pyperipheral.discovery import DiscoverySource, InMemoryDiscoverySource
from pyperipheral.engine import MaintenanceReport, ScanEngine
from pyperipheral.exceptions import (
    DiscoveryError,
    DiscoveryProtocolError,
    DiscoveryTransportError,
    PeripheralError,
    ScanConfigError,
)
from pyperipheral.models import EngineState, PeripheralObservation, SnapshotEntry
from pyperipheral.registry.snapshot import publish_snapshot
from pyperipheral.registry.store import PeripheralRegistry, RegistryEntry
from pyperipheral.rssi import (
    format_signal_label,
    normalize_rssi,
    sanitize_rssi,
    signal_level,
    signal_percentage,
)

__all__ = [
    "__version__",
    "BrokerProfile",
    "DiscoveryError",
    "DiscoveryProtocolError",
    "DiscoverySource",
    "DiscoveryTransportError",
    "EngineState",
    "InMemoryDiscoverySource",
    "MaintenanceReport",
    "PeripheralError",
    "PeripheralObservation",
    "PeripheralRegistry",
    "RegistryEntry",
    "ScanConfig",
    "ScanConfigError",
    "ScanEngine",
    "SnapshotEntry",
    "format_signal_label",
    "normalize_rssi",
    "publish_snapshot",
    "sanitize_rssi",
    "signal_level",
    "signal_percentage",
]
