"""Internal constants shared across the library."""

# ------------------------------------------------------------------
# Signal strength scale  (dBm -> 0..1)
# ------------------------------------------------------------------

RSSI_MIN = -100
RSSI_MAX = -20
RSSI_RESOLUTION = RSSI_MAX - RSSI_MIN

#: Value some host adapters (macOS/Windows Scratch Link) report for "no reading".
RSSI_NO_READING = 127

DEFAULT_BAR_COUNT = 4

# ------------------------------------------------------------------
# Registry time windows (seconds)
# ------------------------------------------------------------------

STALE_THRESHOLD_S = 6.0
EXPIRATION_THRESHOLD_S = 15.0
AUTO_RESCAN_INTERVAL_S = 8.0
MAINTENANCE_TICK_S = 2.0

# ------------------------------------------------------------------
# Discovery adapters
# ------------------------------------------------------------------

#: How long a websocket discovery may run without any peripheral before it times out.
DISCOVERY_TIMEOUT_S = 15.0
DEFAULT_TOPIC_PREFIX = "pyperipheral"
DEFAULT_WEBSOCKET_URL = "wss://device-manager.scratch.mit.edu:20110/scratch/ble"
