"""
Shared constants for the SmartControl bulb tools.
"""

# WiZ firmware listens for JSON commands on this UDP port.
WIZ_PORT = 38899
RECV_BUFFER_SIZE = 4096

# Timeouts (seconds)
DISCOVERY_TIMEOUT = 5.0
PROBE_TIMEOUT = 0.5
SOCKET_TIMEOUT = 2.0
BROADCAST_LISTEN_DURATION = 3.0
BLE_SCAN_DURATION = 10.0

# IP scan batch size - processes IPs in chunks to avoid network spam
IP_SCAN_BATCH_SIZE = 50

# Refresh loop
POLL_INTERVAL = 3.0
UPDATE_COOLDOWN = 3.0

# On-wire value ranges
BRIGHTNESS_MIN = 10
BRIGHTNESS_MAX = 100
COLOR_MIN = 0
COLOR_MAX = 255
TEMP_MIN = 2700
TEMP_MAX = 6500

# Sent as phoneMac in registration broadcasts when the host MAC is unknown
DEFAULT_PHONE_MAC = "AAAAAAAAAAAA"

DEFAULT_WATTAGE = 9.0
DEFAULT_BRIGHTNESS = 50.0

# BLE advertisement heuristics (matched case-insensitively against the name)
BLE_NAME_MARKERS = (
    "WiZ",
    "Wipro",
    "Smart",
    "Light",
    "Bulb",
    "LED",
)
# Tuya-based bulbs advertise service UUID 0xFD50
TUYA_SERVICE_UUID = "0000fd50-0000-1000-8000-00805f9b34fb"
