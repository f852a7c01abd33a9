"""Constants for the OneControl gateway link protocol."""

# ---------------------------------------------------------------------------
# BLE Service & Characteristic UUIDs
# ---------------------------------------------------------------------------
UUID_BASE = "-0200-a58e-e411-afe28044e62c"

AUTH_SERVICE_UUID = f"00000010{UUID_BASE}"
SEED_CHAR_UUID = f"00000011{UUID_BASE}"
UNLOCK_STATUS_CHAR_UUID = f"00000012{UUID_BASE}"
KEY_CHAR_UUID = f"00000013{UUID_BASE}"
AUTH_STATUS_CHAR_UUID = f"00000014{UUID_BASE}"

# Legacy (CAN service) gateways
CAN_SERVICE_UUID = f"00000000{UUID_BASE}"
CAN_WRITE_CHAR_UUID = f"00000001{UUID_BASE}"
CAN_READ_CHAR_UUID = f"00000002{UUID_BASE}"
UNLOCK_CHAR_UUID = f"00000005{UUID_BASE}"

# Modern (data service) gateways
DATA_SERVICE_UUID = f"00000030{UUID_BASE}"
DATA_WRITE_CHAR_UUID = f"00000033{UUID_BASE}"
DATA_READ_CHAR_UUID = f"00000034{UUID_BASE}"

DISCOVERY_SERVICE_UUID = f"00000041{UUID_BASE}"

UNLOCKED_MARKER = b"Unlocked"

# ---------------------------------------------------------------------------
# TEA constants
# ---------------------------------------------------------------------------
TEA_DELTA: int = 0x9E3779B9
TEA_ROUNDS: int = 32

# Challenge/response (modern) transform
CHALLENGE_CYPHER: int = 0x2483FFD5
CHALLENGE_KEY_1: int = 0x436F7079
CHALLENGE_KEY_2: int = 0x72696768
CHALLENGE_KEY_3: int = 0x74204944
CHALLENGE_KEY_4: int = 0x53736E63

# SEED/KEY (legacy) transform; the cypher is overridable per gateway
DEFAULT_LEGACY_CYPHER: int = 0x8100080D
LEGACY_KEY_1: int = 0x43729561
LEGACY_KEY_2: int = 0x7265746E
LEGACY_KEY_3: int = 0x7421ED44
LEGACY_KEY_4: int = 0x5378A963

# ---------------------------------------------------------------------------
# Configuration defaults
# ---------------------------------------------------------------------------
DEFAULT_GATEWAY_PIN = "090336"
DEFAULT_FALLBACK_TABLE_ID = 0x01
DEFAULT_NOTIFICATION_QUEUE_SIZE = 256

# ---------------------------------------------------------------------------
# Timing (seconds)
# ---------------------------------------------------------------------------
SETTLE_DELAY = 1.5
READ_TIMEOUT = 10.0
WRITE_TIMEOUT = 5.0
NOTIFICATION_ENABLE_DELAY = 0.2
UNLOCK_VERIFY_DELAY = 0.5
PIN_UNLOCK_DELAY = 1.0
METADATA_REQUEST_DELAY = 0.5
HEARTBEAT_INTERVAL = 5.0  # GetDevices keepalive
DATA_HEALTHY_WINDOW = 15.0

# ---------------------------------------------------------------------------
# Event Types (first byte of decoded COBS frame)
# ---------------------------------------------------------------------------
EVENT_GATEWAY_INFORMATION = 0x01
EVENT_DEVICE_COMMAND = 0x02
EVENT_DEVICE_ONLINE_STATUS = 0x03
EVENT_DEVICE_LOCK_STATUS = 0x04
EVENT_RELAY_BASIC_LATCHING_1 = 0x05
EVENT_RELAY_BASIC_LATCHING_2 = 0x06
EVENT_RV_STATUS = 0x07
EVENT_DIMMABLE_LIGHT = 0x08
EVENT_RGB_LIGHT = 0x09
EVENT_GENERATOR_GENIE = 0x0A
EVENT_HVAC_STATUS = 0x0B
EVENT_TANK_SENSOR = 0x0C
EVENT_HBRIDGE_1 = 0x0D
EVENT_HBRIDGE_2 = 0x0E
EVENT_HOUR_METER = 0x0F
EVENT_LEVELER = 0x10
EVENT_SESSION_STATUS = 0x1A
EVENT_TANK_SENSOR_V2 = 0x1B
EVENT_REAL_TIME_CLOCK = 0x20

# ---------------------------------------------------------------------------
# Command Types (outbound)
# ---------------------------------------------------------------------------
CMD_GET_DEVICES = 0x01
CMD_GET_DEVICES_METADATA = 0x02
CMD_ACTION_SWITCH = 0x40
CMD_ACTION_HBRIDGE = 0x41
CMD_ACTION_DIMMABLE = 0x43
CMD_ACTION_HVAC = 0x45

COMMAND_ID_MIN = 0x0001
COMMAND_ID_MAX = 0xFFFE

# Command response types
RESPONSE_SUCCESS = 0x01
RESPONSE_SUCCESS_COMPLETE = 0x81
RESPONSE_FAILURE_COMPLETE = 0x82

# ---------------------------------------------------------------------------
# Dimmable light mode byte
# ---------------------------------------------------------------------------
DIMMABLE_MODE_OFF = 0x00
DIMMABLE_MODE_ON = 0x01
DIMMABLE_MODE_RESTORE = 0x7F

# ---------------------------------------------------------------------------
# HVAC
# ---------------------------------------------------------------------------
HVAC_MODE_OFF = 0
HVAC_MODE_HEAT = 1
HVAC_MODE_COOL = 2
HVAC_MODE_HEAT_COOL = 3
HVAC_MODE_SCHEDULE = 4

HVAC_SOURCE_GAS = 0
HVAC_SOURCE_HEAT_PUMP = 1
HVAC_SOURCE_OTHER = 2

HVAC_FAN_AUTO = 0
HVAC_FAN_HIGH = 1
HVAC_FAN_LOW = 2

HVAC_DEFAULT_LOW_TRIP_F = 65
HVAC_DEFAULT_HIGH_TRIP_F = 78

HVAC_TEMP_INVALID = (0x8000, 0x2FF0)

# ---------------------------------------------------------------------------
# Cover (H-bridge)
# ---------------------------------------------------------------------------
COVER_STOPPED = 0xC0
COVER_OPENING = 0xC2
COVER_CLOSING = 0xC3

HBRIDGE_STOP = 0x00
HBRIDGE_OPEN = 0x02
HBRIDGE_CLOSE = 0x03

# ---------------------------------------------------------------------------
# Metadata listing
# ---------------------------------------------------------------------------
METADATA_PROTOCOL_IDS_CAN = 2
METADATA_PAYLOAD_SIZE_FULL = 17

# ---------------------------------------------------------------------------
# Config keys
# ---------------------------------------------------------------------------
CONF_ADDRESS = "address"
CONF_GATEWAY_PIN = "gateway_pin"
CONF_LEGACY_CYPHER = "legacy_cypher"
CONF_SETTLE_DELAY = "settle_delay"
CONF_KEEPALIVE_INTERVAL = "keepalive_interval"
CONF_READ_TIMEOUT = "read_timeout"
CONF_WRITE_TIMEOUT = "write_timeout"
CONF_NOTIFY_DELAY = "notify_delay"
CONF_UNLOCK_VERIFY_DELAY = "unlock_verify_delay"
CONF_PIN_UNLOCK_DELAY = "pin_unlock_delay"
CONF_METADATA_DELAY = "metadata_delay"
CONF_FALLBACK_TABLE_ID = "fallback_table_id"
CONF_HEADER_STRIPPING = "header_stripping"
CONF_NOTIFICATION_QUEUE_SIZE = "notification_queue_size"
