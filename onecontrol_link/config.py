"""Session configuration and its voluptuous schema."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any

import voluptuous as vol

from .const import (
    CONF_ADDRESS,
    CONF_FALLBACK_TABLE_ID,
    CONF_GATEWAY_PIN,
    CONF_HEADER_STRIPPING,
    CONF_KEEPALIVE_INTERVAL,
    CONF_LEGACY_CYPHER,
    CONF_METADATA_DELAY,
    CONF_NOTIFICATION_QUEUE_SIZE,
    CONF_NOTIFY_DELAY,
    CONF_PIN_UNLOCK_DELAY,
    CONF_READ_TIMEOUT,
    CONF_SETTLE_DELAY,
    CONF_UNLOCK_VERIFY_DELAY,
    CONF_WRITE_TIMEOUT,
    DEFAULT_FALLBACK_TABLE_ID,
    DEFAULT_GATEWAY_PIN,
    DEFAULT_LEGACY_CYPHER,
    DEFAULT_NOTIFICATION_QUEUE_SIZE,
    HEARTBEAT_INTERVAL,
    METADATA_REQUEST_DELAY,
    NOTIFICATION_ENABLE_DELAY,
    PIN_UNLOCK_DELAY,
    READ_TIMEOUT,
    SETTLE_DELAY,
    UNLOCK_VERIFY_DELAY,
    WRITE_TIMEOUT,
)

_LOGGER = logging.getLogger(__name__)

_ADDRESS_RE = r"^([0-9A-Fa-f]{2}:){5}[0-9A-Fa-f]{2}$"
_PIN_RE = r"^[0-9]{6}$"


def _seconds(minimum: float = 0.0, minimum_included: bool = True):
    return vol.All(
        vol.Coerce(float),
        vol.Range(min=minimum, min_included=minimum_included),
    )


CONFIG_SCHEMA = vol.Schema(
    {
        vol.Required(CONF_ADDRESS): vol.All(str, vol.Match(_ADDRESS_RE), vol.Upper),
        vol.Optional(CONF_GATEWAY_PIN, default=DEFAULT_GATEWAY_PIN): vol.All(
            str, vol.Match(_PIN_RE, msg="PIN must be 6 digits")
        ),
        vol.Optional(CONF_LEGACY_CYPHER, default=DEFAULT_LEGACY_CYPHER): vol.All(
            int, vol.Range(min=0, max=0xFFFFFFFFFFFFFFFF)
        ),
        vol.Optional(CONF_SETTLE_DELAY, default=SETTLE_DELAY): _seconds(),
        vol.Optional(CONF_KEEPALIVE_INTERVAL, default=HEARTBEAT_INTERVAL): _seconds(
            0.0, minimum_included=False
        ),
        vol.Optional(CONF_READ_TIMEOUT, default=READ_TIMEOUT): _seconds(
            0.0, minimum_included=False
        ),
        vol.Optional(CONF_WRITE_TIMEOUT, default=WRITE_TIMEOUT): _seconds(
            0.0, minimum_included=False
        ),
        vol.Optional(CONF_NOTIFY_DELAY, default=NOTIFICATION_ENABLE_DELAY): _seconds(0.1),
        vol.Optional(CONF_UNLOCK_VERIFY_DELAY, default=UNLOCK_VERIFY_DELAY): _seconds(),
        vol.Optional(CONF_PIN_UNLOCK_DELAY, default=PIN_UNLOCK_DELAY): _seconds(),
        vol.Optional(CONF_METADATA_DELAY, default=METADATA_REQUEST_DELAY): _seconds(),
        vol.Optional(CONF_FALLBACK_TABLE_ID, default=DEFAULT_FALLBACK_TABLE_ID): vol.All(
            int, vol.Range(min=1, max=255)
        ),
        vol.Optional(CONF_HEADER_STRIPPING, default=True): bool,
        vol.Optional(
            CONF_NOTIFICATION_QUEUE_SIZE, default=DEFAULT_NOTIFICATION_QUEUE_SIZE
        ): vol.All(int, vol.Range(min=1)),
    }
)


@dataclass(frozen=True)
class LinkConfig:
    """Per-session settings, loaded once by the caller."""

    address: str
    gateway_pin: str = DEFAULT_GATEWAY_PIN
    legacy_cypher: int = DEFAULT_LEGACY_CYPHER
    settle_delay: float = SETTLE_DELAY
    keepalive_interval: float = HEARTBEAT_INTERVAL
    read_timeout: float = READ_TIMEOUT
    write_timeout: float = WRITE_TIMEOUT
    notify_delay: float = NOTIFICATION_ENABLE_DELAY
    unlock_verify_delay: float = UNLOCK_VERIFY_DELAY
    pin_unlock_delay: float = PIN_UNLOCK_DELAY
    metadata_delay: float = METADATA_REQUEST_DELAY
    fallback_table_id: int = DEFAULT_FALLBACK_TABLE_ID
    header_stripping: bool = True
    notification_queue_size: int = DEFAULT_NOTIFICATION_QUEUE_SIZE

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LinkConfig:
        """Validate *data* against ``CONFIG_SCHEMA``.

        Raises ``voluptuous.Invalid`` (``MultipleInvalid``) on bad input.
        """
        validated = CONFIG_SCHEMA(dict(data))
        _LOGGER.debug("Loaded config for %s", validated[CONF_ADDRESS])
        return cls(**validated)

    def as_dict(self) -> dict[str, Any]:
        """Return the config with the PIN redacted, for diagnostics."""
        data = asdict(self)
        data[CONF_GATEWAY_PIN] = "**REDACTED**"
        return data
