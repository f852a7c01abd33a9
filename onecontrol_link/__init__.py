"""OneControl / MyRvLink BLE gateway link engine.

Authenticates to a Lippert OneControl gateway over an already connected
GATT transport, decodes its COBS event stream into typed device state and
encodes typed commands back onto the link.
"""

from .auth import GatewayGeneration, classify_generation
from .config import CONFIG_SCHEMA, LinkConfig
from .dispatcher import (
    CoverAction,
    CoverCommand,
    DimmableLightCommand,
    HvacCommand,
    SwitchCommand,
)
from .exceptions import (
    AuthenticationFailure,
    CommandRejected,
    DecodeMiss,
    FramingError,
    OneControlError,
    TransportError,
    TransportTimeout,
)
from .session import GatewaySession, SessionState
from .tracker import DeviceStateTracker, StateKind, StateListener
from .transport import BleakGattTransport, GattTransport

__all__ = [
    "CONFIG_SCHEMA",
    "AuthenticationFailure",
    "BleakGattTransport",
    "CommandRejected",
    "CoverAction",
    "CoverCommand",
    "DecodeMiss",
    "DeviceStateTracker",
    "DimmableLightCommand",
    "FramingError",
    "GatewayGeneration",
    "GatewaySession",
    "GattTransport",
    "HvacCommand",
    "LinkConfig",
    "OneControlError",
    "SessionState",
    "StateKind",
    "StateListener",
    "SwitchCommand",
    "TransportError",
    "TransportTimeout",
    "classify_generation",
]
