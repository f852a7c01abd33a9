"""Device state tracker.

Keeps the last-known state of every device seen on one gateway session,
keyed by (device address, state kind).  Listeners are told once when a
(key, kind) pair is first seen and again only when its value changes, so a
gateway that rebroadcasts unchanged status 30-50 times a second during bulk
discovery does not turn into a publish storm.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any, Callable, Union

from .protocol.events import (
    CoverMotion,
    CoverStatus,
    DeviceLock,
    DeviceMetadata,
    DeviceOnline,
    DimmableLight,
    GatewayInformation,
    HvacZone,
    MetadataListing,
    RealTimeClock,
    RelayStatus,
    RvStatus,
    TankLevel,
    cover_motion,
)

_LOGGER = logging.getLogger(__name__)

StateKey = Union[int, str]

# Singleton states live under fixed keys rather than device addresses.
SYSTEM_STATUS_KEY = "system"
GATEWAY_INFO_KEY = "gateway"
CLOCK_KEY = "clock"


class StateKind(enum.Enum):
    DIMMABLE_LIGHT = "dimmable_light"
    SWITCH = "switch"
    COVER = "cover"
    TANK = "tank"
    HVAC = "hvac"
    SYSTEM_STATUS = "system_status"
    GATEWAY_INFO = "gateway_info"
    DEVICE_ONLINE = "device_online"
    DEVICE_LOCK = "device_lock"
    CLOCK = "clock"
    METADATA = "metadata"


# ── State variants ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class DimmableLightState:
    is_on: bool
    brightness: int  # 0-100 %


@dataclass(frozen=True)
class SwitchState:
    is_on: bool


@dataclass(frozen=True)
class CoverState:
    status: int
    position: int | None
    last_direction: CoverMotion | None

    @property
    def motion(self) -> CoverMotion:
        return cover_motion(self.status)


@dataclass(frozen=True)
class TankState:
    level_percent: int | None
    fluid_type: str | None = None


@dataclass(frozen=True)
class HvacState:
    heat_mode: int
    heat_source: int
    fan_mode: int
    zone_mode: int
    heat_setpoint_f: int
    cool_setpoint_f: int
    indoor_temp_f: float | None = None
    outdoor_temp_f: float | None = None
    failed_thermistor: bool = False
    dtc_code: int = 0


@dataclass(frozen=True)
class SystemStatus:
    battery_voltage: float | None
    external_temp_c: float | None
    voltage_available: bool = False
    temperature_available: bool = False


@dataclass(frozen=True)
class GatewayInfoState:
    protocol_version: int
    device_count: int
    device_table_id: int
    table_crc: int | None = None
    metadata_crc: int | None = None


@dataclass(frozen=True)
class DeviceOnlineState:
    is_online: bool


@dataclass(frozen=True)
class DeviceLockState:
    is_locked: bool


@dataclass(frozen=True)
class ClockState:
    year: int
    month: int
    day: int
    hour: int
    minute: int
    second: int


@dataclass(frozen=True)
class MetadataState:
    function_name: int
    function_instance: int


@dataclass(frozen=True)
class StateUpdate:
    key: StateKey
    kind: StateKind
    state: Any
    discovered: bool
    changed: bool


class StateListener:
    """Output collaborator.  Override the hooks you need."""

    def on_device_discovered(self, key: StateKey, kind: StateKind, state: Any) -> None:
        """Called exactly once per (key, kind) for the lifetime of a session."""

    def on_state_changed(self, key: StateKey, kind: StateKind, state: Any) -> None:
        """Called when the observable value for (key, kind) differs from the last one."""

    def on_event(self, event: Any) -> None:
        """Called for every decoded frame, tracked or not."""


# ── Tracker ───────────────────────────────────────────────────────────────


class DeviceStateTracker:
    """In-memory table of last-known device state for one session."""

    def __init__(self) -> None:
        self._states: dict[tuple[StateKey, StateKind], Any] = {}
        self._discovered: set[tuple[StateKey, StateKind]] = set()
        self._listeners: list[StateListener] = []

    def add_listener(self, listener: StateListener) -> Callable[[], None]:
        """Register a listener. Returns unsubscribe callable."""
        self._listeners.append(listener)

        def _unsub() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsub

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, key: StateKey, kind: StateKind) -> Any:
        return self._states.get((key, kind))

    def states(self, kind: StateKind) -> dict[StateKey, Any]:
        return {k: v for (k, knd), v in self._states.items() if knd is kind}

    def is_discovered(self, key: StateKey, kind: StateKind) -> bool:
        return (key, kind) in self._discovered

    def __len__(self) -> int:
        return len(self._states)

    def clear(self) -> None:
        """Forget everything; the next session starts from scratch."""
        self._states.clear()
        self._discovered.clear()

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    def update(self, key: StateKey, kind: StateKind, state: Any) -> StateUpdate:
        """Store *state* for (key, kind) and notify listeners as needed."""
        slot = (key, kind)
        discovered = slot not in self._discovered
        changed = self._states.get(slot) != state
        self._states[slot] = state

        if discovered:
            self._discovered.add(slot)
            _LOGGER.debug("Discovered %s %s: %s", kind.value, _fmt_key(key), state)
            self._notify("on_device_discovered", key, kind, state)
        if changed:
            self._notify("on_state_changed", key, kind, state)

        return StateUpdate(key, kind, state, discovered, changed)

    def apply_event(self, event: Any) -> list[StateUpdate]:
        """Fold a decoded event (or list of events) into the table."""
        if isinstance(event, list):
            updates: list[StateUpdate] = []
            for item in event:
                updates.extend(self.apply_event(item))
            return updates

        if isinstance(event, MetadataListing):
            return self.apply_event(list(event.entries))

        converted = self._convert(event)
        if converted is None:
            return []
        key, kind, state = converted
        return [self.update(key, kind, state)]

    def publish_event(self, event: Any) -> None:
        """Hand a decoded frame to listeners that want raw events."""
        for listener in list(self._listeners):
            try:
                listener.on_event(event)
            except Exception:  # noqa: BLE001
                _LOGGER.exception("Error in event listener")

    def _convert(self, event: Any) -> tuple[StateKey, StateKind, Any] | None:
        if isinstance(event, GatewayInformation):
            return GATEWAY_INFO_KEY, StateKind.GATEWAY_INFO, GatewayInfoState(
                protocol_version=event.protocol_version,
                device_count=event.device_count,
                device_table_id=event.table_id,
                table_crc=event.table_crc,
                metadata_crc=event.metadata_crc,
            )
        if isinstance(event, RvStatus):
            return SYSTEM_STATUS_KEY, StateKind.SYSTEM_STATUS, SystemStatus(
                battery_voltage=event.voltage,
                external_temp_c=event.temperature,
                voltage_available=event.voltage_available,
                temperature_available=event.temperature_available,
            )
        if isinstance(event, RealTimeClock):
            return CLOCK_KEY, StateKind.CLOCK, ClockState(
                event.year, event.month, event.day, event.hour, event.minute, event.second
            )
        if isinstance(event, DimmableLight):
            return event.address, StateKind.DIMMABLE_LIGHT, DimmableLightState(
                is_on=event.is_on, brightness=event.brightness
            )
        if isinstance(event, RelayStatus):
            return event.address, StateKind.SWITCH, SwitchState(is_on=event.is_on)
        if isinstance(event, CoverStatus):
            return event.address, StateKind.COVER, self._cover_state(event)
        if isinstance(event, TankLevel):
            previous = self.get(event.address, StateKind.TANK)
            fluid = previous.fluid_type if previous is not None else None
            return event.address, StateKind.TANK, TankState(
                level_percent=event.level, fluid_type=fluid
            )
        if isinstance(event, HvacZone):
            return event.address, StateKind.HVAC, HvacState(
                heat_mode=event.heat_mode,
                heat_source=event.heat_source,
                fan_mode=event.fan_mode,
                zone_mode=event.zone_status,
                heat_setpoint_f=event.low_trip_f,
                cool_setpoint_f=event.high_trip_f,
                indoor_temp_f=event.indoor_temp_f,
                outdoor_temp_f=event.outdoor_temp_f,
                failed_thermistor=event.failed_thermistor,
                dtc_code=event.dtc_code,
            )
        if isinstance(event, DeviceOnline):
            return event.address, StateKind.DEVICE_ONLINE, DeviceOnlineState(event.is_online)
        if isinstance(event, DeviceLock):
            return event.address, StateKind.DEVICE_LOCK, DeviceLockState(event.is_locked)
        if isinstance(event, DeviceMetadata):
            return event.address, StateKind.METADATA, MetadataState(
                function_name=event.function_name,
                function_instance=event.function_instance,
            )
        return None

    def _cover_state(self, event: CoverStatus) -> CoverState:
        previous = self.get(event.address, StateKind.COVER)
        last_direction = previous.last_direction if previous is not None else None
        motion = event.motion
        if motion in (CoverMotion.OPENING, CoverMotion.CLOSING):
            last_direction = motion
        return CoverState(
            status=event.status,
            position=event.position,
            last_direction=last_direction,
        )

    def _notify(self, hook: str, key: StateKey, kind: StateKind, state: Any) -> None:
        for listener in list(self._listeners):
            try:
                getattr(listener, hook)(key, kind, state)
            except Exception:  # noqa: BLE001
                _LOGGER.exception("Error in state listener")


def _fmt_key(key: StateKey) -> str:
    return f"0x{key:04X}" if isinstance(key, int) else key
