"""Typed commands and their translation into MyRvLink command frames."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Callable, Union

from .const import (
    DIMMABLE_MODE_OFF,
    DIMMABLE_MODE_ON,
    HBRIDGE_CLOSE,
    HBRIDGE_OPEN,
    HBRIDGE_STOP,
    HVAC_DEFAULT_HIGH_TRIP_F,
    HVAC_DEFAULT_LOW_TRIP_F,
    HVAC_FAN_AUTO,
    HVAC_FAN_LOW,
    HVAC_MODE_OFF,
    HVAC_MODE_SCHEDULE,
    HVAC_SOURCE_GAS,
)
from .exceptions import CommandRejected
from .protocol.commands import CommandBuilder
from .protocol.events import device_address
from .tracker import DeviceStateTracker, StateKind

_LOGGER = logging.getLogger(__name__)


class CoverAction(enum.Enum):
    OPEN = HBRIDGE_OPEN
    CLOSE = HBRIDGE_CLOSE
    STOP = HBRIDGE_STOP


@dataclass(frozen=True)
class DimmableLightCommand:
    table_id: int
    device_id: int
    turn_on: bool
    brightness: int | None = None  # 0-100 %


@dataclass(frozen=True)
class SwitchCommand:
    table_id: int
    device_id: int
    turn_on: bool


@dataclass(frozen=True)
class CoverCommand:
    table_id: int
    device_id: int
    action: CoverAction | None = None
    position: int | None = None


@dataclass(frozen=True)
class HvacCommand:
    table_id: int
    device_id: int
    mode: int | None = None
    fan_mode: int | None = None
    heat_source: int | None = None
    heat_setpoint: int | None = None  # °F
    cool_setpoint: int | None = None  # °F


Command = Union[DimmableLightCommand, SwitchCommand, CoverCommand, HvacCommand]


def percent_to_raw(percent: int) -> int:
    """Convert 0-100 % to the 0-255 wire value, rounding up.

    Rounding up keeps ``raw * 100 // 255`` equal to *percent*.
    """
    return (percent * 255 + 99) // 100


def _check_range(name: str, value: int, low: int, high: int) -> None:
    if not low <= value <= high:
        raise CommandRejected(f"{name} {value} outside {low}..{high}")


class CommandDispatcher:
    """Validate typed commands and encode them as raw command bytes.

    ``authorized`` reports whether the session may send; ``table_id``
    returns the device table learned from the gateway (or the fallback),
    used when a command addresses table 0.
    """

    def __init__(
        self,
        builder: CommandBuilder,
        tracker: DeviceStateTracker,
        authorized: Callable[[], bool],
        table_id: Callable[[], int],
    ) -> None:
        self._builder = builder
        self._tracker = tracker
        self._authorized = authorized
        self._table_id = table_id

    def build(self, command: Command) -> bytes:
        """Return the raw (un-framed) command bytes, or raise ``CommandRejected``."""
        if not self._authorized():
            raise CommandRejected("Session is not authenticated")

        _check_range("device_id", command.device_id, 0, 255)
        _check_range("table_id", command.table_id, 0, 255)
        table_id = command.table_id or self._table_id()

        if isinstance(command, DimmableLightCommand):
            return self._build_dimmable(command, table_id)
        if isinstance(command, SwitchCommand):
            return self._builder.build_action_switch(
                table_id, command.turn_on, [command.device_id]
            )
        if isinstance(command, CoverCommand):
            return self._build_cover(command, table_id)
        if isinstance(command, HvacCommand):
            return self._build_hvac(command, table_id)
        raise CommandRejected(f"Unsupported command {type(command).__name__}")

    # ------------------------------------------------------------------

    def _build_dimmable(self, command: DimmableLightCommand, table_id: int) -> bytes:
        if command.brightness is not None:
            _check_range("brightness", command.brightness, 0, 100)

        if not command.turn_on or command.brightness == 0:
            return self._builder.build_action_dimmable(
                table_id, command.device_id, DIMMABLE_MODE_OFF, 0
            )

        percent = command.brightness
        if percent is None:
            # Turn on at the last known level
            last = self._tracker.get(
                device_address(table_id, command.device_id), StateKind.DIMMABLE_LIGHT
            )
            percent = last.brightness if last is not None and last.brightness > 0 else 100
        return self._builder.build_action_dimmable(
            table_id, command.device_id, DIMMABLE_MODE_ON, percent_to_raw(percent)
        )

    def _build_cover(self, command: CoverCommand, table_id: int) -> bytes:
        if command.position is not None:
            raise CommandRejected("Cover position seek is not implemented")
        if command.action is None:
            raise CommandRejected("Cover command needs an action")
        return self._builder.build_action_hbridge(
            table_id, command.device_id, command.action.value
        )

    def _build_hvac(self, command: HvacCommand, table_id: int) -> bytes:
        current = self._tracker.get(
            device_address(table_id, command.device_id), StateKind.HVAC
        )
        if current is not None:
            mode, source, fan = current.heat_mode, current.heat_source, current.fan_mode
            low, high = current.heat_setpoint_f, current.cool_setpoint_f
        else:
            mode, source, fan = HVAC_MODE_OFF, HVAC_SOURCE_GAS, HVAC_FAN_AUTO
            low, high = HVAC_DEFAULT_LOW_TRIP_F, HVAC_DEFAULT_HIGH_TRIP_F

        if command.mode is not None:
            _check_range("mode", command.mode, HVAC_MODE_OFF, HVAC_MODE_SCHEDULE)
            mode = command.mode
        if command.fan_mode is not None:
            _check_range("fan_mode", command.fan_mode, HVAC_FAN_AUTO, HVAC_FAN_LOW)
            fan = command.fan_mode
        if command.heat_source is not None:
            _check_range("heat_source", command.heat_source, 0, 3)
            source = command.heat_source
        if command.heat_setpoint is not None:
            _check_range("heat_setpoint", command.heat_setpoint, 0, 255)
            low = command.heat_setpoint
        if command.cool_setpoint is not None:
            _check_range("cool_setpoint", command.cool_setpoint, 0, 255)
            high = command.cool_setpoint

        _LOGGER.debug(
            "HVAC %02x:%02x mode=%d source=%d fan=%d low=%d high=%d",
            table_id, command.device_id, mode, source, fan, low, high,
        )
        return self._builder.build_action_hvac(
            table_id, command.device_id, mode, source, fan, low, high
        )
