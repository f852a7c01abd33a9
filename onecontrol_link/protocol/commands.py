"""Outbound MyRvLink commands.

Every command starts with the same four-byte header::

    [id lo][id hi][command type][device table id][params...]

The id is a per-session 16-bit counter used to match command responses.
It runs 1..0xFFFE and then starts over at 1; 0 is never sent.
"""

from __future__ import annotations

import struct
import threading

from ..const import (
    CMD_ACTION_DIMMABLE,
    CMD_ACTION_HBRIDGE,
    CMD_ACTION_HVAC,
    CMD_ACTION_SWITCH,
    CMD_GET_DEVICES,
    CMD_GET_DEVICES_METADATA,
    COMMAND_ID_MAX,
    COMMAND_ID_MIN,
)

_HEADER = struct.Struct("<HBB")


def _saturate(value: int) -> int:
    return 0 if value < 0 else 255 if value > 255 else value


def pack_hvac_mode(heat_mode: int, heat_source: int, fan_mode: int) -> int:
    """Fold the three HVAC selectors into one byte.

    heat mode in bits 0-2, heat source in bits 4-5, fan mode in bits 6-7.
    """
    return (heat_mode & 0x07) | (heat_source & 0x03) << 4 | (fan_mode & 0x03) << 6


class CommandBuilder:
    """Allocates command ids and lays out command payloads."""

    def __init__(self, first_id: int = COMMAND_ID_MIN) -> None:
        if not COMMAND_ID_MIN <= first_id <= COMMAND_ID_MAX:
            raise ValueError(f"Command id out of range: {first_id}")
        self._lock = threading.Lock()
        self._next = first_id

    def next_id(self) -> int:
        with self._lock:
            issued = self._next
            self._next = issued + 1 if issued < COMMAND_ID_MAX else COMMAND_ID_MIN
            return issued

    @staticmethod
    def command_id(raw_command: bytes) -> int:
        """Id of an already built command."""
        return _HEADER.unpack_from(raw_command)[0]

    @staticmethod
    def command_type(raw_command: bytes) -> int:
        return _HEADER.unpack_from(raw_command)[1]

    def _frame(self, command_type: int, table_id: int, *params: int) -> bytes:
        header = _HEADER.pack(self.next_id(), command_type, table_id & 0xFF)
        return header + bytes(p & 0xFF for p in params)

    def build_get_devices(self, device_table_id: int, start_id: int = 0, count: int = 0xFF) -> bytes:
        """GetDevices; the gateway answers by broadcasting every device status.

        Doubles as the keep-alive.
        """
        return self._frame(CMD_GET_DEVICES, device_table_id, start_id, count)

    def build_get_devices_metadata(
        self, device_table_id: int, start_id: int = 0, count: int = 0xFF
    ) -> bytes:
        return self._frame(CMD_GET_DEVICES_METADATA, device_table_id, start_id, count)

    def build_action_switch(self, device_table_id: int, state: bool, device_ids: list[int]) -> bytes:
        """Relay on/off, for any number of devices on one table."""
        if not device_ids:
            raise ValueError("ActionSwitch needs at least one device id")
        return self._frame(CMD_ACTION_SWITCH, device_table_id, int(bool(state)), *device_ids)

    def build_action_hbridge(self, device_table_id: int, device_id: int, command: int) -> bytes:
        return self._frame(CMD_ACTION_HBRIDGE, device_table_id, device_id, command)

    def build_action_dimmable(
        self, device_table_id: int, device_id: int, mode: int, brightness: int
    ) -> bytes:
        """Dimmer command.  Mode 0x00 off, 0x01 on, 0x7F restore; trailing byte reserved."""
        return self._frame(
            CMD_ACTION_DIMMABLE, device_table_id, device_id, mode, _saturate(brightness), 0
        )

    def build_action_hvac(
        self,
        device_table_id: int,
        device_id: int,
        heat_mode: int,
        heat_source: int,
        fan_mode: int,
        low_trip_f: int,
        high_trip_f: int,
    ) -> bytes:
        return self._frame(
            CMD_ACTION_HVAC,
            device_table_id,
            device_id,
            pack_hvac_mode(heat_mode, heat_source, fan_mode),
            _saturate(low_trip_f),
            _saturate(high_trip_f),
        )
