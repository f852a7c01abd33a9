"""Decoders for gateway events and command responses.

Device events carry the event-type byte at index 0 followed by
``[tableId][deviceId][...]``.  Command responses either arrive tagged as
event 0x02 (``[0x02][cmdId LE][respType][...]``) or untagged
(``[cmdId LE][cmdType][...]``).  The parsers return typed dataclass
instances, or ``None`` when the frame is too short; a short frame is a
normal condition on a live link, not an error.
"""

from __future__ import annotations

import enum
import logging
import struct
from dataclasses import dataclass, field
from typing import Any, Callable

from ..const import (
    COMMAND_ID_MAX,
    COMMAND_ID_MIN,
    CMD_GET_DEVICES,
    CMD_GET_DEVICES_METADATA,
    COVER_CLOSING,
    COVER_OPENING,
    COVER_STOPPED,
    EVENT_DEVICE_COMMAND,
    EVENT_DEVICE_LOCK_STATUS,
    EVENT_DEVICE_ONLINE_STATUS,
    EVENT_DIMMABLE_LIGHT,
    EVENT_GATEWAY_INFORMATION,
    EVENT_GENERATOR_GENIE,
    EVENT_HBRIDGE_1,
    EVENT_HBRIDGE_2,
    EVENT_HOUR_METER,
    EVENT_HVAC_STATUS,
    EVENT_LEVELER,
    EVENT_REAL_TIME_CLOCK,
    EVENT_RELAY_BASIC_LATCHING_1,
    EVENT_RELAY_BASIC_LATCHING_2,
    EVENT_RGB_LIGHT,
    EVENT_RV_STATUS,
    EVENT_SESSION_STATUS,
    EVENT_TANK_SENSOR,
    EVENT_TANK_SENSOR_V2,
    HVAC_TEMP_INVALID,
    METADATA_PAYLOAD_SIZE_FULL,
    METADATA_PROTOCOL_IDS_CAN,
    RESPONSE_FAILURE_COMPLETE,
    RESPONSE_SUCCESS,
    RESPONSE_SUCCESS_COMPLETE,
)
from ..exceptions import DecodeMiss

_LOGGER = logging.getLogger(__name__)


# ── Addressing ────────────────────────────────────────────────────────────


def device_address(table_id: int, device_id: int) -> int:
    """Pack a (table, device) pair into a 16-bit device address."""
    return ((table_id & 0xFF) << 8) | (device_id & 0xFF)


def split_address(address: int) -> tuple[int, int]:
    """Inverse of ``device_address``."""
    return (address >> 8) & 0xFF, address & 0xFF


class _Addressed:
    table_id: int
    device_id: int

    @property
    def address(self) -> int:
        return device_address(self.table_id, self.device_id)


# ── Dataclasses ───────────────────────────────────────────────────────────


@dataclass
class GatewayInformation:
    protocol_version: int = 0
    options: int = 0
    device_count: int = 0
    table_id: int = 0
    table_crc: int | None = None
    metadata_crc: int | None = None


@dataclass
class RvStatus:
    """Battery voltage and outside temperature reported by the gateway."""

    voltage: float | None = None  # Volts (8.8 fixed-point BE)
    temperature: float | None = None  # °C (8.8 fixed-point BE, signed)
    voltage_available: bool = False
    temperature_available: bool = False


@dataclass
class RelayStatus(_Addressed):
    table_id: int = 0
    device_id: int = 0
    is_on: bool = False
    status: int = 0
    dtc_code: int | None = None


@dataclass
class DeviceOnline(_Addressed):
    table_id: int = 0
    device_id: int = 0
    is_online: bool = False
    status: int = 0


@dataclass
class DeviceLock(_Addressed):
    table_id: int = 0
    device_id: int = 0
    is_locked: bool = False
    status: int = 0


@dataclass
class TankLevel(_Addressed):
    table_id: int = 0
    device_id: int = 0
    level: int | None = None  # 0-100 %


@dataclass
class DimmableLight(_Addressed):
    table_id: int = 0
    device_id: int = 0
    brightness: int = 0  # 0-100 %
    mode: int = 0  # 0=Off, >0 on
    raw_brightness: int = 0  # 0-255

    @property
    def is_on(self) -> bool:
        return self.mode > 0


@dataclass
class HvacZone(_Addressed):
    table_id: int = 0
    device_id: int = 0
    heat_mode: int = 0  # 0=Off,1=Heat,2=Cool,3=Both,4=Schedule
    heat_source: int = 0  # 0=Gas,1=HeatPump,2=Other
    fan_mode: int = 0  # 0=Auto,1=High,2=Low
    low_trip_f: int = 0  # Heating setpoint °F
    high_trip_f: int = 0  # Cooling setpoint °F
    zone_status: int = 0
    indoor_temp_f: float | None = None
    outdoor_temp_f: float | None = None
    failed_thermistor: bool = False
    dtc_code: int = 0


class CoverMotion(enum.Enum):
    OPENING = "opening"
    CLOSING = "closing"
    STOPPED = "stopped"
    UNKNOWN = "unknown"


@dataclass
class CoverStatus(_Addressed):
    table_id: int = 0
    device_id: int = 0
    status: int = 0  # 0xC0=stopped, 0xC2=opening, 0xC3=closing
    position: int | None = None  # 0-100 or None

    @property
    def motion(self) -> CoverMotion:
        return cover_motion(self.status)


@dataclass
class RealTimeClock:
    year: int = 2000
    month: int = 0
    day: int = 0
    hour: int = 0
    minute: int = 0
    second: int = 0


@dataclass
class GenericEvent:
    """Recognised event type without a dedicated decoder (RGB, generator, ...)."""

    event_type: int = 0
    payload: bytes = b""


@dataclass
class CommandResponse:
    """Gateway reply to a command we issued.

    ``command_type`` is known for untagged responses; for tagged (0x02)
    responses it is resolved by the caller from its pending-command map.
    ``payload`` starts at the device table id.
    """

    command_id: int = 0
    command_type: int | None = None
    response_type: int | None = None
    payload: bytes = b""

    @property
    def is_success(self) -> bool:
        return self.response_type in (None, RESPONSE_SUCCESS, RESPONSE_SUCCESS_COMPLETE)

    @property
    def is_complete(self) -> bool:
        return self.response_type in (RESPONSE_SUCCESS_COMPLETE, RESPONSE_FAILURE_COMPLETE)


@dataclass
class DeviceMetadata(_Addressed):
    table_id: int = 0
    device_id: int = 0
    function_name: int = 0
    function_instance: int = 0


@dataclass
class MetadataListing:
    table_id: int = 0
    start_id: int = 0
    count: int = 0
    entries: list[DeviceMetadata] = field(default_factory=list)


# ── Field helpers ─────────────────────────────────────────────────────────


def decode_unsigned_88(raw: int, sentinels: tuple[int, ...] = (0xFFFF,)) -> float | None:
    """Decode an unsigned 8.8 fixed-point value; sentinels map to None."""
    if raw in sentinels:
        return None
    return raw / 256.0


def decode_signed_88(raw: int, sentinels: tuple[int, ...]) -> float | None:
    """Decode a signed 8.8 fixed-point value; sentinels map to None."""
    if raw in sentinels:
        return None
    signed = raw - 0x10000 if raw & 0x8000 else raw
    return signed / 256.0


def cover_motion(status: int) -> CoverMotion:
    if status == COVER_OPENING:
        return CoverMotion.OPENING
    if status == COVER_CLOSING:
        return CoverMotion.CLOSING
    if status == COVER_STOPPED:
        return CoverMotion.STOPPED
    return CoverMotion.UNKNOWN


def _u16_be(data: bytes, offset: int) -> int:
    return (data[offset] << 8) | data[offset + 1]


# ── Parsers ───────────────────────────────────────────────────────────────


def parse_gateway_information(data: bytes) -> GatewayInformation | None:
    """Parse GatewayInformation (0x01); table CRCs need the 13-byte form."""
    if len(data) < 5:
        return None
    table_crc = metadata_crc = None
    if len(data) >= 13:
        table_crc, metadata_crc = struct.unpack_from(">II", data, 5)
    return GatewayInformation(
        protocol_version=data[1],
        options=data[2],
        device_count=data[3],
        table_id=data[4],
        table_crc=table_crc,
        metadata_crc=metadata_crc,
    )


def parse_rv_status(data: bytes) -> RvStatus | None:
    """``[0x07][voltage u8.8 BE][temperature s8.8 BE][flags]``."""
    if len(data) < 6:
        return None

    flags = data[5]
    return RvStatus(
        voltage=decode_unsigned_88(_u16_be(data, 1)),
        # 0x7FFF and 0xFFFF are "unavailable" sentinels
        temperature=decode_signed_88(_u16_be(data, 3), (0x7FFF, 0xFFFF)),
        voltage_available=bool(flags & 0x01),
        temperature_available=bool(flags & 0x02),
    )


def parse_relay_status(data: bytes) -> RelayStatus | None:
    if len(data) < 5:
        return None
    status_byte = data[3]
    dtc = None
    if len(data) >= 9:
        dtc = _u16_be(data, 5)
    return RelayStatus(
        table_id=data[1],
        device_id=data[2],
        is_on=(status_byte & 0x0F) == 0x01,
        status=status_byte,
        dtc_code=dtc if dtc else None,
    )


def parse_device_online(data: bytes) -> DeviceOnline | None:
    if len(data) < 5:
        return None
    return DeviceOnline(
        table_id=data[1],
        device_id=data[2],
        is_online=data[3] != 0xFF,
        status=data[3],
    )


def parse_device_lock(data: bytes) -> DeviceLock | None:
    if len(data) < 5:
        return None
    return DeviceLock(
        table_id=data[1],
        device_id=data[2],
        is_locked=bool(data[3] & 0x01),
        status=data[3],
    )


def parse_tank_status(data: bytes) -> list[TankLevel] | None:
    """Parse TankSensorStatus (0x0C): [0x0C][table]([devId][percent])*."""
    if len(data) < 4:
        return None
    table_id = data[1]
    tanks: list[TankLevel] = []
    idx = 2
    while idx + 1 < len(data):
        tanks.append(TankLevel(table_id=table_id, device_id=data[idx], level=data[idx + 1]))
        idx += 2
    return tanks


def parse_tank_status_v2(data: bytes) -> TankLevel | None:
    """Parse TankSensorStatusV2 (0x1B): single tank, 1- or 8-byte status."""
    if len(data) < 4:
        return None
    level = data[3] if len(data) in (4, 11) else None
    return TankLevel(table_id=data[1], device_id=data[2], level=level)


def parse_dimmable_light(data: bytes) -> DimmableLight | None:
    if len(data) < 5:
        return None
    raw = data[4]
    return DimmableLight(
        table_id=data[1],
        device_id=data[2],
        brightness=raw * 100 // 255,
        mode=data[3],
        raw_brightness=raw,
    )


def parse_hvac_status(data: bytes) -> list[HvacZone] | None:
    """Parse HvacStatus (0x0B): 11 bytes per zone after the table id."""
    BYTES_PER_DEVICE = 11
    if len(data) < 2 + BYTES_PER_DEVICE:
        return None
    table_id = data[1]
    zones: list[HvacZone] = []
    offset = 2
    while offset + BYTES_PER_DEVICE <= len(data):
        cmd = data[offset + 1]
        status = data[offset + 4]
        zones.append(
            HvacZone(
                table_id=table_id,
                device_id=data[offset],
                heat_mode=cmd & 0x07,
                heat_source=(cmd >> 4) & 0x03,
                fan_mode=(cmd >> 6) & 0x03,
                low_trip_f=data[offset + 2],
                high_trip_f=data[offset + 3],
                zone_status=status & 0x8F,
                indoor_temp_f=decode_signed_88(_u16_be(data, offset + 5), HVAC_TEMP_INVALID),
                outdoor_temp_f=decode_signed_88(_u16_be(data, offset + 7), HVAC_TEMP_INVALID),
                failed_thermistor=bool(status & 0x80),
                dtc_code=_u16_be(data, offset + 9),
            )
        )
        offset += BYTES_PER_DEVICE
    return zones


def parse_cover_status(data: bytes) -> CoverStatus | None:
    if len(data) < 4:
        return None
    # Position byte is optional
    pos = data[4] if len(data) > 4 else None
    return CoverStatus(
        table_id=data[1],
        device_id=data[2],
        status=data[3],
        position=pos if pos is not None and pos <= 100 else None,
    )


def parse_real_time_clock(data: bytes) -> RealTimeClock | None:
    if len(data) < 7:
        return None
    return RealTimeClock(
        year=2000 + data[1],
        month=data[2],
        day=data[3],
        hour=data[4],
        minute=data[5],
        second=data[6],
    )


def parse_generic(data: bytes) -> GenericEvent:
    return GenericEvent(event_type=data[0], payload=bytes(data[1:]))


def parse_device_command(data: bytes) -> CommandResponse | None:
    """Parse a tagged command response (0x02): [0x02][cmdId LE][respType][...]."""
    if len(data) < 4:
        return None
    return CommandResponse(
        command_id=data[1] | (data[2] << 8),
        response_type=data[3],
        payload=bytes(data[4:]),
    )


_EVENT_PARSERS: dict[int, Callable[[bytes], Any]] = {
    EVENT_GATEWAY_INFORMATION: parse_gateway_information,
    EVENT_DEVICE_COMMAND: parse_device_command,
    EVENT_DEVICE_ONLINE_STATUS: parse_device_online,
    EVENT_DEVICE_LOCK_STATUS: parse_device_lock,
    EVENT_RELAY_BASIC_LATCHING_1: parse_relay_status,
    EVENT_RELAY_BASIC_LATCHING_2: parse_relay_status,
    EVENT_RV_STATUS: parse_rv_status,
    EVENT_DIMMABLE_LIGHT: parse_dimmable_light,
    EVENT_RGB_LIGHT: parse_generic,
    EVENT_GENERATOR_GENIE: parse_generic,
    EVENT_HVAC_STATUS: parse_hvac_status,
    EVENT_TANK_SENSOR: parse_tank_status,
    EVENT_HBRIDGE_1: parse_cover_status,
    EVENT_HBRIDGE_2: parse_cover_status,
    EVENT_HOUR_METER: parse_generic,
    EVENT_LEVELER: parse_generic,
    EVENT_SESSION_STATUS: parse_generic,
    EVENT_TANK_SENSOR_V2: parse_tank_status_v2,
    EVENT_REAL_TIME_CLOCK: parse_real_time_clock,
}


def is_known_event_type(event_type: int) -> bool:
    return event_type in _EVENT_PARSERS


def parse_event(data: bytes):
    """Dispatch a decoded COBS frame to the parser for its event type.

    Returns a parsed dataclass (or a list for multi-record events), or
    ``None`` when the type is unknown or the frame is too short.
    """
    if not data:
        return None
    parser = _EVENT_PARSERS.get(data[0])
    if parser is None:
        return None
    return parser(data)


# ── Command responses ─────────────────────────────────────────────────────


def is_command_response(data: bytes) -> bool:
    """Classify an untagged frame as ``[cmdId u16 LE][cmdType]``.

    Only device-table (0x01) and metadata (0x02) listings are recognised.
    """
    if len(data) < 3:
        return False
    command_id = data[0] | (data[1] << 8)
    if not COMMAND_ID_MIN <= command_id <= COMMAND_ID_MAX:
        return False
    return data[2] in (CMD_GET_DEVICES, CMD_GET_DEVICES_METADATA)


def parse_command_response(data: bytes) -> CommandResponse | None:
    """Parse an untagged command response, or ``None`` if it does not classify."""
    if not is_command_response(data):
        return None
    return CommandResponse(
        command_id=data[0] | (data[1] << 8),
        command_type=data[2],
        payload=bytes(data[3:]),
    )


def looks_like_metadata(response: CommandResponse) -> bool:
    """True when the first listing entry is a full IDS-CAN metadata record."""
    payload = response.payload
    return (
        len(payload) >= 5
        and payload[3] == METADATA_PROTOCOL_IDS_CAN
        and payload[4] == METADATA_PAYLOAD_SIZE_FULL
    )


def parse_metadata_listing(response: CommandResponse) -> MetadataListing | None:
    """Parse a GetDevicesMetadata listing: [table][startId][count] entries...

    Each entry is ``[protocol][payloadSize][payload]``; only protocol 2 with
    a 17-byte payload carries a function name (BE u16) and instance byte.
    """
    payload = response.payload
    if len(payload) < 3:
        return None
    table_id, start_id, count = payload[0], payload[1], payload[2]
    listing = MetadataListing(table_id=table_id, start_id=start_id, count=count)

    offset = 3
    index = 0
    while index < count and offset + 2 <= len(payload):
        protocol = payload[offset]
        size = payload[offset + 1]
        if offset + 2 + size > len(payload):
            _LOGGER.debug(
                "Metadata entry %d overflows listing (need %d, have %d)",
                index, offset + 2 + size, len(payload),
            )
            break
        if protocol == METADATA_PROTOCOL_IDS_CAN and size == METADATA_PAYLOAD_SIZE_FULL:
            listing.entries.append(
                DeviceMetadata(
                    table_id=table_id,
                    device_id=(start_id + index) & 0xFF,
                    function_name=_u16_be(payload, offset + 2),
                    function_instance=payload[offset + 4],
                )
            )
        offset += 2 + size
        index += 1
    return listing


# ── Frame classification ──────────────────────────────────────────────────


def _classify_once(frame: bytes):
    if not frame:
        return None, False
    if is_known_event_type(frame[0]):
        return parse_event(frame), True
    response = parse_command_response(frame)
    if response is not None:
        return response, True
    return None, False


def classify_frame(frame: bytes, strip_header: bool = False, strict: bool = False):
    """Decode a frame into an event, event list or ``CommandResponse``.

    When *strip_header* is set and neither the event-type byte nor the
    command-response classifier recognise the frame, classification is
    retried once without the first two bytes.  Unrecognised or short frames
    return ``None``, or raise ``DecodeMiss`` when *strict* is set.
    """
    result, recognised = _classify_once(frame)
    if not recognised and strip_header and len(frame) > 2:
        _LOGGER.debug("Unrecognised frame %s, retrying without 2-byte header", frame.hex())
        result, recognised = _classify_once(frame[2:])

    if result is None and strict:
        if recognised:
            raise DecodeMiss(f"Frame too short for its type: {frame.hex()}")
        raise DecodeMiss(f"Unrecognised frame: {frame.hex()}")
    return result
