"""CRC8 used for OneControl COBS frames.

Table-driven, reflected polynomial 0x8C (Dallas/Maxim), initial value 0x55.
The gateway appends the CRC of the raw payload as the last byte before
COBS-encoding.
"""

from __future__ import annotations

CRC8_INIT = 0x55


def _build_table() -> tuple[int, ...]:
    table = []
    for i in range(256):
        crc = i
        for _ in range(8):
            crc = (crc >> 1) ^ 0x8C if crc & 0x01 else crc >> 1
        table.append(crc)
    return tuple(table)


_TABLE = _build_table()


def crc8_update(crc: int, b: int) -> int:
    """Fold a single byte into a running CRC."""
    return _TABLE[(crc ^ b) & 0xFF]


def crc8(data: bytes, init: int = CRC8_INIT) -> int:
    """Return the CRC8 of *data*."""
    crc = init & 0xFF
    for b in data:
        crc = _TABLE[(crc ^ b) & 0xFF]
    return crc
