"""COBS framing with a trailing CRC8, as used on the gateway data link.

On the wire a frame is ``[0x00] blocks... [0x00]``.  Each block is a code
byte followed by literal bytes: the low six bits of the code give the
literal count (0-63) and every further multiple of 64 stands for one zero
byte following the literals, so short zero runs cost no extra bytes.  The
last content byte is the CRC8 of the payload.

  - ``CobsByteDecoder``  stateful, fed one byte at a time from notifications
  - ``cobs_encode``      builds a wire frame for a command
  - ``cobs_decode``      one-shot decode, raising ``FramingError``
"""

from __future__ import annotations

import logging

from ..exceptions import FramingError
from .crc8 import crc8

_LOGGER = logging.getLogger(__name__)

FRAME_CHAR = 0x00
MAX_DATA_BYTES = 63
FRAME_BYTE_COUNT_LSB = 64
MAX_COMPRESSED_FRAME_BYTES = 192
MAX_BUFFER = 382


class CobsByteDecoder:
    """Reassemble CRC-checked frames from a byte stream.

    ``decode_byte()`` returns the payload (CRC stripped) when a delimiter
    closes a good frame, otherwise ``None``.  Bad frames are dropped and
    counted in ``crc_errors`` / ``malformed_frames``; the decoder is always
    clean again after a delimiter.
    """

    def __init__(self, use_crc: bool = True) -> None:
        self._use_crc = use_crc
        self._frame = bytearray()
        self._code = 0
        self._overflow = False
        self.crc_errors = 0
        self.malformed_frames = 0

    @property
    def has_partial_data(self) -> bool:
        return self._code > 0 or bool(self._frame)

    def reset(self) -> None:
        self._frame.clear()
        self._code = 0
        self._overflow = False

    def _push(self, b: int) -> None:
        if len(self._frame) < MAX_BUFFER:
            self._frame.append(b)
        else:
            self._overflow = True

    def decode_byte(self, b: int) -> bytes | None:
        b &= 0xFF
        if b == FRAME_CHAR:
            return self._finish_frame()

        if self._code == 0:
            self._code = b
        else:
            self._code -= 1
            self._push(b)

        if self._code & MAX_DATA_BYTES == 0:
            # Literals exhausted: expand the zero run carried in the code byte
            for _ in range(self._code // FRAME_BYTE_COUNT_LSB):
                self._push(FRAME_CHAR)
            self._code = 0
        return None

    def _finish_frame(self) -> bytes | None:
        if self._code or self._overflow:
            self.malformed_frames += 1
            self.reset()
            return None

        frame = bytes(self._frame)
        self.reset()
        if len(frame) <= (1 if self._use_crc else 0):
            return None
        if not self._use_crc:
            return frame

        payload, received = frame[:-1], frame[-1]
        if crc8(payload) != received:
            self.crc_errors += 1
            _LOGGER.debug("CRC mismatch on %d-byte frame", len(payload))
            return None
        return payload


def cobs_encode(data: bytes, prepend_start: bool = True, use_crc: bool = True) -> bytes:
    """Frame *data* for the wire, appending its CRC8 when *use_crc* is set.

    An empty payload yields only the optional leading delimiter, with no
    terminator.
    """
    out = bytearray([FRAME_CHAR]) if prepend_start else bytearray()
    if not data:
        return bytes(out)

    content = bytes(data) + (bytes([crc8(data)]) if use_crc else b"")
    end = len(content)
    pos = 0
    while pos < end:
        start = pos
        while pos < end and content[pos] != FRAME_CHAR and pos - start < MAX_DATA_BYTES:
            pos += 1
        literals = content[start:pos]

        code = len(literals)
        while pos < end and content[pos] == FRAME_CHAR and code < MAX_COMPRESSED_FRAME_BYTES:
            code += FRAME_BYTE_COUNT_LSB
            pos += 1

        out.append(code)
        out += literals

    out.append(FRAME_CHAR)
    return bytes(out)


def cobs_decode(encoded: bytes, use_crc: bool = True) -> bytes:
    """Decode the first complete frame in *encoded*.

    Leading delimiters are skipped.  Raises ``FramingError`` when the data
    holds no terminated frame, the block structure is broken or the CRC does
    not match.
    """
    decoder = CobsByteDecoder(use_crc=use_crc)
    seen_payload = False
    for b in encoded:
        if b != FRAME_CHAR:
            seen_payload = True
        frame = decoder.decode_byte(b)
        if frame is not None:
            return frame
        if decoder.crc_errors:
            raise FramingError("CRC mismatch")
        if decoder.malformed_frames:
            raise FramingError("malformed COBS block")
        if b == FRAME_CHAR and seen_payload:
            raise FramingError("frame too short")
    if seen_payload:
        raise FramingError("unterminated frame")
    raise FramingError("empty frame")
