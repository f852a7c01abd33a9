"""Exceptions raised by the gateway link engine."""

from __future__ import annotations


class OneControlError(Exception):
    """Base exception for all gateway link errors."""


class FramingError(OneControlError):
    """A COBS frame failed its CRC or had a broken block structure.

    The frame is discarded; the session carries on.
    """


class DecodeMiss(OneControlError):
    """A frame was too short or of an unrecognised type.

    Not a fault: partial and unknown frames are expected on a live link.
    """


class AuthenticationFailure(OneControlError):
    """The gateway handshake failed (wrong PIN, bad challenge, unreachable endpoint)."""


class CommandRejected(OneControlError):
    """A command was refused before it reached the gateway."""


class TransportError(OneControlError):
    """A read, write or subscribe on the GATT transport failed."""


class TransportTimeout(TransportError):
    """A transport operation exceeded its time bound."""
