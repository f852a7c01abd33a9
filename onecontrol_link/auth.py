"""Gateway generation detection and the two unlock handshakes.

Modern gateways (DATA service, no CAN service) answer a 4-byte challenge
read from UNLOCK_STATUS; the key is written back big-endian and the gateway
then reports "Unlocked".  Legacy CAN gateways want the 6-digit PIN written
as ASCII, then a SEED/KEY exchange keyed by a 32-bit cypher, little-endian.

Every read and write is bounded by the configured timeouts; any transport
failure during the handshake is raised as ``AuthenticationFailure``.
"""

from __future__ import annotations

import abc
import asyncio
import enum
import logging

from .config import LinkConfig
from .const import (
    AUTH_STATUS_CHAR_UUID,
    CAN_READ_CHAR_UUID,
    CAN_SERVICE_UUID,
    CAN_WRITE_CHAR_UUID,
    DATA_READ_CHAR_UUID,
    DATA_SERVICE_UUID,
    DATA_WRITE_CHAR_UUID,
    KEY_CHAR_UUID,
    SEED_CHAR_UUID,
    UNLOCK_CHAR_UUID,
    UNLOCK_STATUS_CHAR_UUID,
    UNLOCKED_MARKER,
)
from .exceptions import AuthenticationFailure, TransportError
from .protocol.tea import calculate_challenge_key, calculate_seed_key
from .transport import GattTransport, call_with_timeout

_LOGGER = logging.getLogger(__name__)


class GatewayGeneration(enum.Enum):
    MODERN_DATA_SERVICE = "modern"
    LEGACY_CAN_SERVICE = "legacy"


def classify_generation(has_can_service: bool, has_data_service: bool) -> GatewayGeneration:
    """Modern only when the CAN service is absent and the DATA service present."""
    if not has_can_service and has_data_service:
        return GatewayGeneration.MODERN_DATA_SERVICE
    return GatewayGeneration.LEGACY_CAN_SERVICE


def detect_generation(transport: GattTransport) -> GatewayGeneration:
    generation = classify_generation(
        transport.service_exists(CAN_SERVICE_UUID),
        transport.service_exists(DATA_SERVICE_UUID),
    )
    _LOGGER.info("Gateway generation: %s", generation.value)
    return generation


def _is_unlocked(data: bytes) -> bool:
    return bytes(data) == UNLOCKED_MARKER


class Authenticator(abc.ABC):
    """Shared plumbing: bounded reads and writes on one transport."""

    generation: GatewayGeneration
    read_endpoint: str
    write_endpoint: str

    def __init__(self, transport: GattTransport, config: LinkConfig) -> None:
        self._transport = transport
        self._config = config

    async def _read(self, uuid: str) -> bytes:
        try:
            return await call_with_timeout(
                self._transport.read_endpoint(uuid), self._config.read_timeout, f"Read {uuid}"
            )
        except TransportError as exc:
            raise AuthenticationFailure(f"Read {uuid} failed: {exc}") from exc

    async def _write(self, uuid: str, data: bytes, require_ack: bool = False) -> None:
        try:
            await call_with_timeout(
                self._transport.write_endpoint(uuid, data, require_ack),
                self._config.write_timeout,
                f"Write {uuid}",
            )
        except TransportError as exc:
            raise AuthenticationFailure(f"Write {uuid} failed: {exc}") from exc

    async def _enable(self, uuid: str) -> None:
        """Subscribe to *uuid*; raises ``TransportError`` on failure."""
        await call_with_timeout(
            self._transport.enable_notifications(uuid),
            self._config.write_timeout,
            f"Subscribe {uuid}",
        )

    @abc.abstractmethod
    async def authenticate(self) -> None:
        """Unlock the gateway; raises ``AuthenticationFailure``."""

    @abc.abstractmethod
    async def subscribe(self) -> None:
        """Enable notifications on the data read endpoint."""


class ChallengeAuthenticator(Authenticator):
    """UNLOCK_STATUS challenge / KEY response for DATA-service gateways."""

    generation = GatewayGeneration.MODERN_DATA_SERVICE
    read_endpoint = DATA_READ_CHAR_UUID
    write_endpoint = DATA_WRITE_CHAR_UUID

    async def authenticate(self) -> None:
        _LOGGER.debug("Reading UNLOCK_STATUS")
        data = await self._read(UNLOCK_STATUS_CHAR_UUID)

        if _is_unlocked(data):
            _LOGGER.info("Gateway already unlocked")
            return

        if len(data) != 4:
            raise AuthenticationFailure(f"Unexpected challenge size {len(data)}")

        _LOGGER.debug("Challenge = %s", data.hex())
        key = calculate_challenge_key(data)
        _LOGGER.debug("Writing challenge key = %s", key.hex())
        await self._write(KEY_CHAR_UUID, key)

        await asyncio.sleep(self._config.unlock_verify_delay)
        verify = await self._read(UNLOCK_STATUS_CHAR_UUID)
        if _is_unlocked(verify):
            _LOGGER.info("Gateway unlocked")
        else:
            # Some firmware never reports the marker; carry on regardless.
            _LOGGER.warning("Unlock not confirmed (got %s), continuing", verify.hex())

    async def subscribe(self) -> None:
        """Enable DATA_READ, SEED and AUTH_STATUS notifications in that order."""
        try:
            await self._enable(DATA_READ_CHAR_UUID)
        except TransportError as exc:
            raise AuthenticationFailure(f"Failed to subscribe DATA_READ: {exc}") from exc
        _LOGGER.debug("Subscribed to DATA_READ")

        for uuid, name in ((SEED_CHAR_UUID, "SEED"), (AUTH_STATUS_CHAR_UUID, "AUTH_STATUS")):
            await asyncio.sleep(self._config.notify_delay)
            try:
                await self._enable(uuid)
                _LOGGER.debug("Subscribed to %s", name)
            except TransportError as exc:
                _LOGGER.warning("Failed to subscribe %s: %s", name, exc)


class PinSeedAuthenticator(Authenticator):
    """PIN unlock followed by SEED/KEY for CAN-service gateways."""

    generation = GatewayGeneration.LEGACY_CAN_SERVICE
    read_endpoint = CAN_READ_CHAR_UUID
    write_endpoint = CAN_WRITE_CHAR_UUID

    async def authenticate(self) -> None:
        status = await self._read(UNLOCK_CHAR_UUID)
        if not status:
            raise AuthenticationFailure("Empty unlock status")

        if status[0] == 0:
            _LOGGER.info("Gateway locked, writing PIN")
            await self._write(
                UNLOCK_CHAR_UUID, self._config.gateway_pin.encode("ascii"), require_ack=True
            )
            await asyncio.sleep(self._config.pin_unlock_delay)
            status = await self._read(UNLOCK_CHAR_UUID)
            if not status or status[0] == 0:
                raise AuthenticationFailure("Gateway still locked after PIN (wrong PIN?)")
            _LOGGER.info("PIN accepted")

        seed = await self._read(SEED_CHAR_UUID)
        if len(seed) != 4:
            raise AuthenticationFailure(f"Unexpected seed size {len(seed)}")

        _LOGGER.debug("Seed = %s", seed.hex())
        key = calculate_seed_key(seed, self._config.legacy_cypher)
        _LOGGER.debug("Writing seed key = %s", key.hex())
        await self._write(KEY_CHAR_UUID, key)
        _LOGGER.info("Seed key written, authentication complete")

    async def subscribe(self) -> None:
        try:
            await self._enable(CAN_READ_CHAR_UUID)
        except TransportError as exc:
            raise AuthenticationFailure(f"Failed to subscribe CAN_READ: {exc}") from exc
        _LOGGER.debug("Subscribed to CAN_READ")


def authenticator_for(
    generation: GatewayGeneration, transport: GattTransport, config: LinkConfig
) -> Authenticator:
    if generation is GatewayGeneration.MODERN_DATA_SERVICE:
        return ChallengeAuthenticator(transport, config)
    return PinSeedAuthenticator(transport, config)
