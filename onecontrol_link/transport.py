"""GATT transport interface and its bleak implementation.

The link engine never scans, connects or bonds by itself; it talks to a
``GattTransport`` that the caller has already connected.  ``BleakGattTransport``
is the stock adapter built on bleak and bleak-retry-connector.
"""

from __future__ import annotations

import abc
import asyncio
import logging
from typing import TYPE_CHECKING, Awaitable, Callable, TypeVar

from bleak import BleakClient, BleakScanner
from bleak.exc import BleakError
from bleak_retry_connector import BleakClientWithServiceCache, establish_connection

from .exceptions import TransportError, TransportTimeout

if TYPE_CHECKING:
    from bleak.backends.characteristic import BleakGATTCharacteristic
    from bleak.backends.device import BLEDevice

_LOGGER = logging.getLogger(__name__)

_T = TypeVar("_T")

NotificationHandler = Callable[[str, bytes], None]
DisconnectHandler = Callable[[], None]


async def call_with_timeout(operation: Awaitable[_T], timeout: float, what: str) -> _T:
    """Await *operation*, converting an expired bound into ``TransportTimeout``."""
    try:
        return await asyncio.wait_for(operation, timeout=timeout)
    except asyncio.TimeoutError as exc:
        raise TransportTimeout(f"{what} timed out after {timeout}s") from exc


class GattTransport(abc.ABC):
    """Endpoint-level operations the link engine needs from a BLE stack.

    Endpoints are characteristic UUID strings.  Implementations raise
    ``TransportError`` on failure and deliver notifications by calling the
    registered handler with ``(uuid, data)``.
    """

    def __init__(self) -> None:
        self._notification_handler: NotificationHandler | None = None
        self._disconnect_handler: DisconnectHandler | None = None

    def set_notification_handler(self, handler: NotificationHandler | None) -> None:
        self._notification_handler = handler

    def set_disconnect_handler(self, handler: DisconnectHandler | None) -> None:
        self._disconnect_handler = handler

    def _deliver(self, uuid: str, data: bytes) -> None:
        if self._notification_handler is not None:
            self._notification_handler(uuid, data)

    def _disconnected(self) -> None:
        if self._disconnect_handler is not None:
            self._disconnect_handler()

    @abc.abstractmethod
    def service_exists(self, uuid: str) -> bool:
        """Return True if the connected peer exposes service *uuid*."""

    @abc.abstractmethod
    async def read_endpoint(self, uuid: str) -> bytes:
        """Read characteristic *uuid*."""

    @abc.abstractmethod
    async def write_endpoint(self, uuid: str, data: bytes, require_ack: bool = False) -> None:
        """Write *data* to characteristic *uuid*."""

    @abc.abstractmethod
    async def enable_notifications(self, uuid: str) -> None:
        """Subscribe to notifications on characteristic *uuid*."""


class BleakGattTransport(GattTransport):
    """``GattTransport`` over a bleak client.

    Features:
    - Retrying connect with bleak-retry-connector and a GATT service cache
    - Backend errors surfaced as ``TransportError``
    - Disconnects forwarded to the registered disconnect handler
    """

    def __init__(
        self,
        address: str,
        ble_device: BLEDevice | None = None,
        timeout: float = 20.0,
        max_attempts: int = 3,
    ) -> None:
        super().__init__()
        self.address = address
        self.ble_device = ble_device
        self.timeout = timeout
        self.max_attempts = max_attempts
        self._client: BleakClient | None = None

    @property
    def is_connected(self) -> bool:
        return self._client is not None and self._client.is_connected

    async def connect(self) -> None:
        """Connect to the gateway.  Raises ``TransportError`` on failure."""
        if self.is_connected:
            return

        device = self.ble_device
        if device is None:
            device = await BleakScanner.find_device_by_address(self.address, timeout=self.timeout)
            if device is None:
                raise TransportError(f"Gateway {self.address} not found during scan")

        _LOGGER.info("Connecting to OneControl gateway %s", self.address)
        try:
            self._client = await establish_connection(
                client_class=BleakClientWithServiceCache,
                device=device,
                name=device.name or self.address,
                disconnected_callback=self._on_disconnect,
                max_attempts=self.max_attempts,
            )
        except (BleakError, asyncio.TimeoutError) as exc:
            raise TransportError(f"Failed to connect to {self.address}: {exc}") from exc
        _LOGGER.info("Connected to %s", self.address)

    async def disconnect(self) -> None:
        client, self._client = self._client, None
        if client is None:
            return
        try:
            await client.disconnect()
        except BleakError as exc:
            _LOGGER.warning("Error during disconnect: %s", exc)

    def _on_disconnect(self, client: BleakClient) -> None:
        _LOGGER.warning("OneControl %s disconnected", self.address)
        self._client = None
        self._disconnected()

    def _require_client(self) -> BleakClient:
        if self._client is None:
            raise TransportError("Not connected to gateway")
        return self._client

    def service_exists(self, uuid: str) -> bool:
        client = self._require_client()
        return client.services.get_service(uuid) is not None

    async def read_endpoint(self, uuid: str) -> bytes:
        client = self._require_client()
        try:
            return bytes(await client.read_gatt_char(uuid))
        except BleakError as exc:
            raise TransportError(f"Read {uuid} failed: {exc}") from exc

    async def write_endpoint(self, uuid: str, data: bytes, require_ack: bool = False) -> None:
        client = self._require_client()
        try:
            await client.write_gatt_char(uuid, data, response=require_ack)
        except BleakError as exc:
            raise TransportError(f"Write {uuid} failed: {exc}") from exc

    async def enable_notifications(self, uuid: str) -> None:
        client = self._require_client()

        def _callback(characteristic: BleakGATTCharacteristic, data: bytearray) -> None:
            self._deliver(uuid, bytes(data))

        try:
            await client.start_notify(uuid, _callback)
        except BleakError as exc:
            raise TransportError(f"Subscribe {uuid} failed: {exc}") from exc
