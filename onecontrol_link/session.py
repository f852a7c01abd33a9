"""Gateway session orchestrator.

One ``GatewaySession`` owns everything scoped to a single connection: the
command id counter, the COBS decoder, the device state tracker and the
pending-command map.  All of it is rebuilt on every ``start()`` and
discarded on ``stop()`` or transport disconnect.

Lifecycle::

    DISCONNECTED -> AWAITING_SERVICE_DISCOVERY -> DETECTING_GENERATION
      -> AUTHENTICATING -> SUBSCRIBING_NOTIFICATIONS -> WAKING_LINK -> LIVE

Inbound notifications go through a bounded queue drained by one
frame-assembly task; outbound commands are written directly by the caller.
"""

from __future__ import annotations

import asyncio
import dataclasses
import enum
import logging
import time
from typing import Any, Callable

from .auth import Authenticator, GatewayGeneration, authenticator_for, detect_generation
from .config import LinkConfig
from .const import CMD_GET_DEVICES, CMD_GET_DEVICES_METADATA, DATA_HEALTHY_WINDOW
from .dispatcher import Command, CommandDispatcher
from .exceptions import (
    AuthenticationFailure,
    CommandRejected,
    DecodeMiss,
    OneControlError,
    TransportError,
    TransportTimeout,
)
from .protocol.cobs import CobsByteDecoder, cobs_encode
from .protocol.commands import CommandBuilder
from .protocol.events import (
    CommandResponse,
    GatewayInformation,
    classify_frame,
    looks_like_metadata,
    parse_metadata_listing,
)
from .tracker import DeviceStateTracker, StateListener
from .transport import GattTransport, call_with_timeout

_LOGGER = logging.getLogger(__name__)

# Oldest pending entries are dropped past this size.
MAX_PENDING_COMMANDS = 256


class SessionState(enum.Enum):
    DISCONNECTED = "disconnected"
    AWAITING_SERVICE_DISCOVERY = "awaiting_service_discovery"
    DETECTING_GENERATION = "detecting_generation"
    AUTHENTICATING = "authenticating"
    SUBSCRIBING_NOTIFICATIONS = "subscribing_notifications"
    WAKING_LINK = "waking_link"
    LIVE = "live"


class GatewaySession:
    """Drive one authenticated link to a OneControl gateway.

    The caller connects *transport* first; the session never scans or
    connects by itself.  State updates reach *listener* (and any listener
    added later with ``add_listener``) through the tracker.
    """

    def __init__(
        self,
        transport: GattTransport,
        config: LinkConfig,
        listener: StateListener | None = None,
    ) -> None:
        self._transport = transport
        self._config = config
        self._state = SessionState.DISCONNECTED

        self._tracker = DeviceStateTracker()
        if listener is not None:
            self._tracker.add_listener(listener)

        self._generation: GatewayGeneration | None = None
        self._authenticator: Authenticator | None = None
        self._builder = CommandBuilder()
        self._decoder = CobsByteDecoder()
        self._dispatcher = self._make_dispatcher()
        self._queue: asyncio.Queue[bytes] | None = None
        self._resync = False

        self._pending: dict[int, int] = {}
        self._learned_table_id: int | None = None
        self._metadata_requested = False
        self._last_frame_time = 0.0

        self._frame_task: asyncio.Task | None = None
        self._heartbeat_task: asyncio.Task | None = None
        self._metadata_task: asyncio.Task | None = None
        self._stop_task: asyncio.Task | None = None

    async def __aenter__(self) -> GatewaySession:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def generation(self) -> GatewayGeneration | None:
        return self._generation

    @property
    def tracker(self) -> DeviceStateTracker:
        return self._tracker

    @property
    def authenticated(self) -> bool:
        return self._state in (SessionState.WAKING_LINK, SessionState.LIVE)

    @property
    def table_id(self) -> int:
        """Device table id learned from the gateway, else the configured fallback."""
        if self._learned_table_id:
            return self._learned_table_id
        return self._config.fallback_table_id

    @property
    def last_frame_age(self) -> float | None:
        """Seconds since the last decoded frame, or None if none yet."""
        if self._last_frame_time == 0.0:
            return None
        return time.monotonic() - self._last_frame_time

    @property
    def data_healthy(self) -> bool:
        age = self.last_frame_age
        return age is not None and age < DATA_HEALTHY_WINDOW

    @property
    def crc_errors(self) -> int:
        return self._decoder.crc_errors

    def add_listener(self, listener: StateListener) -> Callable[[], None]:
        """Register an output listener. Returns unsubscribe callable."""
        return self._tracker.add_listener(listener)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Run the handshake and bring the session to LIVE.

        Raises ``AuthenticationFailure`` (the session is then DISCONNECTED).
        """
        if self._state is not SessionState.DISCONNECTED:
            raise OneControlError(f"Session already running ({self._state.value})")

        self._reset_session()
        self._set_state(SessionState.AWAITING_SERVICE_DISCOVERY)
        self._transport.set_notification_handler(self._on_notification)
        self._transport.set_disconnect_handler(self._on_transport_disconnect)

        try:
            await asyncio.sleep(self._config.settle_delay)

            self._set_state(SessionState.DETECTING_GENERATION)
            try:
                self._generation = detect_generation(self._transport)
            except TransportError as exc:
                raise AuthenticationFailure(f"Service discovery failed: {exc}") from exc
            self._authenticator = authenticator_for(
                self._generation, self._transport, self._config
            )

            self._set_state(SessionState.AUTHENTICATING)
            await self._authenticator.authenticate()

            self._set_state(SessionState.SUBSCRIBING_NOTIFICATIONS)
            self._frame_task = asyncio.create_task(self._frame_loop())
            await self._authenticator.subscribe()

            self._set_state(SessionState.WAKING_LINK)
            await self._wake_link()

            self._set_state(SessionState.LIVE)
        except (Exception, asyncio.CancelledError) as exc:
            _LOGGER.error("Session start failed: %s", exc)
            await self._teardown()
            raise

    async def stop(self) -> None:
        """Tear the session down.  Safe to call more than once."""
        if self._state is SessionState.DISCONNECTED:
            return
        _LOGGER.info("Stopping session")
        await self._teardown()

    def _reset_session(self) -> None:
        self._builder = CommandBuilder()
        self._decoder = CobsByteDecoder()
        self._dispatcher = self._make_dispatcher()
        self._queue = asyncio.Queue(maxsize=self._config.notification_queue_size)
        self._resync = False
        self._tracker.clear()
        self._pending.clear()
        self._learned_table_id = None
        self._metadata_requested = False
        self._last_frame_time = 0.0

    async def _teardown(self) -> None:
        self._set_state(SessionState.DISCONNECTED)
        self._stop_heartbeat()

        current = asyncio.current_task()
        tasks = [
            task
            for task in (self._frame_task, self._metadata_task)
            if task is not None and task is not current and not task.done()
        ]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._frame_task = None
        self._metadata_task = None

        self._transport.set_notification_handler(None)
        self._transport.set_disconnect_handler(None)
        self._decoder.reset()
        self._queue = None
        self._pending.clear()
        self._tracker.clear()
        self._generation = None
        self._authenticator = None
        self._learned_table_id = None

    def _set_state(self, state: SessionState) -> None:
        if state is not self._state:
            _LOGGER.info("Session %s -> %s", self._state.value, state.value)
            self._state = state

    def _on_transport_disconnect(self) -> None:
        if self._state is SessionState.DISCONNECTED:
            return
        _LOGGER.warning("Transport disconnected, ending session")
        self._stop_task = asyncio.get_running_loop().create_task(self.stop())

    def _make_dispatcher(self) -> CommandDispatcher:
        return CommandDispatcher(
            self._builder,
            self._tracker,
            authorized=lambda: self._state is SessionState.LIVE,
            table_id=lambda: self.table_id,
        )

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def send_command(self, command: Command) -> int:
        """Validate, encode and write *command*.  Returns its command id.

        Raises ``CommandRejected`` or ``TransportError``.
        """
        raw = self._dispatcher.build(command)
        await self._send_raw(raw)
        return CommandBuilder.command_id(raw)

    async def request_metadata(self) -> None:
        """Ask the gateway for function names of every device in the table."""
        if not self.authenticated:
            raise CommandRejected("Session is not authenticated")
        await self._send_raw(self._builder.build_get_devices_metadata(self.table_id))
        _LOGGER.info("Sent GetDevicesMetadata for table %d", self.table_id)

    async def _send_raw(self, raw: bytes) -> None:
        if self._authenticator is None:
            raise CommandRejected("Session is not authenticated")
        command_id = CommandBuilder.command_id(raw)
        self._remember_pending(command_id, CommandBuilder.command_type(raw))
        _LOGGER.debug("TX command (%d bytes raw): %s", len(raw), raw.hex())
        try:
            await call_with_timeout(
                self._transport.write_endpoint(
                    self._authenticator.write_endpoint, cobs_encode(raw), False
                ),
                self._config.write_timeout,
                "Command write",
            )
        except TransportError:
            self._pending.pop(command_id, None)
            raise

    def _remember_pending(self, command_id: int, command_type: int) -> None:
        self._pending[command_id] = command_type
        while len(self._pending) > MAX_PENDING_COMMANDS:
            del self._pending[next(iter(self._pending))]

    async def _wake_link(self) -> None:
        try:
            await self._send_raw(self._builder.build_get_devices(self.table_id))
            _LOGGER.info("Sent GetDevices for table %d", self.table_id)
        except TransportError as exc:
            _LOGGER.warning("Wake-up GetDevices failed: %s", exc)
        self._start_heartbeat()

    # ------------------------------------------------------------------
    # Metadata request (after the first GatewayInformation)
    # ------------------------------------------------------------------

    async def _request_metadata_after_delay(self) -> None:
        try:
            await asyncio.sleep(self._config.metadata_delay)
            await self.request_metadata()
        except asyncio.CancelledError:
            pass
        except (CommandRejected, TransportError) as exc:
            _LOGGER.warning("Failed to send metadata request: %s", exc)

    # ------------------------------------------------------------------
    # Heartbeat keepalive (GetDevices every keepalive_interval)
    # ------------------------------------------------------------------

    def _start_heartbeat(self) -> None:
        if self._heartbeat_task is not None and not self._heartbeat_task.done():
            return
        self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())
        _LOGGER.info("Heartbeat started (every %.0fs)", self._config.keepalive_interval)

    def _stop_heartbeat(self) -> None:
        if self._heartbeat_task and not self._heartbeat_task.done():
            self._heartbeat_task.cancel()
            _LOGGER.debug("Heartbeat stopped")
        self._heartbeat_task = None

    async def _heartbeat_loop(self) -> None:
        """Send GetDevices periodically while authenticated; never restarts itself."""
        try:
            while self.authenticated:
                await asyncio.sleep(self._config.keepalive_interval)
                if not self.authenticated:
                    break
                try:
                    await self._send_raw(self._builder.build_get_devices(self.table_id))
                except TransportTimeout as exc:
                    _LOGGER.warning("Heartbeat write timed out: %s", exc)
                except (TransportError, CommandRejected) as exc:
                    _LOGGER.warning("Heartbeat write failed: %s", exc)
                    break
        except asyncio.CancelledError:
            pass
        _LOGGER.debug("Heartbeat loop exited")

    # ------------------------------------------------------------------
    # Notification path (bounded queue -> COBS decoder -> tracker)
    # ------------------------------------------------------------------

    def _on_notification(self, uuid: str, data: bytes) -> None:
        if self._authenticator is None or self._queue is None:
            return
        if uuid != self._authenticator.read_endpoint:
            _LOGGER.debug("Notification on %s ignored: %s", uuid, data.hex())
            return
        try:
            self._queue.put_nowait(bytes(data))
        except asyncio.QueueFull:
            # Bytes are lost; the decoder must restart at the next frame.
            _LOGGER.warning("Notification queue full, dropping backlog and resyncing")
            while not self._queue.empty():
                self._queue.get_nowait()
            self._resync = True

    async def _frame_loop(self) -> None:
        queue = self._queue
        if queue is None:
            return
        try:
            while True:
                data = await queue.get()
                if self._resync:
                    self._resync = False
                    self._decoder.reset()
                for byte_val in data:
                    frame = self._decoder.decode_byte(byte_val)
                    if frame is not None:
                        self._process_frame(frame)
        except asyncio.CancelledError:
            pass
        _LOGGER.debug("Frame loop exited")

    def _process_frame(self, frame: bytes) -> None:
        """Classify one decoded frame and fold it into the tracker."""
        self._last_frame_time = time.monotonic()
        strip = (
            self._generation is GatewayGeneration.MODERN_DATA_SERVICE
            and self._config.header_stripping
        )
        try:
            event = classify_frame(frame, strip_header=strip, strict=True)
        except DecodeMiss as exc:
            _LOGGER.debug("%s", exc)
            return

        _LOGGER.debug("RX %s (%d bytes)", type(event).__name__, len(frame))

        if isinstance(event, CommandResponse):
            event = self._on_command_response(event)
        elif isinstance(event, GatewayInformation):
            self._on_gateway_information(event)

        self._tracker.apply_event(event)
        self._tracker.publish_event(event)

    def _on_gateway_information(self, info: GatewayInformation) -> None:
        self._learn_table_id(info.table_id)
        if self.authenticated:
            self._start_heartbeat()
        if not self._metadata_requested:
            self._metadata_requested = True
            self._metadata_task = asyncio.create_task(self._request_metadata_after_delay())

    def _learn_table_id(self, table_id: int) -> None:
        if table_id and table_id != self._learned_table_id:
            _LOGGER.info("Device table id %d", table_id)
            self._learned_table_id = table_id

    def _on_command_response(self, response: CommandResponse) -> Any:
        """Resolve the command type and turn metadata listings into a listing."""
        command_type = response.command_type
        if command_type is None:
            command_type = self._pending.get(response.command_id)
            response = dataclasses.replace(response, command_type=command_type)
        if response.is_complete:
            self._pending.pop(response.command_id, None)

        if not response.is_success:
            _LOGGER.warning(
                "Command 0x%04X rejected by gateway (response 0x%02X)",
                response.command_id,
                response.response_type,
            )
            return response

        if command_type in (CMD_GET_DEVICES, CMD_GET_DEVICES_METADATA) and response.payload:
            self._learn_table_id(response.payload[0])

        if command_type == CMD_GET_DEVICES_METADATA or (
            command_type is None and looks_like_metadata(response)
        ):
            listing = parse_metadata_listing(response)
            if listing is not None:
                _LOGGER.debug(
                    "Metadata listing table %d: %d entries", listing.table_id, len(listing.entries)
                )
                return listing
        return response
