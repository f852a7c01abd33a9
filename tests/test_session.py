"""Tests for the session orchestrator against an in-memory transport."""

import asyncio
import dataclasses
import logging

import pytest
from conftest import FakeTransport, drain

from onecontrol_link.auth import GatewayGeneration
from onecontrol_link.const import (
    CAN_READ_CHAR_UUID,
    CAN_SERVICE_UUID,
    CAN_WRITE_CHAR_UUID,
    DATA_READ_CHAR_UUID,
    DATA_WRITE_CHAR_UUID,
    SEED_CHAR_UUID,
    UNLOCK_CHAR_UUID,
)
from onecontrol_link.dispatcher import SwitchCommand
from onecontrol_link.exceptions import AuthenticationFailure, CommandRejected
from onecontrol_link.protocol.cobs import cobs_encode
from onecontrol_link.protocol.events import CommandResponse
from onecontrol_link.session import GatewaySession, SessionState
from onecontrol_link.tracker import StateKind, SwitchState

RELAY_ON_0103 = b"\x05\x01\x03\x01\x00"
DIMMABLE_0809 = bytes([0x08, 0x08, 0x09, 0x01, 0x80])


def _get_devices(commands: list[bytes]) -> list[bytes]:
    return [c for c in commands if c[2] == 0x01]


class TestLegacySession:
    @pytest.mark.asyncio
    async def test_relay_scenario(self, legacy_transport, fast_config, listener):
        """PIN unlock, SEED/KEY, then one relay frame: one discovery, one update."""
        session = GatewaySession(legacy_transport, fast_config, listener)
        await session.start()
        assert session.state is SessionState.LIVE
        assert session.generation is GatewayGeneration.LEGACY_CAN_SERVICE
        assert legacy_transport.subscribed == [CAN_READ_CHAR_UUID]
        assert legacy_transport.commands_to(CAN_WRITE_CHAR_UUID) == [b"\x01\x00\x01\x01\x00\xff"]

        legacy_transport.notify(CAN_READ_CHAR_UUID, cobs_encode(RELAY_ON_0103))
        await drain()

        expected = (0x0103, StateKind.SWITCH, SwitchState(is_on=True))
        assert listener.discovered == [expected]
        assert listener.changed == [expected]
        await session.stop()

    @pytest.mark.asyncio
    async def test_frame_split_across_notifications(self, legacy_transport, fast_config, listener):
        session = GatewaySession(legacy_transport, fast_config, listener)
        await session.start()
        encoded = cobs_encode(RELAY_ON_0103)
        legacy_transport.notify(CAN_READ_CHAR_UUID, encoded[:3])
        legacy_transport.notify(CAN_READ_CHAR_UUID, encoded[3:])
        await drain()
        assert len(listener.discovered) == 1
        await session.stop()

    @pytest.mark.asyncio
    async def test_other_endpoints_ignored(self, legacy_transport, fast_config, listener):
        session = GatewaySession(legacy_transport, fast_config, listener)
        await session.start()
        legacy_transport.notify(SEED_CHAR_UUID, cobs_encode(RELAY_ON_0103))
        await drain()
        assert listener.discovered == []
        await session.stop()

    @pytest.mark.asyncio
    async def test_wrong_pin_ends_disconnected(self, fast_config):
        transport = FakeTransport({CAN_SERVICE_UUID}, {UNLOCK_CHAR_UUID: [b"\x00"]})
        session = GatewaySession(transport, fast_config)
        with pytest.raises(AuthenticationFailure):
            await session.start()
        assert session.state is SessionState.DISCONNECTED
        assert not session.authenticated

    @pytest.mark.asyncio
    async def test_restart_discards_session_state(self, legacy_transport, fast_config, listener):
        session = GatewaySession(legacy_transport, fast_config, listener)
        await session.start()
        legacy_transport.notify(CAN_READ_CHAR_UUID, cobs_encode(RELAY_ON_0103))
        await drain()
        await session.stop()
        assert len(session.tracker) == 0

        legacy_transport.writes.clear()
        await session.start()
        # Command ids restart at 1
        assert legacy_transport.commands_to(CAN_WRITE_CHAR_UUID)[0][:2] == b"\x01\x00"
        legacy_transport.notify(CAN_READ_CHAR_UUID, cobs_encode(RELAY_ON_0103))
        await drain()
        assert len(listener.discovered) == 2
        await session.stop()


class TestModernSession:
    @pytest.mark.asyncio
    async def test_wakes_link_on_data_write(self, modern_transport, fast_config):
        session = GatewaySession(modern_transport, fast_config)
        await session.start()
        assert session.generation is GatewayGeneration.MODERN_DATA_SERVICE
        assert modern_transport.commands_to(DATA_WRITE_CHAR_UUID) == [b"\x01\x00\x01\x01\x00\xff"]
        await session.stop()

    @pytest.mark.asyncio
    async def test_header_stripping(self, modern_transport, fast_config, listener):
        session = GatewaySession(modern_transport, fast_config, listener)
        await session.start()
        modern_transport.notify(DATA_READ_CHAR_UUID, cobs_encode(b"\xaa\xbb" + DIMMABLE_0809))
        await drain()
        assert session.tracker.get(0x0809, StateKind.DIMMABLE_LIGHT).brightness == 50
        await session.stop()

    @pytest.mark.asyncio
    async def test_header_stripping_disabled(self, modern_transport, fast_config, listener):
        config = dataclasses.replace(fast_config, header_stripping=False)
        session = GatewaySession(modern_transport, config, listener)
        await session.start()
        modern_transport.notify(DATA_READ_CHAR_UUID, cobs_encode(b"\xaa\xbb" + DIMMABLE_0809))
        await drain()
        assert listener.discovered == []
        await session.stop()

    @pytest.mark.asyncio
    async def test_gateway_info_learns_table_and_requests_metadata(
        self, modern_transport, fast_config, listener
    ):
        session = GatewaySession(modern_transport, fast_config, listener)
        await session.start()
        modern_transport.notify(DATA_READ_CHAR_UUID, cobs_encode(b"\x01\x05\x00\x02\x03"))
        await drain()
        await asyncio.sleep(0.02)
        assert session.table_id == 3

        commands = modern_transport.commands_to(DATA_WRITE_CHAR_UUID)
        assert commands[-1] == b"\x02\x00\x02\x03\x00\xff"

        entry = b"\x02\x11" + b"\x00\x21\x03" + bytes(14)
        response = b"\x02\x02\x00\x81" + b"\x03\x00\x01" + entry
        modern_transport.notify(DATA_READ_CHAR_UUID, cobs_encode(response))
        await drain()
        metadata = session.tracker.get(0x0300, StateKind.METADATA)
        assert (metadata.function_name, metadata.function_instance) == (0x21, 3)
        await session.stop()


class TestCommands:
    @pytest.mark.asyncio
    async def test_rejected_before_start(self, legacy_transport, fast_config):
        session = GatewaySession(legacy_transport, fast_config)
        with pytest.raises(CommandRejected):
            await session.send_command(SwitchCommand(table_id=1, device_id=3, turn_on=True))

    @pytest.mark.asyncio
    async def test_send_and_resolve_response(self, legacy_transport, fast_config, listener):
        session = GatewaySession(legacy_transport, fast_config, listener)
        await session.start()
        command_id = await session.send_command(
            SwitchCommand(table_id=0, device_id=3, turn_on=True)
        )
        assert command_id == 2
        assert legacy_transport.commands_to(CAN_WRITE_CHAR_UUID)[-1] == (
            b"\x02\x00\x40\x01\x01\x03"
        )

        legacy_transport.notify(CAN_READ_CHAR_UUID, cobs_encode(b"\x02\x02\x00\x81"))
        await drain()
        responses = [e for e in listener.events if isinstance(e, CommandResponse)]
        assert responses[-1].command_type == 0x40
        assert responses[-1].is_complete
        await session.stop()

    @pytest.mark.asyncio
    async def test_untagged_listing_learns_table(self, legacy_transport, fast_config):
        session = GatewaySession(legacy_transport, fast_config)
        await session.start()
        legacy_transport.notify(CAN_READ_CHAR_UUID, cobs_encode(b"\x30\x00\x01\x05\x00\x00"))
        await drain()
        assert session.table_id == 5
        await session.stop()


class TestKeepAlive:
    @pytest.mark.asyncio
    async def test_sends_get_devices_periodically(self, legacy_transport, fast_config):
        config = dataclasses.replace(fast_config, keepalive_interval=0.01)
        session = GatewaySession(legacy_transport, config)
        await session.start()
        await asyncio.sleep(0.08)
        sent = len(_get_devices(legacy_transport.commands_to(CAN_WRITE_CHAR_UUID)))
        assert sent >= 3

        await session.stop()
        await asyncio.sleep(0.05)
        after = len(_get_devices(legacy_transport.commands_to(CAN_WRITE_CHAR_UUID)))
        assert after == sent

    @pytest.mark.asyncio
    async def test_write_failure_stops_loop(self, legacy_transport, fast_config, caplog):
        config = dataclasses.replace(fast_config, keepalive_interval=0.01)
        session = GatewaySession(legacy_transport, config)
        await session.start()
        legacy_transport.fail_writes = True
        with caplog.at_level(logging.WARNING):
            await asyncio.sleep(0.05)
        assert "Heartbeat write failed" in caplog.text
        assert caplog.text.count("Heartbeat write failed") == 1
        await session.stop()


class TestTeardown:
    @pytest.mark.asyncio
    async def test_transport_disconnect_forces_disconnected(
        self, legacy_transport, fast_config, listener
    ):
        session = GatewaySession(legacy_transport, fast_config, listener)
        await session.start()
        legacy_transport.notify(CAN_READ_CHAR_UUID, cobs_encode(RELAY_ON_0103))
        await drain()

        legacy_transport.drop_link()
        await drain()
        assert session.state is SessionState.DISCONNECTED
        assert len(session.tracker) == 0

        legacy_transport.notify(CAN_READ_CHAR_UUID, cobs_encode(RELAY_ON_0103))
        await drain()
        assert len(listener.discovered) == 1

    @pytest.mark.asyncio
    async def test_context_manager(self, legacy_transport, fast_config):
        async with GatewaySession(legacy_transport, fast_config) as session:
            assert session.authenticated
        assert session.state is SessionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self, legacy_transport, fast_config):
        session = GatewaySession(legacy_transport, fast_config)
        await session.start()
        await session.stop()
        await session.stop()
        assert session.state is SessionState.DISCONNECTED


class TestNotificationPath:
    @pytest.mark.asyncio
    async def test_queue_overflow_resyncs(self, legacy_transport, fast_config, listener, caplog):
        config = dataclasses.replace(fast_config, notification_queue_size=1)
        session = GatewaySession(legacy_transport, config, listener)
        await session.start()

        encoded = cobs_encode(RELAY_ON_0103)
        with caplog.at_level(logging.WARNING):
            legacy_transport.notify(CAN_READ_CHAR_UUID, encoded[:4])
            legacy_transport.notify(CAN_READ_CHAR_UUID, encoded[4:])
        assert "queue full" in caplog.text

        legacy_transport.notify(CAN_READ_CHAR_UUID, encoded)
        await drain()
        assert len(listener.discovered) == 1
        await session.stop()

    @pytest.mark.asyncio
    async def test_data_freshness(self, legacy_transport, fast_config):
        session = GatewaySession(legacy_transport, fast_config)
        await session.start()
        assert session.last_frame_age is None
        assert not session.data_healthy

        legacy_transport.notify(CAN_READ_CHAR_UUID, cobs_encode(RELAY_ON_0103))
        await drain()
        assert session.data_healthy
        assert session.last_frame_age < 1.0
        await session.stop()

    @pytest.mark.asyncio
    async def test_garbage_does_not_end_session(self, legacy_transport, fast_config, listener):
        session = GatewaySession(legacy_transport, fast_config, listener)
        await session.start()
        legacy_transport.notify(CAN_READ_CHAR_UUID, b"\x00\x05\x01\x02\x00")
        legacy_transport.notify(CAN_READ_CHAR_UUID, cobs_encode(b"\xee\xee\xee"))
        legacy_transport.notify(CAN_READ_CHAR_UUID, cobs_encode(RELAY_ON_0103))
        await drain()
        assert session.state is SessionState.LIVE
        assert len(listener.discovered) == 1
        await session.stop()
