"""Shared test fixtures: an in-memory GATT transport and a fast config."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from onecontrol_link.config import LinkConfig
from onecontrol_link.const import (
    CAN_SERVICE_UUID,
    DATA_SERVICE_UUID,
    SEED_CHAR_UUID,
    UNLOCK_CHAR_UUID,
    UNLOCK_STATUS_CHAR_UUID,
)
from onecontrol_link.exceptions import TransportError
from onecontrol_link.protocol.cobs import cobs_decode
from onecontrol_link.tracker import StateListener
from onecontrol_link.transport import GattTransport

TEST_ADDRESS = "AA:BB:CC:DD:EE:FF"


class FakeTransport(GattTransport):
    """Scripted ``GattTransport``.

    ``reads`` maps an endpoint to the values returned by successive reads;
    the last value repeats once the list is down to one.
    """

    def __init__(self, services: set[str], reads: dict[str, list[bytes]]) -> None:
        super().__init__()
        self.services = set(services)
        self.reads = {uuid: list(values) for uuid, values in reads.items()}
        self.writes: list[tuple[str, bytes, bool]] = []
        self.subscribed: list[str] = []
        self.fail_subscribe: set[str] = set()
        self.hang_reads: set[str] = set()
        self.fail_writes = False

    def service_exists(self, uuid: str) -> bool:
        return uuid in self.services

    async def read_endpoint(self, uuid: str) -> bytes:
        if uuid in self.hang_reads:
            await asyncio.Event().wait()
        values = self.reads.get(uuid)
        if not values:
            raise TransportError(f"No fake value for {uuid}")
        return values.pop(0) if len(values) > 1 else values[0]

    async def write_endpoint(self, uuid: str, data: bytes, require_ack: bool = False) -> None:
        if self.fail_writes:
            raise TransportError("write refused")
        self.writes.append((uuid, bytes(data), require_ack))

    async def enable_notifications(self, uuid: str) -> None:
        if uuid in self.fail_subscribe:
            raise TransportError(f"subscribe {uuid} refused")
        self.subscribed.append(uuid)

    # Test hooks

    def notify(self, uuid: str, data: bytes) -> None:
        self._deliver(uuid, data)

    def drop_link(self) -> None:
        self._disconnected()

    def commands_to(self, uuid: str) -> list[bytes]:
        """Decoded command payloads written to *uuid*."""
        return [cobs_decode(data) for target, data, _ in self.writes if target == uuid]


class RecordingListener(StateListener):
    def __init__(self) -> None:
        self.discovered: list[tuple[Any, Any, Any]] = []
        self.changed: list[tuple[Any, Any, Any]] = []
        self.events: list[Any] = []

    def on_device_discovered(self, key, kind, state) -> None:
        self.discovered.append((key, kind, state))

    def on_state_changed(self, key, kind, state) -> None:
        self.changed.append((key, kind, state))

    def on_event(self, event) -> None:
        self.events.append(event)


async def drain(rounds: int = 10) -> None:
    """Let queued callbacks and the frame loop run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def fast_config() -> LinkConfig:
    return LinkConfig(
        address=TEST_ADDRESS,
        settle_delay=0.0,
        keepalive_interval=60.0,
        read_timeout=0.2,
        write_timeout=0.2,
        notify_delay=0.0,
        unlock_verify_delay=0.0,
        pin_unlock_delay=0.0,
        metadata_delay=0.0,
    )


@pytest.fixture
def legacy_transport() -> FakeTransport:
    """CAN-service gateway, locked until the PIN is written."""
    return FakeTransport(
        services={CAN_SERVICE_UUID},
        reads={
            UNLOCK_CHAR_UUID: [b"\x00", b"\x01"],
            SEED_CHAR_UUID: [b"\x12\x34\x56\x78"],
        },
    )


@pytest.fixture
def modern_transport() -> FakeTransport:
    """DATA-service gateway presenting a challenge, then "Unlocked"."""
    return FakeTransport(
        services={DATA_SERVICE_UUID},
        reads={UNLOCK_STATUS_CHAR_UUID: [b"\x01\x02\x03\x04", b"Unlocked"]},
    )


@pytest.fixture
def listener() -> RecordingListener:
    return RecordingListener()
