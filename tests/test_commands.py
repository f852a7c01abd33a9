"""Tests for the MyRvLink command builder."""

import pytest

from onecontrol_link.protocol.commands import CommandBuilder


class TestCommandIds:
    def test_starts_at_one(self):
        assert CommandBuilder().next_id() == 1

    def test_wraps_after_fffe_never_zero(self):
        builder = CommandBuilder(first_id=0xFFFD)
        assert [builder.next_id() for _ in range(4)] == [0xFFFD, 0xFFFE, 1, 2]

    def test_rejects_invalid_first_id(self):
        with pytest.raises(ValueError):
            CommandBuilder(first_id=0)
        with pytest.raises(ValueError):
            CommandBuilder(first_id=0xFFFF)

    def test_each_command_consumes_an_id(self):
        builder = CommandBuilder()
        first = builder.build_get_devices(1)
        second = builder.build_action_switch(1, True, [3])
        assert CommandBuilder.command_id(first) == 1
        assert CommandBuilder.command_id(second) == 2

    def test_id_is_little_endian(self):
        raw = CommandBuilder(first_id=0x1234).build_get_devices(1)
        assert raw[:2] == b"\x34\x12"


class TestCommandLayouts:
    def test_get_devices(self):
        assert CommandBuilder().build_get_devices(3) == b"\x01\x00\x01\x03\x00\xff"

    def test_get_devices_metadata(self):
        raw = CommandBuilder().build_get_devices_metadata(3)
        assert raw == b"\x01\x00\x02\x03\x00\xff"
        assert CommandBuilder.command_type(raw) == 0x02

    def test_switch_bulk(self):
        raw = CommandBuilder().build_action_switch(1, True, [3, 4])
        assert raw == b"\x01\x00\x40\x01\x01\x03\x04"

    def test_switch_off(self):
        assert CommandBuilder().build_action_switch(1, False, [3])[4] == 0x00

    def test_switch_needs_device(self):
        with pytest.raises(ValueError):
            CommandBuilder().build_action_switch(1, True, [])

    def test_hbridge(self):
        assert CommandBuilder().build_action_hbridge(1, 4, 0x02) == b"\x01\x00\x41\x01\x04\x02"

    def test_dimmable(self):
        raw = CommandBuilder().build_action_dimmable(1, 2, 0x01, 128)
        assert raw == b"\x01\x00\x43\x01\x02\x01\x80\x00"

    def test_dimmable_clamps_brightness(self):
        assert CommandBuilder().build_action_dimmable(1, 2, 0x01, 300)[6] == 0xFF

    def test_hvac_packing(self):
        raw = CommandBuilder().build_action_hvac(1, 2, 3, 1, 2, 65, 78)
        assert raw == b"\x01\x00\x45\x01\x02\x93\x41\x4e"
