"""Tests for configuration validation."""

import pytest
import voluptuous as vol

from onecontrol_link.config import LinkConfig
from onecontrol_link.const import DEFAULT_LEGACY_CYPHER


class TestLinkConfig:
    def test_defaults(self):
        config = LinkConfig.from_dict({"address": "aa:bb:cc:dd:ee:ff"})
        assert config.address == "AA:BB:CC:DD:EE:FF"
        assert config.gateway_pin == "090336"
        assert config.legacy_cypher == DEFAULT_LEGACY_CYPHER
        assert config.keepalive_interval == 5.0
        assert config.read_timeout == 10.0
        assert config.write_timeout == 5.0
        assert config.fallback_table_id == 1
        assert config.header_stripping is True

    def test_overrides(self):
        config = LinkConfig.from_dict(
            {"address": "AA:BB:CC:DD:EE:FF", "gateway_pin": "123456", "settle_delay": "2"}
        )
        assert config.gateway_pin == "123456"
        assert config.settle_delay == 2.0

    @pytest.mark.parametrize(
        "extra",
        [
            {"gateway_pin": "12345"},
            {"gateway_pin": "abcdef"},
            {"notify_delay": 0.05},
            {"keepalive_interval": 0},
            {"fallback_table_id": 0},
            {"unknown": 1},
        ],
    )
    def test_invalid(self, extra):
        with pytest.raises(vol.Invalid):
            LinkConfig.from_dict({"address": "AA:BB:CC:DD:EE:FF", **extra})

    def test_bad_address(self):
        with pytest.raises(vol.Invalid):
            LinkConfig.from_dict({"address": "not-an-address"})

    def test_missing_address(self):
        with pytest.raises(vol.Invalid):
            LinkConfig.from_dict({})

    def test_as_dict_redacts_pin(self):
        data = LinkConfig(address="AA:BB:CC:DD:EE:FF").as_dict()
        assert data["gateway_pin"] == "**REDACTED**"
        assert data["address"] == "AA:BB:CC:DD:EE:FF"
