"""Tests for the two TEA parameterisations used by the handshakes."""

import struct

import pytest

from onecontrol_link.const import CHALLENGE_CYPHER, DEFAULT_LEGACY_CYPHER
from onecontrol_link.protocol.tea import (
    MASK32,
    calculate_challenge_key,
    calculate_seed_key,
    tea_challenge_transform,
    tea_encrypt,
)


class TestTeaEncrypt:
    """SEED/KEY transform for CAN-service gateways."""

    @pytest.mark.parametrize(
        ("seed", "expected"),
        [
            (0x78563412, 0xF02CB0F6),
            (0x12345678, 0xBCC8B06F),
            (0x04030201, 0x129D5AB2),
            (0x00000000, 0x0124652D),
        ],
    )
    def test_known_vectors(self, seed, expected):
        assert tea_encrypt(DEFAULT_LEGACY_CYPHER, seed) == expected

    def test_cypher_override_vector(self):
        assert tea_encrypt(0x11223344, 0x04030201) == 0x38F1F420

    def test_only_low_cypher_word_is_used(self):
        seed = 0x01020304
        assert tea_encrypt(0x1_8100080D, seed) == tea_encrypt(0x8100080D, seed)

    def test_stays_32bit(self):
        assert 0 <= tea_encrypt(0xFFFFFFFF, 0xFFFFFFFF) <= MASK32


class TestChallengeTransform:
    @pytest.mark.parametrize(
        ("seed", "expected"),
        [
            (0x01020304, 0xCA671D30),
            (0x00000000, 0x5590E205),
            (0xA1B2C3D4, 0x9259C8C9),
        ],
    )
    def test_known_vectors(self, seed, expected):
        assert tea_challenge_transform(seed) == expected

    def test_stays_32bit(self):
        assert 0 <= tea_challenge_transform(0xFFFFFFFF) <= MASK32

    def test_not_interchangeable_with_seed_encrypt(self):
        """Same cypher, different round constants."""
        seed = 0x01020304
        assert tea_challenge_transform(seed) != tea_encrypt(CHALLENGE_CYPHER, seed)


class TestChallengeKey:
    """Key for an UNLOCK_STATUS challenge: 4 bytes, big-endian."""

    def test_known_key_bytes(self):
        assert calculate_challenge_key(b"\x01\x02\x03\x04") == b"\xca\x67\x1d\x30"

    def test_all_zero_challenge(self):
        assert calculate_challenge_key(b"\x00\x00\x00\x00") == b"\x55\x90\xe2\x05"

    def test_big_endian(self):
        key = calculate_challenge_key(b"\x00\x00\x00\x01")
        assert struct.unpack(">I", key)[0] == tea_challenge_transform(1)

    def test_rejects_wrong_size(self):
        with pytest.raises(ValueError):
            calculate_challenge_key(b"\x01\x02")


class TestSeedKey:
    """Key for a SEED read: 4 bytes, little-endian."""

    def test_known_key_bytes(self):
        """Seed 0x12345678 read little-endian, key written little-endian."""
        assert calculate_seed_key(b"\x78\x56\x34\x12") == b"\x6f\xb0\xc8\xbc"

    def test_cypher_override(self):
        assert calculate_seed_key(b"\x01\x02\x03\x04", 0x11223344) == b"\x20\xf4\xf1\x38"

    def test_rejects_wrong_size(self):
        with pytest.raises(ValueError):
            calculate_seed_key(b"\x01\x02\x03\x04\x05")
