"""TEA (Tiny Encryption Algorithm) variants for gateway authentication.

Both handshakes run the same 32-round schedule over a (seed, cypher) pair
and return the seed half; they differ only in their constants and byte
order, so the two are not interchangeable:
  Challenge transform (data-service gateways, UNLOCK_STATUS challenge):
      fixed cypher CHALLENGE_CYPHER, CHALLENGE_KEY_1..4, BIG-ENDIAN.
  Seed/key encrypt (CAN-service gateways, SEED characteristic):
      configurable cypher (default 0x8100080D), LEGACY_KEY_1..4,
      LITTLE-ENDIAN.
"""

from __future__ import annotations

import struct

from ..const import (
    CHALLENGE_CYPHER,
    CHALLENGE_KEY_1,
    CHALLENGE_KEY_2,
    CHALLENGE_KEY_3,
    CHALLENGE_KEY_4,
    DEFAULT_LEGACY_CYPHER,
    LEGACY_KEY_1,
    LEGACY_KEY_2,
    LEGACY_KEY_3,
    LEGACY_KEY_4,
    TEA_DELTA,
    TEA_ROUNDS,
)

MASK32 = 0xFFFFFFFF


def _tea_rounds(seed: int, cypher: int, keys: tuple[int, int, int, int]) -> int:
    k1, k2, k3, k4 = keys
    c = cypher & MASK32
    s = seed & MASK32
    delta = TEA_DELTA

    for _ in range(TEA_ROUNDS):
        s = (s + (((c << 4) + k1) ^ (c + delta) ^ ((c >> 5) + k2))) & MASK32
        c = (c + (((s << 4) + k3) ^ (s + delta) ^ ((s >> 5) + k4))) & MASK32
        delta = (delta + TEA_DELTA) & MASK32

    return s


def tea_challenge_transform(seed: int, cypher: int = CHALLENGE_CYPHER) -> int:
    """Run the 32-round challenge transform and return the seed half."""
    return _tea_rounds(
        seed, cypher, (CHALLENGE_KEY_1, CHALLENGE_KEY_2, CHALLENGE_KEY_3, CHALLENGE_KEY_4)
    )


def tea_encrypt(cypher: int, seed: int) -> int:
    """Encrypt a SEED value for CAN-service gateways.

    Only the low 32 bits of *cypher* take part.
    """
    return _tea_rounds(seed, cypher, (LEGACY_KEY_1, LEGACY_KEY_2, LEGACY_KEY_3, LEGACY_KEY_4))


# ── Key helpers ───────────────────────────────────────────────────────────


def calculate_challenge_key(challenge_bytes: bytes) -> bytes:
    """Compute the 4-byte BIG-ENDIAN key for an UNLOCK_STATUS challenge."""
    if len(challenge_bytes) != 4:
        raise ValueError(f"Challenge must be 4 bytes, got {len(challenge_bytes)}")

    seed = struct.unpack(">I", challenge_bytes)[0]
    return struct.pack(">I", tea_challenge_transform(seed))


def calculate_seed_key(seed_bytes: bytes, cypher: int = DEFAULT_LEGACY_CYPHER) -> bytes:
    """Compute the 4-byte LITTLE-ENDIAN key for a SEED read."""
    if len(seed_bytes) != 4:
        raise ValueError(f"Seed must be 4 bytes, got {len(seed_bytes)}")

    seed = struct.unpack("<I", seed_bytes)[0]
    return struct.pack("<I", tea_encrypt(cypher, seed))
