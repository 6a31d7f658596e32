"""
Deterministic per-node seeds.

The seed is advisory: it is forwarded to providers that accept one, and
generation does not have to be reproducible when a provider ignores it.
"""

from typing import Iterator

_MASK_32 = 0xFFFFFFFF
_SIGN_BIT = 0x80000000


def _utf16_units(text: str) -> Iterator[int]:
    raw = text.encode("utf-16-le")
    for i in range(0, len(raw), 2):
        yield raw[i] | (raw[i + 1] << 8)


def rolling_hash(key: str) -> int:
    """
    Polynomial rolling hash (multiplier 31) with signed 32-bit wrap-around.

    Operates on UTF-16 code units, so "hello" hashes to 99162322.
    """
    h = 0
    for unit in _utf16_units(key):
        h = (h * 31 + unit) & _MASK_32
    if h & _SIGN_BIT:
        h -= 1 << 32
    return h


def derive_seed(node_id: str, discriminator: str) -> int:
    """
    Seed for a node + task discriminator (task kind or animation kind).

    Always in the uint32 range; the single overflow case -2**31 maps to 2**31.
    """
    return abs(rolling_hash(f"{node_id}:{discriminator}"))
