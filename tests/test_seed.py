"""Tests for deterministic seed derivation."""

from spriteflow.pipeline.seed import derive_seed, rolling_hash


class TestRollingHash:
    def test_known_values(self):
        assert rolling_hash("") == 0
        assert rolling_hash("a") == 97
        assert rolling_hash("hello") == 99162322

    def test_wraps_to_signed_32_bit(self):
        # Long keys overflow; the result must stay in the signed 32-bit range.
        h = rolling_hash("walk-cycle-" * 20)
        assert -(2 ** 31) <= h < 2 ** 31

    def test_uses_utf16_code_units(self):
        # A character outside the BMP is two UTF-16 code units (a surrogate pair).
        high, low = 0xD83D, 0xDC7E
        assert rolling_hash("\U0001F47E") == high * 31 + low


class TestDeriveSeed:
    def test_deterministic(self):
        assert derive_seed("animation-1", "walk") == derive_seed("animation-1", "walk")

    def test_key_format(self):
        assert derive_seed("a", "b") == abs(rolling_hash("a:b")) == 95113

    def test_changes_with_either_argument(self):
        base = derive_seed("animation-1", "walk")
        assert derive_seed("animation-2", "walk") != base
        assert derive_seed("animation-1", "run") != base

    def test_non_negative_and_fits_uint32(self):
        for node_id in ("preview-1", "animation-x9", "cut-42", "node" * 50):
            for kind in ("image", "idle", "walk", "run", "jump", "frames"):
                seed = derive_seed(node_id, kind)
                assert 0 <= seed <= 2 ** 32 - 1

    def test_min_int_edge_case(self):
        # "polygenelubricants" hashes to exactly -2**31.
        assert rolling_hash("polygenelubricants") == -(2 ** 31)
