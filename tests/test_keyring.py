"""Tests for key decoding and key ring resolution."""

from __future__ import annotations

import base64

import pytest

from fieldcrypt import (
    EnvKeyRingProvider,
    KeyLengthError,
    KeyNotFoundError,
    KeyRing,
    SkippedEntry,
    StaticKeyRingProvider,
    decode_key,
)
from fieldcrypt.keyring import default_version, parse_key_entries, resolve_keys

from .conftest import KEY_V1_HEX, KEY_V2_HEX

RAW_KEY = bytes(range(32))


class TestDecodeKey:
    def test_hex_key(self):
        assert decode_key(KEY_V2_HEX) == bytes.fromhex(KEY_V2_HEX)

    def test_uppercase_hex_key(self):
        assert decode_key(KEY_V2_HEX.upper()) == bytes.fromhex(KEY_V2_HEX)

    def test_base64_key(self):
        encoded = base64.b64encode(RAW_KEY).decode()
        assert decode_key(encoded) == RAW_KEY

    def test_base64_without_padding(self):
        encoded = base64.b64encode(RAW_KEY).decode().rstrip("=")
        assert decode_key(encoded) == RAW_KEY

    def test_surrounding_whitespace_is_ignored(self):
        encoded = base64.b64encode(RAW_KEY).decode()
        assert decode_key(f"  {encoded}\n") == RAW_KEY

    def test_raw_text_fallback(self):
        text = "this is not base64 at all!!!!!!!"
        assert decode_key(text) == text.encode("utf-8")

    def test_hex_of_wrong_length_is_not_treated_as_hex(self):
        # 62 hex characters are not a hex key; they fall through to base64 or raw text
        decoded = decode_key("ab" * 31)
        assert decoded != bytes.fromhex("ab" * 31)


class TestParseEntries:
    def test_consolidated_pairs(self):
        entries = parse_key_entries({"ENCRYPTION_KEY": f"v2:{KEY_V2_HEX},v1:{KEY_V1_HEX}"})
        assert [(e.version, e.key) for e in entries] == [
            ("v2", bytes.fromhex(KEY_V2_HEX)),
            ("v1", bytes.fromhex(KEY_V1_HEX)),
        ]

    def test_bare_key_uses_default_version(self):
        entries = parse_key_entries({"ENCRYPTION_KEY": KEY_V1_HEX})
        assert len(entries) == 1
        assert entries[0].version == "v1"

    def test_bare_key_follows_current_version(self):
        entries = parse_key_entries({"ENCRYPTION_KEY": KEY_V1_HEX, "KMS_KEY_ID": "v3"})
        assert entries[0].version == "v3"

    def test_malformed_entries_are_skipped(self):
        entries = parse_key_entries(
            {"ENCRYPTION_KEY": f"v1:{KEY_V1_HEX},,:{KEY_V2_HEX},v3:,{KEY_V2_HEX}"}
        )
        skipped = [e for e in entries if isinstance(e, SkippedEntry)]
        assert [e.reason for e in skipped] == [
            "empty entry",
            "missing version",
            "missing key",
            "bare key in a multi-key setting",
        ]
        assert [e.version for e in entries if not isinstance(e, SkippedEntry)] == ["v1"]

    def test_skipped_entries_never_contain_key_material(self):
        entries = parse_key_entries({"ENCRYPTION_KEY": f"v1:{KEY_V1_HEX},{KEY_V2_HEX}"})
        for entry in entries:
            assert KEY_V2_HEX not in repr(entry)
            assert KEY_V1_HEX not in repr(entry)

    def test_discrete_settings(self):
        entries = parse_key_entries({"ENCRYPTION_KEY_V7": KEY_V2_HEX, "OTHER": "x"})
        assert [(e.version, e.source) for e in entries] == [("v7", "ENCRYPTION_KEY_V7")]


class TestResolveKeys:
    def test_discrete_wins_over_consolidated(self):
        keys = resolve_keys(
            {"ENCRYPTION_KEY": f"v2:{KEY_V1_HEX}", "ENCRYPTION_KEY_V2": KEY_V2_HEX}
        )
        assert keys["v2"] == bytes.fromhex(KEY_V2_HEX)

    def test_merges_consolidated_and_discrete(self, env):
        keys = resolve_keys(env)
        assert set(keys) == {"v1", "v2"}

    def test_empty_configuration(self):
        assert resolve_keys({}) == {}

    def test_skip_hook_receives_skipped_entries(self):
        skipped = []
        provider = EnvKeyRingProvider(
            {"ENCRYPTION_KEY": f"v1:{KEY_V1_HEX},v2:"}, on_skip=skipped.append
        )
        provider.snapshot()
        assert skipped == [SkippedEntry("ENCRYPTION_KEY[1]", "missing key")]

    def test_ring_reflects_environment_changes(self, env):
        provider = EnvKeyRingProvider(env)
        assert "v3" not in provider.snapshot()

        env["ENCRYPTION_KEY_V3"] = KEY_V2_HEX
        assert "v3" in provider.snapshot()


class TestDefaultVersion:
    def test_fallback(self):
        assert default_version({}) == "v1"

    def test_current_key_id(self):
        assert default_version({"KMS_KEY_ID": "v12"}) == "v12"

    @pytest.mark.parametrize("value", ["test-key-v1", "V2", "v", "2", " "])
    def test_non_canonical_current_key_id_falls_back(self, value):
        assert default_version({"KMS_KEY_ID": value}) == "v1"


class TestKeyRing:
    def test_get_key(self):
        ring = KeyRing({"v1": RAW_KEY})
        key = ring.get_key("v1")
        assert key.as_bytes() == RAW_KEY
        assert key.version == "v1"

    def test_get_key_uses_default_version(self):
        ring = KeyRing({"v4": RAW_KEY}, default_version="v4")
        assert ring.get_key().as_bytes() == RAW_KEY

    def test_missing_version(self):
        with pytest.raises(KeyNotFoundError, match="v9"):
            KeyRing({"v1": RAW_KEY}).get_key("v9")

    def test_wrong_length(self):
        with pytest.raises(KeyLengthError) as excinfo:
            KeyRing({"v1": b"short"}).get_key("v1")
        assert excinfo.value.length == 5

    def test_candidates_put_preferred_first_and_drop_bad_keys(self):
        ring = KeyRing({"v1": RAW_KEY, "v2": b"short", "v3": RAW_KEY[::-1]})
        assert [v for v, _ in ring.candidates("v3")] == ["v3", "v1"]

    def test_snapshot_is_read_only(self):
        ring = KeyRing({"v1": RAW_KEY})
        with pytest.raises(TypeError):
            ring.keys["v2"] = RAW_KEY

    def test_repr_hides_keys(self):
        assert RAW_KEY.hex() not in repr(KeyRing({"v1": RAW_KEY}))


class TestStaticProvider:
    def test_accepts_text_and_bytes(self):
        provider = StaticKeyRingProvider({"v1": KEY_V1_HEX, "v2": RAW_KEY}, default_version="v2")
        ring = provider.snapshot()
        assert ring.get_key("v1").as_bytes() == bytes(32)
        assert ring.default_version == "v2"
