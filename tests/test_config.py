"""Tests for environment configuration."""

from __future__ import annotations

import os
from unittest.mock import patch

import pytest

from fieldcrypt import ConfigError, generate_encryption_key, generate_search_salt
from fieldcrypt.config import (
    FALLBACK_SEARCH_SALT,
    load_env_file,
    resolve_current_version,
    resolve_search_salt,
)
from fieldcrypt.keyring import decode_key


class TestSearchSalt:
    def test_configured_salt(self):
        assert resolve_search_salt({"SEARCH_SALT": "abc"}) == "abc"

    @pytest.mark.parametrize("value", ["", "   "])
    def test_blank_salt_raises_without_escape_hatch(self, value):
        with pytest.raises(ConfigError, match="SEARCH_SALT is not set"):
            resolve_search_salt({"SEARCH_SALT": value})

    @pytest.mark.parametrize("flag", ["0", "false", ""])
    def test_falsy_escape_hatch(self, flag):
        with pytest.raises(ConfigError):
            resolve_search_salt({"ALLOW_INSECURE_SEARCH_SALT": flag})

    @pytest.mark.parametrize("flag", ["1", "true", "YES"])
    def test_escape_hatch_warns(self, flag):
        with pytest.warns(UserWarning, match="INSECURE"):
            salt = resolve_search_salt({"ALLOW_INSECURE_SEARCH_SALT": flag})
        assert salt == FALLBACK_SEARCH_SALT

    def test_reads_os_environ_by_default(self):
        with patch.dict(os.environ, {"SEARCH_SALT": "from-os"}):
            assert resolve_search_salt() == "from-os"


class TestCurrentVersion:
    def test_reads_os_environ_by_default(self):
        with patch.dict(os.environ, {"KMS_KEY_ID": "v3"}):
            assert resolve_current_version() == "v3"

    def test_strips_whitespace(self):
        assert resolve_current_version({"KMS_KEY_ID": " v2 "}) == "v2"


class TestEnvFile:
    def test_loads_without_overriding(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("FIELDCRYPT_TEST_A=from-file\nFIELDCRYPT_TEST_B=from-file\n")

        with patch.dict(os.environ, {"FIELDCRYPT_TEST_B": "from-os"}):
            assert load_env_file(env_file)
            assert os.environ["FIELDCRYPT_TEST_A"] == "from-file"
            assert os.environ["FIELDCRYPT_TEST_B"] == "from-os"


class TestGenerators:
    def test_generated_key_decodes_to_32_bytes(self):
        assert len(decode_key(generate_encryption_key())) == 32

    def test_generated_keys_differ(self):
        assert generate_encryption_key() != generate_encryption_key()

    def test_generated_salt(self):
        salt = generate_search_salt()
        assert len(salt) == 64
        int(salt, 16)
