"""
Tests for encrypted token storage.
"""

import json
from unittest.mock import patch

import pytest

from alwayspickup.auth.token_store import TokenStore, derive_key
from alwayspickup.core.errors import CalendarNotConnectedError, ConfigurationError, CredentialDecryptionError


TOKENS = {"token": "access", "refresh_token": "refresh", "expiry": "2026-10-20T10:00:00"}


def make_store(path, passphrase="correct horse battery staple"):
    return TokenStore(path, passphrase=passphrase, iterations=1000)


class TestTokenStore:
    """Tests for TokenStore."""

    def test_save_and_load(self, tmp_path):
        store = make_store(tmp_path / "tokens.json")
        store.save(TOKENS)

        assert store.exists()
        assert store.load() == TOKENS

    def test_file_does_not_contain_plaintext(self, tmp_path):
        path = tmp_path / "tokens.json"
        make_store(path).save(TOKENS)

        raw = path.read_text(encoding="utf-8")
        assert "refresh" not in raw
        document = json.loads(raw)
        assert set(document) == {"version", "salt", "tokens", "updated_at"}

    def test_salt_kept_across_saves(self, tmp_path):
        """A refresh re-encrypts with the cached key rather than deriving a new one."""
        path = tmp_path / "tokens.json"
        store = make_store(path)

        with patch("alwayspickup.auth.token_store.derive_key", wraps=derive_key) as derive:
            store.save(TOKENS)
            first = json.loads(path.read_text())["salt"]
            store.save(dict(TOKENS, token="access-2"))
            second = json.loads(path.read_text())["salt"]

        assert first == second
        assert derive.call_count == 1
        assert store.load()["token"] == "access-2"

    def test_loaded_salt_reused(self, tmp_path):
        path = tmp_path / "tokens.json"
        make_store(path).save(TOKENS)
        salt = json.loads(path.read_text())["salt"]

        reader = make_store(path)
        with patch("alwayspickup.auth.token_store.derive_key", wraps=derive_key) as derive:
            reader.load()
            reader.save(TOKENS)

        assert json.loads(path.read_text())["salt"] == salt
        assert derive.call_count == 1

    def test_new_salt_after_clear(self, tmp_path):
        path = tmp_path / "tokens.json"
        store = make_store(path)

        store.save(TOKENS)
        first = json.loads(path.read_text())["salt"]
        store.clear()
        store.save(TOKENS)
        second = json.loads(path.read_text())["salt"]

        assert first != second

    def test_wrong_passphrase(self, tmp_path):
        path = tmp_path / "tokens.json"
        make_store(path).save(TOKENS)

        with pytest.raises(CredentialDecryptionError):
            make_store(path, passphrase="something else").load()

    def test_decryption_failure_is_not_connected(self, tmp_path):
        path = tmp_path / "tokens.json"
        make_store(path).save(TOKENS)

        with pytest.raises(CalendarNotConnectedError):
            make_store(path, passphrase="something else").load()

    def test_tampered_ciphertext(self, tmp_path):
        path = tmp_path / "tokens.json"
        make_store(path).save(TOKENS)

        document = json.loads(path.read_text())
        document["tokens"] = document["tokens"][:-4] + "AAAA"
        path.write_text(json.dumps(document))

        with pytest.raises(CredentialDecryptionError):
            make_store(path).load()

    @pytest.mark.parametrize("content", ["not json", "{}", '{"salt": 5, "tokens": "x"}'])
    def test_corrupt_file(self, tmp_path, content):
        path = tmp_path / "tokens.json"
        path.write_text(content)

        with pytest.raises(CredentialDecryptionError):
            make_store(path).load()

    def test_missing_file(self, tmp_path):
        store = make_store(tmp_path / "missing.json")

        assert not store.exists()
        with pytest.raises(FileNotFoundError):
            store.load()

    def test_missing_passphrase(self, tmp_path):
        store = TokenStore(tmp_path / "tokens.json", passphrase=None)

        with pytest.raises(ConfigurationError):
            store.save(TOKENS)

    def test_clear(self, tmp_path):
        store = make_store(tmp_path / "tokens.json")
        store.save(TOKENS)

        assert store.clear() is True
        assert not store.exists()
        assert store.clear() is False

    def test_no_temp_files_left(self, tmp_path):
        make_store(tmp_path / "tokens.json").save(TOKENS)

        assert [p.name for p in tmp_path.iterdir()] == ["tokens.json"]


class TestDeriveKey:
    """Tests for key derivation."""

    def test_deterministic(self):
        assert derive_key("pw", b"salt" * 4, 1000) == derive_key("pw", b"salt" * 4, 1000)

    def test_salt_matters(self):
        assert derive_key("pw", b"a" * 16, 1000) != derive_key("pw", b"b" * 16, 1000)

    def test_fernet_key_length(self):
        # 32 bytes, urlsafe base64 encoded
        assert len(derive_key("pw", b"a" * 16, 1000)) == 44
