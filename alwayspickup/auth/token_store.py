"""
Encrypted OAuth token storage.

Tokens are kept on disk as a small JSON document:

    {
        "version": 1,
        "salt": "<urlsafe base64>",
        "tokens": "<Fernet token>",
        "updated_at": "<ISO-8601>"
    }

The Fernet key is derived from the TOKEN_ENCRYPTION_KEY passphrase with
PBKDF2-HMAC-SHA256 and the per-file salt. Fernet authenticates the
ciphertext, so a wrong passphrase and a tampered file both surface as
CredentialDecryptionError.
"""

from __future__ import annotations

import base64
import hashlib
import json
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from cryptography.fernet import Fernet, InvalidToken
from loguru import logger

from alwayspickup.core.errors import ConfigurationError, CredentialDecryptionError

FORMAT_VERSION = 1
DEFAULT_ITERATIONS = 600_000
SALT_BYTES = 16


def derive_key(passphrase: str, salt: bytes, iterations: int = DEFAULT_ITERATIONS) -> bytes:
    """
    Derive a Fernet key from a passphrase using PBKDF2.

    Args:
        passphrase: Secret passphrase
        salt: Random salt stored with the ciphertext
        iterations: PBKDF2 iteration count

    Returns:
        urlsafe base64-encoded 256-bit key
    """
    key_material = hashlib.pbkdf2_hmac(
        "sha256",
        passphrase.encode("utf-8"),
        salt,
        iterations,
        dklen=32,
    )
    return base64.urlsafe_b64encode(key_material)


class TokenStore:
    """Reads and writes the encrypted token file."""

    def __init__(
        self,
        path: Path | str,
        passphrase: Optional[str],
        iterations: int = DEFAULT_ITERATIONS,
    ):
        self.path = Path(path)
        self._passphrase = passphrase
        self._iterations = iterations
        self._keys: Dict[bytes, Fernet] = {}
        self._salt: Optional[bytes] = None

    def _fernet(self, salt: bytes) -> Fernet:
        if not self._passphrase:
            raise ConfigurationError("TOKEN_ENCRYPTION_KEY is not set")
        if salt not in self._keys:
            self._keys[salt] = Fernet(derive_key(self._passphrase, salt, self._iterations))
        return self._keys[salt]

    def exists(self) -> bool:
        """Whether a token file has been stored."""
        return self.path.exists()

    def load(self) -> Dict[str, Any]:
        """
        Load and decrypt the stored tokens.

        Raises:
            FileNotFoundError: No token file exists
            ConfigurationError: No passphrase configured
            CredentialDecryptionError: Wrong passphrase, tampered or unreadable file
        """
        with open(self.path, "r", encoding="utf-8") as f:
            try:
                document = json.load(f)
            except json.JSONDecodeError as e:
                raise CredentialDecryptionError(f"Token file is not valid JSON: {e}") from e

        try:
            salt = base64.urlsafe_b64decode(document["salt"])
            ciphertext = document["tokens"].encode("ascii")
        except (KeyError, TypeError, AttributeError, ValueError) as e:
            raise CredentialDecryptionError(f"Token file is malformed: {e}") from e

        try:
            plaintext = self._fernet(salt).decrypt(ciphertext)
        except InvalidToken as e:
            raise CredentialDecryptionError(
                "Failed to decrypt tokens. The encryption key may have changed."
            ) from e

        self._salt = salt
        return json.loads(plaintext.decode("utf-8"))

    def save(self, tokens: Dict[str, Any]) -> None:
        """
        Encrypt and atomically write the token set.

        The salt is kept for the lifetime of the store, so a token refresh
        reuses the derived key instead of running PBKDF2 again.
        """
        salt = self._salt or os.urandom(SALT_BYTES)
        ciphertext = self._fernet(salt).encrypt(json.dumps(tokens).encode("utf-8"))

        document = {
            "version": FORMAT_VERSION,
            "salt": base64.urlsafe_b64encode(salt).decode("ascii"),
            "tokens": ciphertext.decode("ascii"),
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".tokens-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document, f)
            os.replace(tmp_path, self.path)
            self._salt = salt
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise

        logger.debug(f"Stored encrypted tokens at {self.path}")

    def clear(self) -> bool:
        """Delete the stored tokens. Returns True if a file was removed."""
        self._salt = None
        if self.path.exists():
            self.path.unlink()
            logger.info(f"Removed stored tokens at {self.path}")
            return True
        return False
