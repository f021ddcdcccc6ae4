"""Fernet encryption for the sensitive columns of the rights store.

Encounter locations and summaries and contact phone numbers and emails are
encrypted before they reach SQLite. Identifiers, timestamps and flags stay
in the clear so they can be indexed and ordered.

``ENCRYPTION_KEY`` may hold several comma-separated keys. The first one
encrypts; all of them are tried on decryption, so a key can be rotated by
prepending the new one and calling :meth:`FieldEncryptor.rotate` on old
tokens.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from cryptography.fernet import Fernet, InvalidToken, MultiFernet

logger = logging.getLogger(__name__)


class EncryptionError(Exception):
    """Raised when a key is unusable or a token cannot be decrypted."""


def _parse_keys(key: str) -> list[Fernet]:
    parts = [part.strip() for part in (key or "").split(",") if part.strip()]
    if not parts:
        raise EncryptionError("Encryption key must not be empty")
    fernets = []
    for index, part in enumerate(parts):
        try:
            fernets.append(Fernet(part.encode()))
        except (ValueError, TypeError) as exc:
            raise EncryptionError(f"Invalid encryption key #{index + 1}: {exc}") from exc
    return fernets


class FieldEncryptor:
    """Encrypts column values into Fernet tokens.

    Strings (phones, emails, summaries) are stored as UTF-8; structured
    values (locations) go through JSON. ``None`` and ``""`` both map to an
    empty column so optional fields stay optional.
    """

    def __init__(self, key: str) -> None:
        fernets = _parse_keys(key)
        self.key_count = len(fernets)
        self._fernet = MultiFernet(fernets)

    def encrypt_text(self, value: str | None) -> str:
        if not value:
            return ""
        return self._fernet.encrypt(value.encode("utf-8")).decode("ascii")

    def decrypt_text(self, token: str | None) -> str | None:
        if not token:
            return None
        return self._open(token).decode("utf-8")

    def encrypt_json(self, data: Any) -> str:
        """Encrypt a JSON-serializable value.

        Raises:
            EncryptionError: If the value cannot be serialized.
        """
        if data is None:
            return ""
        try:
            plaintext = json.dumps(data, separators=(",", ":"), sort_keys=True)
        except (TypeError, ValueError) as exc:
            raise EncryptionError(f"Value is not serializable: {exc}") from exc
        return self.encrypt_text(plaintext)

    def decrypt_json(self, token: str | None) -> Any:
        plaintext = self.decrypt_text(token)
        if plaintext is None:
            return None
        try:
            return json.loads(plaintext)
        except ValueError as exc:
            raise EncryptionError(f"Decrypted column is not JSON: {exc}") from exc

    def rotate(self, token: str) -> str:
        """Re-encrypt ``token`` under the primary key."""
        if not token:
            return token
        try:
            return self._fernet.rotate(token.encode("ascii")).decode("ascii")
        except InvalidToken as exc:
            raise EncryptionError("Cannot rotate: token matches no configured key") from exc

    def _open(self, token: str) -> bytes:
        try:
            return self._fernet.decrypt(token.encode("ascii"))
        except (InvalidToken, UnicodeEncodeError) as exc:
            raise EncryptionError("Decryption failed: invalid token or wrong key") from exc

    @staticmethod
    def generate_key() -> str:
        """Generate a new URL-safe base64 Fernet key."""
        return Fernet.generate_key().decode("ascii")
