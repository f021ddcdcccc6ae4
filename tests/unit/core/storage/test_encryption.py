"""Tests for the FieldEncryptor (Fernet encryption of locations and contact details)."""

from __future__ import annotations

import pytest
from cryptography.fernet import Fernet

from kyr.core.storage.encryption import EncryptionError, FieldEncryptor


@pytest.fixture
def encryptor() -> FieldEncryptor:
    return FieldEncryptor(Fernet.generate_key().decode())


class TestColumns:
    def test_location_json(self, encryptor: FieldEncryptor):
        data = {"latitude": 34.0522, "longitude": -118.2437, "city": "Los Angeles"}
        token = encryptor.encrypt_json(data)
        assert "Los Angeles" not in token
        assert encryptor.decrypt_json(token) == data

    def test_phone_text(self, encryptor: FieldEncryptor):
        token = encryptor.encrypt_text("555-0100")
        assert "555" not in token
        assert encryptor.decrypt_text(token) == "555-0100"

    def test_non_ascii_summary(self, encryptor: FieldEncryptor):
        text = "Detención breve, sin cargos."
        assert encryptor.decrypt_text(encryptor.encrypt_text(text)) == text

    def test_missing_values_are_empty_columns(self, encryptor: FieldEncryptor):
        assert encryptor.encrypt_text(None) == ""
        assert encryptor.encrypt_text("") == ""
        assert encryptor.encrypt_json(None) == ""
        assert encryptor.decrypt_text("") is None
        assert encryptor.decrypt_json(None) is None

    def test_text_token_is_not_json(self, encryptor: FieldEncryptor):
        with pytest.raises(EncryptionError, match="not JSON"):
            encryptor.decrypt_json(encryptor.encrypt_text("555-0100"))

    def test_unserializable_value_raises(self, encryptor: FieldEncryptor):
        with pytest.raises(EncryptionError, match="not serializable"):
            encryptor.encrypt_json(object())


class TestKeys:
    def test_empty_key_raises(self):
        with pytest.raises(EncryptionError, match="must not be empty"):
            FieldEncryptor("")

    def test_separators_only_raise(self):
        with pytest.raises(EncryptionError, match="must not be empty"):
            FieldEncryptor(" , ")

    def test_invalid_key_names_position(self):
        good = FieldEncryptor.generate_key()
        with pytest.raises(EncryptionError, match="#2"):
            FieldEncryptor(f"{good},not-a-valid-fernet-key")

    def test_wrong_key_cannot_decrypt(self, encryptor: FieldEncryptor):
        token = encryptor.encrypt_text("ana@example.org")
        other = FieldEncryptor(FieldEncryptor.generate_key())
        with pytest.raises(EncryptionError, match="invalid token"):
            other.decrypt_text(token)

    def test_garbage_token_raises(self, encryptor: FieldEncryptor):
        with pytest.raises(EncryptionError):
            encryptor.decrypt_text("not-a-valid-token")

    def test_each_generated_key_is_unique(self):
        assert len({FieldEncryptor.generate_key() for _ in range(10)}) == 10


class TestRotation:
    def test_old_tokens_readable_after_new_key_is_prepended(self):
        old_key = FieldEncryptor.generate_key()
        new_key = FieldEncryptor.generate_key()
        token = FieldEncryptor(old_key).encrypt_text("555-0100")

        rotated_encryptor = FieldEncryptor(f"{new_key},{old_key}")
        assert rotated_encryptor.key_count == 2
        assert rotated_encryptor.decrypt_text(token) == "555-0100"

    def test_rotate_moves_token_to_primary_key(self):
        old_key = FieldEncryptor.generate_key()
        new_key = FieldEncryptor.generate_key()
        token = FieldEncryptor(old_key).encrypt_text("555-0100")

        rotated = FieldEncryptor(f"{new_key},{old_key}").rotate(token)
        assert FieldEncryptor(new_key).decrypt_text(rotated) == "555-0100"

    def test_rotate_unknown_token(self, encryptor: FieldEncryptor):
        foreign = FieldEncryptor(FieldEncryptor.generate_key()).encrypt_text("x")
        with pytest.raises(EncryptionError, match="no configured key"):
            encryptor.rotate(foreign)
