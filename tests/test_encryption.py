"""Tests for refresh-token encryption at rest."""
import base64
from unittest.mock import patch

import pytest

from app.config import Settings
from app.errors import EncryptionError, InvalidInput
from app.utils import encryption
from app.utils.encryption import IV_LENGTH, TAG_LENGTH, decrypt, encrypt


def test_roundtrip():
    token = "1//0g-refresh-token-value"
    assert decrypt(encrypt(token)) == token


def test_fresh_iv_per_call():
    assert encrypt("same") != encrypt("same")


def test_wire_format_is_iv_ciphertext_tag():
    raw = base64.b64decode(encrypt("abcd"))
    assert len(raw) == IV_LENGTH + len("abcd") + TAG_LENGTH


def test_empty_inputs_rejected():
    with pytest.raises(InvalidInput):
        encrypt("")
    with pytest.raises(InvalidInput):
        decrypt("")


def test_tampered_ciphertext_fails():
    raw = bytearray(base64.b64decode(encrypt("secret")))
    raw[-1] ^= 0x01
    with pytest.raises(EncryptionError):
        decrypt(base64.b64encode(bytes(raw)).decode())


def test_garbage_and_short_blobs_fail():
    with pytest.raises(EncryptionError):
        decrypt("not base64 !!!")
    with pytest.raises(EncryptionError):
        decrypt(base64.b64encode(b"short").decode())


def test_different_key_cannot_decrypt():
    blob = encrypt("secret")
    other = Settings(APP_ENV="test", ENCRYPTION_KEY="another-key")
    with patch("app.utils.encryption.get_settings", return_value=other):
        with pytest.raises(EncryptionError):
            decrypt(blob)


def test_missing_key_outside_development_raises():
    prod = Settings.model_construct(APP_ENV="production", ENCRYPTION_KEY="")
    with patch("app.utils.encryption.get_settings", return_value=prod):
        with pytest.raises(EncryptionError):
            encrypt("secret")


def test_missing_key_in_development_uses_ephemeral_key():
    dev = Settings(APP_ENV="development", ENCRYPTION_KEY="")
    with patch("app.utils.encryption.get_settings", return_value=dev), \
            patch.object(encryption, "_ephemeral_key", None):
        blob = encrypt("secret")
        assert decrypt(blob) == "secret"
