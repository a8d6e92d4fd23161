"""AES-256-GCM encryption for secrets at rest (OAuth refresh tokens).

Wire format: ``base64(IV[16] || ciphertext || tag[16])``. The key is derived
with scrypt from the operator-supplied ``ENCRYPTION_KEY`` and a fixed
application salt, so blobs written by any instance sharing the secret can be
read by any other.

There is no built-in key. Outside development a missing ``ENCRYPTION_KEY``
raises ``EncryptionError`` (settings validation already refuses to start in
that case). In development a random per-process key is used instead, which
means stored tokens do not survive a restart.
"""
import base64
import binascii
import logging
import os
from functools import lru_cache

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from app.config import get_settings
from app.errors import EncryptionError, InvalidInput

logger = logging.getLogger(__name__)

IV_LENGTH = 16
TAG_LENGTH = 16
KEY_LENGTH = 32
_SALT = b"expense-tracker-salt"

_ephemeral_key = None


@lru_cache(maxsize=4)
def _derive(secret: str) -> bytes:
    kdf = Scrypt(salt=_SALT, length=KEY_LENGTH, n=2**14, r=8, p=1)
    return kdf.derive(secret.encode("utf-8"))


def _get_key() -> bytes:
    global _ephemeral_key
    settings = get_settings()
    if settings.ENCRYPTION_KEY:
        return _derive(settings.ENCRYPTION_KEY)
    if not settings.is_development:
        raise EncryptionError("ENCRYPTION_KEY is not configured")
    if _ephemeral_key is None:
        logger.warning(
            "ENCRYPTION_KEY not set; using an ephemeral key. "
            "Stored Drive credentials will not survive a restart."
        )
        _ephemeral_key = AESGCM.generate_key(bit_length=256)
    return _ephemeral_key


def encrypt(plaintext: str) -> str:
    """Encrypt *plaintext* and return the base64 blob."""
    if not plaintext:
        raise InvalidInput("Cannot encrypt empty plaintext")
    iv = os.urandom(IV_LENGTH)
    # AESGCM appends the 16-byte tag to the ciphertext.
    sealed = AESGCM(_get_key()).encrypt(iv, plaintext.encode("utf-8"), None)
    return base64.b64encode(iv + sealed).decode("ascii")


def decrypt(blob: str) -> str:
    """Decrypt a blob produced by :func:`encrypt`."""
    if not blob:
        raise InvalidInput("Cannot decrypt empty ciphertext")
    try:
        raw = base64.b64decode(blob, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise EncryptionError("Ciphertext is not valid base64") from exc
    if len(raw) < IV_LENGTH + TAG_LENGTH:
        raise EncryptionError("Ciphertext is too short")
    iv, sealed = raw[:IV_LENGTH], raw[IV_LENGTH:]
    try:
        plaintext = AESGCM(_get_key()).decrypt(iv, sealed, None)
    except InvalidTag as exc:
        raise EncryptionError("Ciphertext failed authentication") from exc
    return plaintext.decode("utf-8")
