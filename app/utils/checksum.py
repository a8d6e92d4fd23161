"""Content hashing used for attachment checksums and bulk-import dedup keys."""
import hashlib
import re
from typing import Union

_SHA256_HEX = re.compile(r"^[0-9a-f]{64}$")


def sha256_hex(data: Union[bytes, str]) -> str:
    """Return the lower-case SHA-256 hex digest of *data* (str is hashed as UTF-8)."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def is_sha256_hex(value: str) -> bool:
    """True for a 64-character hex digest; case-insensitive."""
    return bool(value) and bool(_SHA256_HEX.match(value.lower()))
