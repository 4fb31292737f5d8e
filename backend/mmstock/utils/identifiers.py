from __future__ import annotations

import os
import random
import re
import string
import time
import uuid

_UNSAFE_TOKEN_CHARS = re.compile(r"[^a-zA-Z0-9\-_]")


def generate_uuid7() -> str:
    """
    Generate a UUIDv7 string (time-ordered).

    Layout:
    - 48-bit Unix timestamp in milliseconds
    - 4-bit version (0b0111)
    - 74-bit randomness
    """
    ts_ms = int(time.time() * 1000)
    raw = bytearray(ts_ms.to_bytes(6, "big", signed=False) + os.urandom(10))
    raw[6] = (raw[6] & 0x0F) | 0x70
    raw[8] = (raw[8] & 0x3F) | 0x80
    return str(uuid.UUID(bytes=bytes(raw)))


def generate_short_id(prefix: str = "ID") -> str:
    """
    Short ids like 'ID-8K2L0P9Q' for companies and users.

    Used as a SQLAlchemy column default, so it must work with no arguments.
    """
    block = "".join(random.choices(string.ascii_uppercase + string.digits, k=8))
    if prefix:
        return f"{prefix}-{block}"
    return block


def safe_token(value: str) -> str:
    """Replace anything outside [a-zA-Z0-9-_] with '_' (file names, QR downloads)."""
    return _UNSAFE_TOKEN_CHARS.sub("_", value or "")
