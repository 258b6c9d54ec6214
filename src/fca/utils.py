"""
Small string and id helpers shared across modules.
"""

import random
import re
import time
import uuid
from typing import Optional

_FOR_LOOP_GUARD = re.compile(r"for\s*\(\s*;\s*;\s*\)\s*;\s*")
_OBJECT_SEPARATOR = re.compile(r"\}\r?\n *\{")


def get_from(text: str, start_token: str, end_token: str) -> str:
    """Return the substring between two tokens, or "" if start is absent."""
    start = text.find(start_token)
    if start == -1:
        return ""
    rest = text[start + len(start_token):]
    end = rest.find(end_token)
    if end == -1:
        raise ValueError(f"Could not find end token {end_token!r} in the given string.")
    return rest[:end]


def make_parsable(body: str) -> str:
    """Strip the anti-hijacking guard and join concatenated objects into an array."""
    stripped = _FOR_LOOP_GUARD.sub("", body, count=1)
    parts = _OBJECT_SEPARATOR.split(stripped)
    if len(parts) == 1:
        return parts[0]
    return "[" + "},{".join(parts) + "]"


def generate_offline_threading_id(now_ms: Optional[int] = None) -> int:
    """Millisecond timestamp shifted over 22 random bits."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return (now_ms << 22) | (random.getrandbits(32) & 0x3FFFFF)


def get_guid() -> str:
    return str(uuid.uuid4())


def base36(value: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    if value == 0:
        return "0"
    out = []
    while value:
        value, rem = divmod(value, 36)
        out.append(digits[rem])
    return "".join(reversed(out))
