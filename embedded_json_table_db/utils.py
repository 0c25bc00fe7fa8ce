from __future__ import annotations
import json
import math
import os
import threading
import time
from typing import Any, Optional

from .errors import ValidationError

# Crockford base32, as used by ULID
_ALPHABET = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
_RANDOM_BITS = 80
_RANDOM_MAX = (1 << _RANDOM_BITS) - 1

_ulid_lock = threading.Lock()
_last_ms = -1
_last_rand = 0


def _encode(value: int, length: int) -> str:
    chars = []
    for _ in range(length):
        chars.append(_ALPHABET[value & 0x1F])
        value >>= 5
    return "".join(reversed(chars))


def new_ulid(now_ms: Optional[int] = None) -> str:
    """
    26-char ULID: 48-bit millisecond timestamp + 80 random bits.
    Monotonic within a process: ids generated in the same millisecond
    increment the random part, so lexical order equals generation order.
    """
    global _last_ms, _last_rand
    ms = int(time.time() * 1000) if now_ms is None else int(now_ms)
    with _ulid_lock:
        if ms <= _last_ms:
            ms = _last_ms
            rand = _last_rand + 1
            if rand > _RANDOM_MAX:
                # random part exhausted for this millisecond; borrow the next one
                ms += 1
                rand = int.from_bytes(os.urandom(10), "big") >> 1
        else:
            rand = int.from_bytes(os.urandom(10), "big")
        _last_ms, _last_rand = ms, rand
    return _encode(ms, 10) + _encode(rand, 16)


def canonical_json(obj: Any) -> str:
    return json.dumps(obj, ensure_ascii=False, sort_keys=True, separators=(",", ":"))


def dump_document(doc: Any, spaces: Optional[int] = None) -> str:
    if spaces is None:
        return json.dumps(doc, ensure_ascii=False, allow_nan=False, separators=(",", ":"))
    return json.dumps(doc, ensure_ascii=False, allow_nan=False, indent=spaces)


def check_json_value(value: Any, where: str = "value") -> None:
    """
    Raise ValidationError unless `value` survives a JSON round trip unchanged:
    None, str, bool, int, finite float, lists, and dicts with str keys.
    """
    if value is None or isinstance(value, (str, bool, int)):
        return
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValidationError(f"{where}: {value!r} is not a finite number")
        return
    if isinstance(value, list):
        for i, item in enumerate(value):
            check_json_value(item, f"{where}[{i}]")
        return
    if isinstance(value, dict):
        for k, item in value.items():
            if not isinstance(k, str):
                raise ValidationError(f"{where}: object key {k!r} is not a string")
            check_json_value(item, f"{where}.{k}")
        return
    raise ValidationError(f"{where}: {type(value).__name__} is not a JSON value")
