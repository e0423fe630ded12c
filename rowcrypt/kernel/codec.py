"""Self-describing value codec.

Every value is encoded as a canonical JSON envelope ``{"t": tag, "v": payload}``
(sorted keys, no whitespace, UTF-8). The storage engine never interprets these
bytes; they only need to be stable and round-trip exactly.
"""

from __future__ import annotations

import base64
import datetime as dt
import ipaddress
import json
import uuid
from decimal import Decimal, InvalidOperation
from typing import Any

from rowcrypt.kernel.errors import SerializationError


def _encode(value: Any) -> dict[str, Any]:
    # bool before int: bool is an int subclass.
    if value is None:
        return {"t": "null", "v": None}
    if isinstance(value, bool):
        return {"t": "bool", "v": value}
    if isinstance(value, int):
        return {"t": "int", "v": value}
    if isinstance(value, float):
        return {"t": "float", "v": value.hex()}
    if isinstance(value, str):
        return {"t": "str", "v": value}
    if isinstance(value, (bytes, bytearray, memoryview)):
        return {"t": "bytes", "v": base64.b64encode(bytes(value)).decode("ascii")}
    if isinstance(value, Decimal):
        return {"t": "decimal", "v": str(value)}
    # datetime before date: datetime is a date subclass.
    if isinstance(value, dt.datetime):
        return {"t": "datetime", "v": value.isoformat()}
    if isinstance(value, dt.date):
        return {"t": "date", "v": value.isoformat()}
    if isinstance(value, dt.time):
        return {"t": "time", "v": value.isoformat()}
    if isinstance(value, dt.timedelta):
        return {"t": "interval", "v": [value.days, value.seconds, value.microseconds]}
    if isinstance(value, uuid.UUID):
        return {"t": "uuid", "v": str(value)}
    if isinstance(value, (ipaddress.IPv4Address, ipaddress.IPv6Address)):
        return {"t": "inet", "v": str(value)}
    if isinstance(value, tuple):
        return {"t": "tuple", "v": [_encode(item) for item in value]}
    if isinstance(value, list):
        return {"t": "list", "v": [_encode(item) for item in value]}
    if isinstance(value, dict):
        encoded: dict[str, Any] = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise SerializationError(f"map keys must be str, got {type(key).__name__}")
            encoded[key] = _encode(item)
        return {"t": "map", "v": encoded}
    raise SerializationError(f"unsupported value type: {type(value).__name__}")


def _decode(node: Any) -> Any:
    if not isinstance(node, dict) or set(node) != {"t", "v"}:
        raise SerializationError("malformed value envelope")
    tag = node["t"]
    payload = node["v"]
    if tag == "null":
        return None
    if tag == "bool" and isinstance(payload, bool):
        return payload
    if tag == "int" and isinstance(payload, int) and not isinstance(payload, bool):
        return payload
    if tag == "str" and isinstance(payload, str):
        return payload
    if tag == "list" and isinstance(payload, list):
        return [_decode(item) for item in payload]
    if tag == "tuple" and isinstance(payload, list):
        return tuple(_decode(item) for item in payload)
    if tag == "map" and isinstance(payload, dict):
        return {key: _decode(item) for key, item in payload.items()}
    if tag == "interval" and isinstance(payload, list) and len(payload) == 3:
        if not all(isinstance(part, int) and not isinstance(part, bool) for part in payload):
            raise SerializationError("bad payload for tag 'interval'")
        days, seconds, micros = payload
        return dt.timedelta(days=days, seconds=seconds, microseconds=micros)
    if not isinstance(payload, str):
        raise SerializationError(f"bad payload for tag {tag!r}")
    try:
        if tag == "float":
            return float.fromhex(payload)
        if tag == "bytes":
            return base64.b64decode(payload.encode("ascii"), validate=True)
        if tag == "decimal":
            return Decimal(payload)
        if tag == "datetime":
            return dt.datetime.fromisoformat(payload)
        if tag == "date":
            return dt.date.fromisoformat(payload)
        if tag == "time":
            return dt.time.fromisoformat(payload)
        if tag == "uuid":
            return uuid.UUID(payload)
        if tag == "inet":
            return ipaddress.ip_address(payload)
    except (ValueError, InvalidOperation) as exc:
        raise SerializationError(f"cannot decode {tag!r} payload: {exc}") from exc
    raise SerializationError(f"unknown value tag: {tag!r}")


def encode_value(value: Any) -> bytes:
    envelope = _encode(value)
    try:
        return json.dumps(envelope, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    except (UnicodeEncodeError, ValueError) as exc:
        # Lone surrogates and ints past the int/str digit limit.
        raise SerializationError(f"value cannot be encoded: {exc}") from exc


def decode_value(data: bytes) -> Any:
    try:
        node = json.loads(bytes(data).decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as exc:
        raise SerializationError(f"value is not a valid envelope: {exc}") from exc
    return _decode(node)
