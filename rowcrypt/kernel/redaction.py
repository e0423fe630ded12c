"""Secret redaction for log events.

Row values and key material must never reach a log line. Store code only logs
table names, counts and key ids; this is the backstop for anything else.
"""

from __future__ import annotations

import re
from typing import Any


_PATTERNS: list[tuple[str, re.Pattern[str]]] = [
    ("private_key", re.compile(r"-----BEGIN [A-Z0-9 ]*PRIVATE KEY-----")),
    ("bearer", re.compile(r"\b[Bb]earer\s+[A-Za-z0-9\-\._~\+\/]+=*")),
]

_SENSITIVE_KEYS = {
    # Field names only; "key_id" and "key_ids" are identifiers, not secrets.
    "key",
    "key_b64",
    "key_bytes",
    "raw_key",
    "passphrase",
    "plaintext",
    "row",
    "rows_data",
    "value",
}


def redact_text(value: str) -> str:
    text = str(value or "")
    for _name, pattern in _PATTERNS:
        text = pattern.sub("[REDACTED]", text)
    return text


def redact_obj(obj: Any) -> Any:
    if obj is None or isinstance(obj, (int, float, bool)):
        return obj
    if isinstance(obj, str):
        return redact_text(obj)
    if isinstance(obj, (bytes, bytearray)):
        return f"<{len(obj)} bytes>"
    if isinstance(obj, (list, tuple)):
        return [redact_obj(v) for v in obj]
    if isinstance(obj, dict):
        redacted: dict[str, Any] = {}
        for k, v in obj.items():
            key = str(k)
            if key.casefold() in _SENSITIVE_KEYS:
                redacted[key] = "[REDACTED]"
            else:
                redacted[key] = redact_obj(v)
        return redacted
    return redact_text(str(obj))
