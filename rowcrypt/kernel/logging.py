"""Structured JSONL event logging.

Design goals:
- Lightweight: no handlers, no background threads.
- Stable key ordering in every line.
- Archive-only rotation: a full log is moved to ``archive/``, never deleted.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from rowcrypt.kernel.redaction import redact_obj


LEVELS = ("debug", "info", "warning", "error")


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _safe_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return int(default)


@dataclass(frozen=True)
class JsonlLoggerConfig:
    path: Path
    rotate_max_bytes: int
    min_level: str = "info"


class JsonlLogger:
    def __init__(self, cfg: JsonlLoggerConfig) -> None:
        self._cfg = cfg
        self._cfg.path.parent.mkdir(parents=True, exist_ok=True)
        self._min_rank = LEVELS.index(cfg.min_level) if cfg.min_level in LEVELS else 1

    @classmethod
    def from_config(cls, config: dict[str, Any], *, name: str = "rowcrypt") -> "JsonlLogger":
        storage = config.get("storage", {}) if isinstance(config, dict) else {}
        logging_cfg = config.get("logging", {}) if isinstance(config, dict) else {}
        logs_dir = Path(str(storage.get("data_dir", "data"))) / "logs"
        rotate_max_bytes = _safe_int(logging_cfg.get("rotate_max_bytes", 5_000_000), 5_000_000)
        return cls(
            JsonlLoggerConfig(
                path=logs_dir / f"{name}.jsonl",
                rotate_max_bytes=max(1024, rotate_max_bytes),
                min_level=str(logging_cfg.get("level", "info")).lower(),
            )
        )

    @property
    def path(self) -> str:
        return str(self._cfg.path)

    def _rotate_if_needed(self) -> None:
        try:
            if self._cfg.path.stat().st_size < self._cfg.rotate_max_bytes:
                return
        except OSError:
            return
        try:
            archive_dir = self._cfg.path.parent / "archive"
            archive_dir.mkdir(parents=True, exist_ok=True)
            ts = _utc_now_iso().replace(":", "").replace("-", "").replace(".", "")
            archived = archive_dir / f"{self._cfg.path.stem}.{ts}{self._cfg.path.suffix}"
            if not archived.exists():
                self._cfg.path.replace(archived)
        except OSError:
            return

    def event(
        self,
        *,
        event: str,
        component: str = "",
        level: str = "info",
        ts_utc: str | None = None,
        **fields: Any,
    ) -> None:
        level = str(level or "info").lower()
        rank = LEVELS.index(level) if level in LEVELS else 1
        if rank < self._min_rank:
            return
        payload: dict[str, Any] = {
            "ts_utc": str(ts_utc or _utc_now_iso()),
            "level": level,
            "event": str(event or "event"),
            "component": str(component or ""),
        }
        for k, v in fields.items():
            if k in payload:
                continue
            payload[str(k)] = v
        line = json.dumps(redact_obj(payload), sort_keys=True, default=str)
        self._rotate_if_needed()
        # Logging must never break a store operation.
        try:
            with self._cfg.path.open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")
        except OSError:
            return


class NullLogger:
    """Drop-in for ``JsonlLogger`` when no log sink is configured."""

    path = ""

    def event(self, **_fields: Any) -> None:
        return None
