"""Keyring management for data keys with rotation."""

from __future__ import annotations

import base64
import binascii
import os
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from rowcrypt.kernel.atomic_write import atomic_write_json, read_json
from rowcrypt.kernel.crypto import AES_256_GCM, AeadAlgorithm, SealingKey, algorithm_by_name
from rowcrypt.kernel.errors import ConfigError


SCHEMA_VERSION = 1


def _new_id() -> str:
    if hasattr(uuid, "uuid7"):
        return str(uuid.uuid7())  # type: ignore[attr-defined]
    return str(uuid.uuid4())


@dataclass
class KeyRecord:
    key_id: str
    created_ts: str
    algorithm: str
    key_b64: str

    def sealing_key(self) -> SealingKey:
        try:
            raw = base64.b64decode(self.key_b64, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ConfigError(f"Corrupt key material for key id {self.key_id}") from exc
        return SealingKey(raw, algorithm_by_name(self.algorithm), key_id=self.key_id)

    @classmethod
    def generate(cls, algorithm: AeadAlgorithm) -> "KeyRecord":
        return cls(
            key_id=_new_id(),
            created_ts=datetime.now(timezone.utc).isoformat(),
            algorithm=algorithm.name,
            key_b64=base64.b64encode(os.urandom(algorithm.key_len)).decode("ascii"),
        )


class KeyRing:
    """Persisted set of data keys with exactly one active key.

    Records are only ever appended: rows written under a retired key (for
    example after an aborted rotation) stay readable as long as the ring is.
    """

    def __init__(self, path: str, records: list[KeyRecord], active_key_id: str, algorithm: AeadAlgorithm) -> None:
        self.path = str(path)
        self._records = records
        self._active_key_id = active_key_id
        self.algorithm = algorithm

    @property
    def active_key_id(self) -> str:
        return self._active_key_id

    def key_ids(self) -> list[str]:
        return [record.key_id for record in self._records]

    def _record(self, key_id: str) -> KeyRecord:
        for record in self._records:
            if record.key_id == key_id:
                return record
        raise KeyError(f"Unknown key id: {key_id}")

    def key_for(self, key_id: str) -> SealingKey:
        return self._record(key_id).sealing_key()

    def active_key(self) -> SealingKey:
        return self.key_for(self._active_key_id)

    def add_key(self, *, activate: bool = False) -> str:
        record = KeyRecord.generate(self.algorithm)
        self._records.append(record)
        if activate:
            self._active_key_id = record.key_id
        self.save()
        return record.key_id

    def rotate(self) -> str:
        return self.add_key(activate=True)

    def set_active(self, key_id: str) -> None:
        self._record(key_id)
        self._active_key_id = key_id
        self.save()

    @classmethod
    def load(cls, path: str, algorithm: AeadAlgorithm = AES_256_GCM) -> "KeyRing":
        if not os.path.exists(path):
            record = KeyRecord.generate(algorithm)
            ring = cls(path, [record], record.key_id, algorithm)
            ring.save()
            return ring
        try:
            data = read_json(Path(path))
        except (OSError, ValueError) as exc:
            raise ConfigError(f"Unreadable keyring {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigError(f"Keyring {path} must contain a JSON object")
        schema_version = data.get("schema_version")
        if schema_version != SCHEMA_VERSION:
            raise ConfigError(f"Unsupported keyring schema_version: {schema_version}")
        try:
            records = [
                KeyRecord(
                    key_id=str(item["key_id"]),
                    created_ts=str(item["created_ts"]),
                    algorithm=str(item.get("algorithm", algorithm.name)),
                    key_b64=str(item["key_b64"]),
                )
                for item in data.get("keys", [])
            ]
        except (KeyError, TypeError) as exc:
            raise ConfigError(f"Invalid keyring record in {path}: {exc}") from exc
        if not records:
            raise ConfigError(f"Keyring {path} holds no keys")
        for record in records:
            algorithm_by_name(record.algorithm)
        active_key_id = str(data.get("active_key_id") or records[-1].key_id)
        ring = cls(path, records, active_key_id, algorithm)
        ring._record(active_key_id)
        return ring

    def save(self) -> None:
        payload = {
            "schema_version": SCHEMA_VERSION,
            "active_key_id": self._active_key_id,
            "keys": [
                {
                    "key_id": record.key_id,
                    "created_ts": record.created_ts,
                    "algorithm": record.algorithm,
                    "key_b64": record.key_b64,
                }
                for record in self._records
            ],
        }
        atomic_write_json(Path(self.path), payload, indent=2, mode=0o600)
