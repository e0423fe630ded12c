"""Configuration loading, merging, and validation."""

from __future__ import annotations

import json
import os
from copy import deepcopy
from pathlib import Path
from typing import Any

from .errors import ConfigError


DEFAULT_CONFIG: dict[str, Any] = {
    "storage": {
        "data_dir": "data",
    },
    "crypto": {
        "algorithm": "aes-256-gcm",
        "keyring_path": "",
        "validate_key": True,
        "nonce": {
            "strategy": "random",
            "state_path": "",
            "prefix_hex": "",
            "reserve": 1024,
        },
    },
    "logging": {
        "level": "info",
        "rotate_max_bytes": 5_000_000,
    },
}

CONFIG_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["storage", "crypto", "logging"],
    "properties": {
        "storage": {
            "type": "object",
            "required": ["data_dir"],
            "properties": {"data_dir": {"type": "string"}},
        },
        "crypto": {
            "type": "object",
            "required": ["algorithm", "keyring_path", "nonce"],
            "properties": {
                "algorithm": {"type": "string", "enum": ["aes-256-gcm", "chacha20-poly1305"]},
                "keyring_path": {"type": "string"},
                "validate_key": {"type": "boolean"},
                "nonce": {
                    "type": "object",
                    "required": ["strategy"],
                    "additionalProperties": False,
                    "properties": {
                        "strategy": {"type": "string", "enum": ["random", "counter"]},
                        "state_path": {"type": "string"},
                        "prefix_hex": {"type": "string"},
                        "reserve": {"type": "integer", "minimum": 1},
                    },
                },
            },
        },
        "logging": {
            "type": "object",
            "properties": {
                "level": {"type": "string", "enum": ["debug", "info", "warning", "error"]},
                "rotate_max_bytes": {"type": "integer", "minimum": 1024},
            },
        },
    },
}


def _load_json(path: Path) -> dict[str, Any]:
    try:
        with Path(path).open("r", encoding="utf-8") as handle:
            data = json.load(handle)
    except FileNotFoundError:
        raise ConfigError(f"Missing config file: {path}")
    except ValueError as exc:
        raise ConfigError(f"Invalid JSON in config file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object")
    return data


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = deepcopy(value)
    return merged


class SchemaLiteValidator:
    """Minimal schema validator supporting object/array/scalar types."""

    _TYPES: dict[str, type | tuple[type, ...]] = {
        "object": dict,
        "array": list,
        "string": str,
        "integer": int,
        "number": (int, float),
        "boolean": bool,
        "null": type(None),
    }

    def validate(self, schema: dict[str, Any], data: Any, path: str = "$") -> None:
        if "enum" in schema and data not in schema["enum"]:
            raise ConfigError(f"{path}: value {data!r} not in enum {schema['enum']}")
        expected = schema.get("type")
        if expected:
            self._validate_type(expected, data, path)
        if expected == "object":
            self._validate_object(schema, data, path)
        elif expected == "array":
            items = schema.get("items")
            if items is not None:
                for idx, item in enumerate(data):
                    self.validate(items, item, f"{path}[{idx}]")
        elif expected in ("integer", "number"):
            minimum = schema.get("minimum")
            if minimum is not None and data < minimum:
                raise ConfigError(f"{path}: value {data} below minimum {minimum}")

    def _validate_type(self, expected: str, data: Any, path: str) -> None:
        if expected not in self._TYPES:
            raise ConfigError(f"{path}: unsupported schema type {expected}")
        if not isinstance(data, self._TYPES[expected]):
            raise ConfigError(f"{path}: expected {expected}, got {type(data).__name__}")
        if expected in ("integer", "number") and isinstance(data, bool):
            raise ConfigError(f"{path}: expected {expected}, got boolean")

    def _validate_object(self, schema: dict[str, Any], data: dict[str, Any], path: str) -> None:
        for key in schema.get("required", []):
            if key not in data:
                raise ConfigError(f"{path}: missing required field {key}")
        properties = schema.get("properties", {})
        additional = schema.get("additionalProperties", True)
        for key, value in data.items():
            if key in properties:
                self.validate(properties[key], value, f"{path}.{key}")
            elif additional is False:
                raise ConfigError(f"{path}: unexpected field {key}")


validator = SchemaLiteValidator()


def _apply_env_overrides(config: dict[str, Any]) -> dict[str, Any]:
    data_dir = str(os.environ.get("ROWCRYPT_DATA_DIR") or "").strip()
    if data_dir:
        config["storage"]["data_dir"] = data_dir
    algorithm = str(os.environ.get("ROWCRYPT_AEAD_ALGORITHM") or "").strip().lower()
    if algorithm:
        config["crypto"]["algorithm"] = algorithm
    strategy = str(os.environ.get("ROWCRYPT_NONCE_STRATEGY") or "").strip().lower()
    if strategy:
        config["crypto"]["nonce"]["strategy"] = strategy
    return config


def _apply_path_defaults(config: dict[str, Any]) -> dict[str, Any]:
    data_dir = Path(config["storage"]["data_dir"])
    crypto = config["crypto"]
    if not crypto.get("keyring_path"):
        crypto["keyring_path"] = str(data_dir / "vault" / "keyring.json")
    nonce = crypto["nonce"]
    if nonce.get("strategy") == "counter" and not nonce.get("state_path"):
        nonce["state_path"] = str(data_dir / "vault" / "nonce_state.json")
    return config


def validate_config(data: dict[str, Any]) -> None:
    validator.validate(CONFIG_SCHEMA, data)


def load_config(user_path: Path | None = None, *, overrides: dict[str, Any] | None = None) -> dict[str, Any]:
    config = deepcopy(DEFAULT_CONFIG)
    if user_path is not None and Path(user_path).exists():
        config = _deep_merge(config, _load_json(Path(user_path)))
    if overrides:
        config = _deep_merge(config, overrides)
    if not all(isinstance(config.get(section), dict) for section in ("storage", "crypto", "logging")):
        raise ConfigError("storage, crypto and logging sections must be objects")
    if not isinstance(config["crypto"].get("nonce"), dict):
        raise ConfigError("$.crypto.nonce: expected object")
    config = _apply_env_overrides(config)
    config = _apply_path_defaults(config)
    validate_config(config)
    return config
