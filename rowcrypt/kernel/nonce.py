"""Nonce sequences for AEAD sealing.

A (key, nonce) pair must never be reused. Every sequence serializes
``advance()`` behind a lock so concurrent writers sharing one store can never
observe the same nonce.

- RandomNonceSequence: 96 random bits per call, no persisted state.
- CounterNonceSequence: prefix || big-endian counter. Deterministic. With a
  ``state_path`` it reserves counter blocks on disk before using them, so a
  restart under the same key resumes past anything already handed out.
"""

from __future__ import annotations

import os
import threading
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from rowcrypt.kernel.atomic_write import atomic_write_json, read_json
from rowcrypt.kernel.errors import ConfigError, NonceExhausted


DEFAULT_NONCE_LEN = 12
DEFAULT_PREFIX_LEN = 4
DEFAULT_RESERVE = 1024


@runtime_checkable
class NonceSequence(Protocol):
    nonce_len: int

    def advance(self) -> bytes:
        ...


class RandomNonceSequence:
    def __init__(self, nonce_len: int = DEFAULT_NONCE_LEN) -> None:
        if nonce_len < 8:
            raise ValueError("random nonces shorter than 64 bits are not safe")
        self.nonce_len = int(nonce_len)
        self._lock = threading.Lock()

    def advance(self) -> bytes:
        with self._lock:
            try:
                return os.urandom(self.nonce_len)
            except (NotImplementedError, OSError) as exc:
                raise NonceExhausted(f"OS random source unavailable: {exc}") from exc

    def __repr__(self) -> str:
        return f"RandomNonceSequence(nonce_len={self.nonce_len})"


class CounterNonceSequence:
    def __init__(
        self,
        start: int = 0,
        *,
        prefix: bytes = b"\x00" * DEFAULT_PREFIX_LEN,
        nonce_len: int = DEFAULT_NONCE_LEN,
        state_path: str | os.PathLike[str] | None = None,
        reserve: int = DEFAULT_RESERVE,
    ) -> None:
        prefix = bytes(prefix)
        counter_len = int(nonce_len) - len(prefix)
        if counter_len < 4:
            raise ValueError("counter must be at least 32 bits wide")
        if start < 0:
            raise ValueError("counter start must be non-negative")
        if reserve < 1:
            raise ValueError("reserve must be positive")
        self.nonce_len = int(nonce_len)
        self._prefix = prefix
        self._counter_len = counter_len
        self._limit = 1 << (8 * counter_len)
        self._reserve = int(reserve)
        self._state_path = Path(state_path) if state_path is not None else None
        self._lock = threading.Lock()
        self._next = int(start)
        self._reserved = 0
        if self._state_path is not None and self._state_path.exists():
            stored = self._load_state(self._state_path)
            if stored["prefix"] != prefix.hex():
                raise ConfigError(f"Nonce state prefix mismatch in {self._state_path}")
            self._next = max(self._next, int(stored["next_reserved"]))
            self._reserved = self._next

    @staticmethod
    def _load_state(path: Path) -> dict[str, Any]:
        try:
            data = read_json(path)
            return {"prefix": str(data["prefix"]), "next_reserved": int(data["next_reserved"])}
        except (OSError, ValueError, KeyError, TypeError) as exc:
            raise ConfigError(f"Invalid nonce state file {path}: {exc}") from exc

    @property
    def position(self) -> int:
        """Counter value the next call to ``advance`` will use."""
        return self._next

    def _reserve_block(self) -> None:
        upper = min(self._next + self._reserve, self._limit)
        try:
            atomic_write_json(
                self._state_path,
                {"prefix": self._prefix.hex(), "next_reserved": upper},
            )
        except OSError as exc:
            raise NonceExhausted(f"Cannot persist nonce reservation: {exc}") from exc
        self._reserved = upper

    def advance(self) -> bytes:
        with self._lock:
            if self._next >= self._limit:
                raise NonceExhausted(f"{self._counter_len * 8}-bit nonce counter exhausted")
            if self._state_path is not None and self._next >= self._reserved:
                self._reserve_block()
            value = self._next
            self._next += 1
        return self._prefix + value.to_bytes(self._counter_len, "big")

    def __repr__(self) -> str:
        return f"CounterNonceSequence(position={self._next}, nonce_len={self.nonce_len})"


def nonce_sequence_from_config(crypto_cfg: dict[str, Any], nonce_len: int) -> NonceSequence:
    nonce_cfg = crypto_cfg.get("nonce", {}) if isinstance(crypto_cfg, dict) else {}
    strategy = str(nonce_cfg.get("strategy", "random")).strip().lower()
    if strategy == "random":
        return RandomNonceSequence(nonce_len)
    if strategy == "counter":
        # Keys outlive the process (keyring), so a configured counter must persist.
        state_path = nonce_cfg.get("state_path") or None
        if state_path is None:
            raise ConfigError("counter nonce strategy requires crypto.nonce.state_path")
        prefix_hex = str(nonce_cfg.get("prefix_hex") or "")
        try:
            prefix = bytes.fromhex(prefix_hex) if prefix_hex else b"\x00" * DEFAULT_PREFIX_LEN
            return CounterNonceSequence(
                prefix=prefix,
                nonce_len=nonce_len,
                state_path=state_path,
                reserve=int(nonce_cfg.get("reserve", DEFAULT_RESERVE)),
            )
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid counter nonce config: {exc}") from exc
    raise ConfigError(f"Unsupported nonce strategy: {strategy}")
