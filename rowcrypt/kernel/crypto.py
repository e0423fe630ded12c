"""AEAD cipher engine for field-level encryption at rest."""

from __future__ import annotations

import hashlib
import hmac
import os
from dataclasses import dataclass
from typing import Any, Callable

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM, ChaCha20Poly1305

from rowcrypt.kernel.errors import ConfigError, EncryptionError


@dataclass(frozen=True)
class AeadAlgorithm:
    name: str
    key_len: int
    nonce_len: int
    tag_len: int
    factory: Callable[[bytes], Any]


AES_256_GCM = AeadAlgorithm("aes-256-gcm", key_len=32, nonce_len=12, tag_len=16, factory=AESGCM)
CHACHA20_POLY1305 = AeadAlgorithm(
    "chacha20-poly1305", key_len=32, nonce_len=12, tag_len=16, factory=ChaCha20Poly1305
)

ALGORITHMS: dict[str, AeadAlgorithm] = {alg.name: alg for alg in (AES_256_GCM, CHACHA20_POLY1305)}


def algorithm_by_name(name: str) -> AeadAlgorithm:
    try:
        return ALGORITHMS[str(name).strip().lower()]
    except KeyError:
        raise ConfigError(f"Unsupported AEAD algorithm: {name}") from None


class SealingKey:
    """Immutable key bound to one AEAD algorithm.

    The raw key bytes are kept private and never rendered by ``repr``; use
    ``key_id`` or ``fingerprint()`` when a key must be named in logs.
    """

    __slots__ = ("_key", "_algorithm", "_key_id")

    def __init__(self, key: bytes, algorithm: AeadAlgorithm = AES_256_GCM, *, key_id: str | None = None) -> None:
        if not isinstance(key, (bytes, bytearray)) or len(key) != algorithm.key_len:
            raise ValueError(f"{algorithm.name} key must be {algorithm.key_len} bytes")
        object.__setattr__(self, "_key", bytes(key))
        object.__setattr__(self, "_algorithm", algorithm)
        object.__setattr__(self, "_key_id", key_id)

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError("SealingKey is immutable")

    @classmethod
    def generate(cls, algorithm: AeadAlgorithm = AES_256_GCM, *, key_id: str | None = None) -> "SealingKey":
        return cls(os.urandom(algorithm.key_len), algorithm, key_id=key_id)

    @property
    def algorithm(self) -> AeadAlgorithm:
        return self._algorithm

    @property
    def key_id(self) -> str:
        return self._key_id or self.fingerprint()

    def fingerprint(self) -> str:
        digest = hashlib.sha256(b"rowcrypt.key.fingerprint\x00" + self._key).hexdigest()
        return f"fp:{digest[:16]}"

    def raw_bytes(self) -> bytes:
        return self._key

    def _check_nonce(self, nonce: bytes) -> None:
        if len(nonce) != self._algorithm.nonce_len:
            raise ValueError(f"{self._algorithm.name} nonce must be {self._algorithm.nonce_len} bytes")

    def seal(self, nonce: bytes, plaintext: bytes, aad: bytes | None = None) -> bytes:
        """Return ``ciphertext || tag``."""
        self._check_nonce(nonce)
        return self._algorithm.factory(self._key).encrypt(nonce, plaintext, aad)

    def open(self, nonce: bytes, sealed: bytes, aad: bytes | None = None) -> bytes:
        self._check_nonce(nonce)
        try:
            return self._algorithm.factory(self._key).decrypt(nonce, sealed, aad)
        except InvalidTag:
            raise EncryptionError("authentication failed (wrong key or tampered data)") from None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SealingKey):
            return NotImplemented
        return self._algorithm == other._algorithm and hmac.compare_digest(self._key, other._key)

    def __hash__(self) -> int:
        return hash((self._algorithm.name, self.fingerprint()))

    def __repr__(self) -> str:
        return f"SealingKey(algorithm={self._algorithm.name!r}, key_id={self.key_id!r})"
