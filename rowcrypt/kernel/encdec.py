"""Per-value and per-row encryption.

Encrypted value layout (stored as plain ``bytes``)::

    nonce (12) || sealed codec payload || tag (16)

The nonce doubles as associated data, so a blob whose nonce has been swapped
for another one fails authentication.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from rowcrypt.kernel.codec import decode_value, encode_value
from rowcrypt.kernel.crypto import SealingKey
from rowcrypt.kernel.data import DataRow
from rowcrypt.kernel.errors import InvalidValue
from rowcrypt.kernel.nonce import NonceSequence


_BINARY_TYPES = (bytes, bytearray, memoryview)


def is_blob_shaped(value: Any) -> bool:
    return isinstance(value, _BINARY_TYPES)


def encrypt_value(key: SealingKey, nonce_sequence: NonceSequence, value: Any) -> bytes:
    nonce = nonce_sequence.advance()
    plaintext = encode_value(value)
    sealed = key.seal(nonce, plaintext, aad=nonce)
    return nonce + sealed


def decrypt_value(key: SealingKey, value: Any) -> tuple[Any, bool]:
    """Open ``value`` if it is a blob.

    Returns ``(plaintext_value, True)`` when decryption was applied, or
    ``(value, False)`` for a non-binary value such as a column default that
    never went through the encryption layer.
    """
    if not is_blob_shaped(value):
        return value, False
    blob = bytes(value)
    nonce_len = key.algorithm.nonce_len
    if len(blob) < nonce_len + key.algorithm.tag_len:
        raise InvalidValue(f"encrypted value too short ({len(blob)} bytes)")
    nonce, sealed = blob[:nonce_len], blob[nonce_len:]
    plaintext = key.open(nonce, sealed, aad=nonce)
    return decode_value(plaintext), True


def _map_row(row: DataRow, fn) -> DataRow:
    if isinstance(row, Mapping):
        return {column: fn(value) for column, value in row.items()}
    if isinstance(row, (list, tuple)):
        return [fn(value) for value in row]
    raise TypeError(f"row must be a list or a mapping, got {type(row).__name__}")


def encrypt_row(key: SealingKey, nonce_sequence: NonceSequence, row: DataRow) -> DataRow:
    return _map_row(row, lambda value: encrypt_value(key, nonce_sequence, value))


def decrypt_row(key: SealingKey, row: DataRow) -> DataRow:
    return _map_row(row, lambda value: decrypt_value(key, value)[0])


def rekey_row(
    old_key: SealingKey,
    new_key: SealingKey,
    nonce_sequence: NonceSequence,
    row: DataRow,
) -> DataRow:
    # Plaintext defaults come out of the old-key pass untouched and are sealed
    # under the new key like everything else.
    def _rekey(value: Any) -> bytes:
        plain, _applied = decrypt_value(old_key, value)
        return encrypt_value(new_key, nonce_sequence, plain)

    return _map_row(row, _rekey)
