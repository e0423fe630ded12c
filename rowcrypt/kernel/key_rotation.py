"""Keyring-driven data key rotation for encrypted row stores."""

from __future__ import annotations

from typing import Any

from rowcrypt.kernel.keyring import KeyRing
from rowcrypt.kernel.logging import NullLogger
from rowcrypt.kernel.nonce import NonceSequence


async def rotate_store_key(
    store: Any,
    keyring: KeyRing,
    *,
    nonce_sequence: NonceSequence | None = None,
    logger: Any = None,
) -> Any:
    """Re-encrypt every row of ``store`` under a fresh keyring key.

    ``store`` is an ``EncryptedStore``. The new key record is written to the
    keyring before any row is touched and only becomes the active key once
    ``change_key`` completes. On failure the old key stays active, the new
    record is kept (rows already rotated need it), and the error is re-raised.
    Returns the ``EncryptedStore`` bound to the new key.
    """
    logger = logger or NullLogger()
    old_key_id = keyring.active_key_id
    new_key_id = keyring.add_key(activate=False)
    new_key = keyring.key_for(new_key_id)
    logger.event(
        event="key_rotation.start",
        component="key_rotation",
        old_key_id=old_key_id,
        new_key_id=new_key_id,
    )
    try:
        rotated = await store.change_key(new_key, nonce_sequence=nonce_sequence)
    except Exception as exc:
        logger.event(
            event="key_rotation.error",
            component="key_rotation",
            level="error",
            old_key_id=old_key_id,
            new_key_id=new_key_id,
            error=type(exc).__name__,
        )
        raise
    keyring.set_active(new_key_id)
    logger.event(
        event="key_rotation.commit",
        component="key_rotation",
        old_key_id=old_key_id,
        new_key_id=new_key_id,
    )
    return rotated
