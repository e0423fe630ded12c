"""Kernel error types."""


class RowcryptError(Exception):
    """Base error for rowcrypt."""


class ConfigError(RowcryptError):
    """Raised when configuration or keyring validation fails."""


class StoreError(RowcryptError):
    """Raised by a row store; the error contract every store method honours."""


class CryptoError(StoreError):
    """Base for failures of the encryption layer itself."""


class SerializationError(CryptoError):
    """Raised when a value cannot be encoded to or decoded from bytes."""


class EncryptionError(CryptoError):
    """Raised when AEAD sealing or opening fails (wrong key, tampering)."""


class NonceExhausted(EncryptionError):
    """Raised when a nonce sequence cannot produce a fresh nonce."""


class InvalidValue(CryptoError):
    """Raised when stored bytes cannot hold a blob or a row is missing."""


class InvalidKey(CryptoError):
    """Raised when a key cannot decrypt data already in the store."""
