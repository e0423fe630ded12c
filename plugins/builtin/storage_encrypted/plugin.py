"""Encrypted row storage plugin using AEAD field-level encryption."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, AsyncIterator

from rowcrypt.kernel.crypto import SealingKey, algorithm_by_name
from rowcrypt.kernel.data import DataRow, IndexOperator, RowKey
from rowcrypt.kernel.encdec import decrypt_row, decrypt_value, encrypt_row, is_blob_shaped, rekey_row
from rowcrypt.kernel.errors import EncryptionError, InvalidKey, InvalidValue
from rowcrypt.kernel.key_rotation import rotate_store_key
from rowcrypt.kernel.keyring import KeyRing
from rowcrypt.kernel.logging import NullLogger
from rowcrypt.kernel.nonce import NonceSequence, RandomNonceSequence, nonce_sequence_from_config
from rowcrypt.plugin_system.api import PluginBase, PluginContext


COMPONENT = "storage.encrypted"


def _forward(name: str):
    async def method(self, *args, **kwargs):
        return await getattr(self._store, name)(*args, **kwargs)

    method.__name__ = name
    method.__qualname__ = f"EncryptedStore.{name}"
    method.__doc__ = f"Forward ``{name}`` to the wrapped store unchanged."
    return method


class EncryptedStore:
    """Row store decorator that seals every value written and opens every value read.

    The wrapped store only ever sees ``bytes`` blobs for values written
    through this layer. Schemas, keys, indexes, transactions, metadata and
    custom functions pass through untouched.
    """

    def __init__(
        self,
        store: Any,
        key: SealingKey,
        nonce_sequence: NonceSequence | None = None,
        *,
        logger: Any = None,
    ) -> None:
        if nonce_sequence is None:
            nonce_sequence = RandomNonceSequence(key.algorithm.nonce_len)
        if nonce_sequence.nonce_len != key.algorithm.nonce_len:
            raise ValueError(
                f"nonce sequence yields {nonce_sequence.nonce_len}-byte nonces, "
                f"{key.algorithm.name} needs {key.algorithm.nonce_len}"
            )
        self._store = store
        self._key = key
        self._nonce_sequence = nonce_sequence
        self._logger = logger or NullLogger()

    @classmethod
    async def open(
        cls,
        store: Any,
        key: SealingKey,
        nonce_sequence: NonceSequence | None = None,
        *,
        validate: bool = True,
        logger: Any = None,
    ) -> "EncryptedStore":
        encrypted = cls(store, key, nonce_sequence, logger=logger)
        if validate:
            await encrypted.verify_key()
        return encrypted

    @property
    def key(self) -> SealingKey:
        return self._key

    @property
    def nonce_sequence(self) -> NonceSequence:
        return self._nonce_sequence

    @property
    def inner(self) -> Any:
        return self._store

    def __repr__(self) -> str:
        return f"EncryptedStore(store={type(self._store).__name__}, key={self._key!r})"

    # Pass-through

    fetch_schema = _forward("fetch_schema")
    fetch_all_schemas = _forward("fetch_all_schemas")
    fetch_referencings = _forward("fetch_referencings")
    insert_schema = _forward("insert_schema")
    delete_schema = _forward("delete_schema")
    delete_data = _forward("delete_data")
    rename_schema = _forward("rename_schema")
    rename_column = _forward("rename_column")
    add_column = _forward("add_column")
    drop_column = _forward("drop_column")
    create_index = _forward("create_index")
    drop_index = _forward("drop_index")
    scan_table_meta = _forward("scan_table_meta")
    begin = _forward("begin")
    commit = _forward("commit")
    rollback = _forward("rollback")
    fetch_function = _forward("fetch_function")
    fetch_all_functions = _forward("fetch_all_functions")
    insert_function = _forward("insert_function")
    delete_function = _forward("delete_function")

    # Read path

    async def _decrypting(self, rows: AsyncIterator[tuple[RowKey, DataRow]]) -> AsyncIterator[tuple[RowKey, DataRow]]:
        async for key, row in rows:
            yield key, decrypt_row(self._key, row)

    async def fetch_data(self, table_name: str, key: RowKey) -> DataRow | None:
        row = await self._store.fetch_data(table_name, key)
        if row is None:
            return None
        return decrypt_row(self._key, row)

    async def scan_data(self, table_name: str) -> AsyncIterator[tuple[RowKey, DataRow]]:
        rows = await self._store.scan_data(table_name)
        return self._decrypting(rows)

    async def scan_indexed_data(
        self,
        table_name: str,
        index_name: str,
        asc: bool | None = None,
        cmp_value: tuple[IndexOperator, Any] | None = None,
    ) -> AsyncIterator[tuple[RowKey, DataRow]]:
        rows = await self._store.scan_indexed_data(table_name, index_name, asc, cmp_value)
        return self._decrypting(rows)

    # Write path

    async def append_data(self, table_name: str, rows: list[DataRow]) -> None:
        sealed = [encrypt_row(self._key, self._nonce_sequence, row) for row in rows]
        await self._store.append_data(table_name, sealed)
        self._logger.event(event="store.append", component=COMPONENT, level="debug", table=table_name, rows=len(sealed))

    async def insert_data(self, table_name: str, rows: list[tuple[RowKey, DataRow]]) -> None:
        sealed = [(key, encrypt_row(self._key, self._nonce_sequence, row)) for key, row in rows]
        await self._store.insert_data(table_name, sealed)
        self._logger.event(event="store.insert", component=COMPONENT, level="debug", table=table_name, rows=len(sealed))

    # Key checks and rotation

    async def verify_key(self) -> bool:
        """Probe the first sealed value in the store with the current key.

        Returns True when a value was opened, False when the store holds no
        sealed value to probe. Raises ``InvalidKey`` when the probe fails to
        authenticate.
        """
        for schema in await self._store.fetch_all_schemas():
            async for _row_key, row in await self._store.scan_data(schema.table_name):
                values = row.values() if isinstance(row, Mapping) else row
                for value in values:
                    if not is_blob_shaped(value):
                        continue
                    try:
                        decrypt_value(self._key, value)
                    except InvalidValue:
                        continue
                    except EncryptionError as exc:
                        self._logger.event(
                            event="store.key_invalid",
                            component=COMPONENT,
                            level="error",
                            table=schema.table_name,
                            key_id=self._key.key_id,
                        )
                        raise InvalidKey(f"key {self._key.key_id} cannot open data in table {schema.table_name}") from exc
                    self._logger.event(event="store.key_verified", component=COMPONENT, key_id=self._key.key_id)
                    return True
        self._logger.event(event="store.key_unverified", component=COMPONENT, key_id=self._key.key_id)
        return False

    async def change_key(
        self,
        new_key: SealingKey,
        *,
        nonce_sequence: NonceSequence | None = None,
    ) -> "EncryptedStore":
        """Re-encrypt every row under ``new_key``, one row at a time.

        Not atomic: a failure leaves earlier rows under ``new_key`` and the
        rest under the current key, and the error propagates unchanged.
        """
        rotated = EncryptedStore(
            self._store,
            new_key,
            nonce_sequence if nonce_sequence is not None else self._nonce_sequence,
            logger=self._logger,
        )
        sequence = rotated.nonce_sequence
        rows_rotated = 0
        table_name = ""
        self._logger.event(
            event="store.change_key.start",
            component=COMPONENT,
            old_key_id=self._key.key_id,
            new_key_id=new_key.key_id,
        )
        try:
            for schema in await self._store.fetch_all_schemas():
                table_name = schema.table_name
                row_keys = [row_key async for row_key, _row in await self._store.scan_data(table_name)]
                for row_key in row_keys:
                    row = await self._store.fetch_data(table_name, row_key)
                    if row is None:
                        raise InvalidValue(f"row disappeared during key rotation in table {table_name}")
                    await self._store.insert_data(table_name, [(row_key, rekey_row(self._key, new_key, sequence, row))])
                    rows_rotated += 1
        except Exception as exc:
            self._logger.event(
                event="store.change_key.aborted",
                component=COMPONENT,
                level="error",
                table=table_name,
                rows_rotated=rows_rotated,
                error=type(exc).__name__,
            )
            raise
        self._logger.event(
            event="store.change_key.done",
            component=COMPONENT,
            new_key_id=new_key.key_id,
            rows_rotated=rows_rotated,
        )
        return rotated


class EncryptedStoragePlugin(PluginBase):
    def __init__(self, plugin_id: str, context: PluginContext) -> None:
        super().__init__(plugin_id, context)
        config = context.config
        crypto_cfg = config.get("crypto", {})
        data_dir = config.get("storage", {}).get("data_dir", "data")
        algorithm = algorithm_by_name(str(crypto_cfg.get("algorithm", "aes-256-gcm")))
        keyring_path = crypto_cfg.get("keyring_path") or f"{data_dir}/vault/keyring.json"
        self._keyring = KeyRing.load(keyring_path, algorithm)
        active_key = self._keyring.active_key()
        self._validate = bool(crypto_cfg.get("validate_key", True))
        nonce_cfg = dict(crypto_cfg.get("nonce") or {})
        if str(nonce_cfg.get("strategy", "random")).strip().lower() == "counter" and not nonce_cfg.get("state_path"):
            nonce_cfg["state_path"] = f"{data_dir}/vault/nonce_state.json"
        self._store = EncryptedStore(
            context.require_capability("storage.rows"),
            active_key,
            nonce_sequence_from_config({**crypto_cfg, "nonce": nonce_cfg}, active_key.algorithm.nonce_len),
            logger=context.events,
        )

    async def open_store(self) -> EncryptedStore:
        if self._validate:
            await self._store.verify_key()
        return self._store

    async def rotate_key(self) -> str:
        self._store = await rotate_store_key(self._store, self._keyring, logger=self.context.events)
        return self._store.key.key_id

    def capabilities(self) -> dict[str, Any]:
        return {
            "storage.rows": self._store,
            "storage.keyring": self._keyring,
        }


def create_plugin(plugin_id: str, context: PluginContext) -> EncryptedStoragePlugin:
    return EncryptedStoragePlugin(plugin_id, context)
