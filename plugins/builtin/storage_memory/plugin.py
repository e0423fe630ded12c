"""In-memory row storage plugin (reference engine)."""

from __future__ import annotations

from collections.abc import Mapping
from copy import deepcopy
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Iterable

from rowcrypt.kernel.data import (
    ColumnDef,
    CustomFunction,
    DataRow,
    IndexOperator,
    OrderByExpr,
    Referencing,
    RowKey,
    Schema,
)
from rowcrypt.kernel.errors import StoreError
from rowcrypt.plugin_system.api import PluginBase, PluginContext


def _key_order(key: RowKey) -> tuple[str, Any]:
    return (type(key).__name__, key)


async def _iterate(items: Iterable[Any]) -> AsyncIterator[Any]:
    for item in items:
        yield item


class _Table:
    def __init__(self, schema: Schema) -> None:
        self.schema = schema
        self.rows: dict[RowKey, DataRow] = {}
        self.next_id = 0
        self.created = datetime.now(timezone.utc)

    def sorted_rows(self) -> list[tuple[RowKey, DataRow]]:
        return [(key, deepcopy(self.rows[key])) for key in sorted(self.rows, key=_key_order)]


class MemoryStorage:
    """Dict-backed row store implementing the full async row-store contract.

    Rows are stored exactly as handed in, so wrapping this store with
    ``EncryptedStore`` leaves only sealed blobs here. Rows crossing the
    boundary in either direction are deep copies.
    """

    def __init__(self) -> None:
        self._tables: dict[str, _Table] = {}
        self._functions: dict[str, CustomFunction] = {}

    def _table(self, table_name: str) -> _Table:
        table = self._tables.get(table_name)
        if table is None:
            raise StoreError(f"[MemoryStorage] table not found: {table_name}")
        return table

    # Store

    async def fetch_schema(self, table_name: str) -> Schema | None:
        table = self._tables.get(table_name)
        return deepcopy(table.schema) if table is not None else None

    async def fetch_all_schemas(self) -> list[Schema]:
        return [deepcopy(self._tables[name].schema) for name in sorted(self._tables)]

    async def fetch_data(self, table_name: str, key: RowKey) -> DataRow | None:
        table = self._tables.get(table_name)
        if table is None or key not in table.rows:
            return None
        return deepcopy(table.rows[key])

    async def scan_data(self, table_name: str) -> AsyncIterator[tuple[RowKey, DataRow]]:
        table = self._tables.get(table_name)
        return _iterate(table.sorted_rows() if table is not None else [])

    async def fetch_referencings(self, table_name: str) -> list[Referencing]:
        referencings: list[Referencing] = []
        for name in sorted(self._tables):
            for foreign_key in self._tables[name].schema.foreign_keys:
                if foreign_key.referenced_table == table_name:
                    referencings.append(Referencing(table_name=name, foreign_key=foreign_key))
        return referencings

    # StoreMut

    async def insert_schema(self, schema: Schema) -> None:
        existing = self._tables.get(schema.table_name)
        if existing is not None:
            existing.schema = deepcopy(schema)
            return
        self._tables[schema.table_name] = _Table(deepcopy(schema))

    async def delete_schema(self, table_name: str) -> None:
        self._tables.pop(table_name, None)

    async def append_data(self, table_name: str, rows: list[DataRow]) -> None:
        table = self._table(table_name)
        for row in rows:
            table.rows[table.next_id] = deepcopy(row)
            table.next_id += 1

    async def insert_data(self, table_name: str, rows: list[tuple[RowKey, DataRow]]) -> None:
        table = self._table(table_name)
        for key, row in rows:
            table.rows[key] = deepcopy(row)
            if isinstance(key, int) and not isinstance(key, bool) and key >= table.next_id:
                table.next_id = key + 1

    async def delete_data(self, table_name: str, keys: list[RowKey]) -> None:
        table = self._table(table_name)
        for key in keys:
            table.rows.pop(key, None)

    # AlterTable

    async def rename_schema(self, table_name: str, new_table_name: str) -> None:
        table = self._table(table_name)
        if new_table_name in self._tables:
            raise StoreError(f"[MemoryStorage] table already exists: {new_table_name}")
        del self._tables[table_name]
        table.schema.table_name = new_table_name
        self._tables[new_table_name] = table

    def _column_defs(self, table: _Table) -> list[ColumnDef]:
        if table.schema.column_defs is None:
            raise StoreError(f"[MemoryStorage] schemaless table cannot be altered: {table.schema.table_name}")
        return table.schema.column_defs

    async def rename_column(self, table_name: str, column_name: str, new_column_name: str) -> None:
        table = self._table(table_name)
        column_defs = self._column_defs(table)
        names = [column.name for column in column_defs]
        if column_name not in names:
            raise StoreError(f"[MemoryStorage] column not found: {column_name}")
        if new_column_name in names:
            raise StoreError(f"[MemoryStorage] column already exists: {new_column_name}")
        idx = names.index(column_name)
        old = column_defs[idx]
        column_defs[idx] = ColumnDef(
            name=new_column_name,
            data_type=old.data_type,
            nullable=old.nullable,
            default=old.default,
            unique=old.unique,
            comment=old.comment,
        )
        for key, row in table.rows.items():
            if isinstance(row, Mapping) and column_name in row:
                table.rows[key] = {
                    (new_column_name if name == column_name else name): value for name, value in row.items()
                }

    async def add_column(self, table_name: str, column_def: ColumnDef) -> None:
        table = self._table(table_name)
        column_defs = self._column_defs(table)
        if column_def.name in (column.name for column in column_defs):
            raise StoreError(f"[MemoryStorage] column already exists: {column_def.name}")
        if column_def.default is None and not column_def.nullable:
            raise StoreError(f"[MemoryStorage] default value is required: {column_def.name}")
        column_defs.append(column_def)
        # Existing rows get the literal default, bypassing any encryption layer above.
        for row in table.rows.values():
            if isinstance(row, Mapping):
                row[column_def.name] = deepcopy(column_def.default)
            else:
                row.append(deepcopy(column_def.default))

    async def drop_column(self, table_name: str, column_name: str, if_exists: bool) -> None:
        table = self._table(table_name)
        column_defs = self._column_defs(table)
        names = [column.name for column in column_defs]
        if column_name not in names:
            if if_exists:
                return
            raise StoreError(f"[MemoryStorage] column not found: {column_name}")
        idx = names.index(column_name)
        del column_defs[idx]
        for row in table.rows.values():
            if isinstance(row, Mapping):
                row.pop(column_name, None)
            elif idx < len(row):
                del row[idx]

    # Index

    async def scan_indexed_data(
        self,
        table_name: str,
        index_name: str,
        asc: bool | None = None,
        cmp_value: tuple[IndexOperator, Any] | None = None,
    ) -> AsyncIterator[tuple[RowKey, DataRow]]:
        raise StoreError("[MemoryStorage] index is not supported")

    async def create_index(self, table_name: str, index_name: str, column: OrderByExpr) -> None:
        raise StoreError("[MemoryStorage] index is not supported")

    async def drop_index(self, table_name: str, index_name: str) -> None:
        raise StoreError("[MemoryStorage] index is not supported")

    # Metadata

    async def scan_table_meta(self) -> AsyncIterator[tuple[str, dict[str, Any]]]:
        return _iterate([(name, {"CREATED": self._tables[name].created}) for name in sorted(self._tables)])

    # Transaction

    async def begin(self, autocommit: bool) -> bool:
        if autocommit:
            return False
        raise StoreError("[MemoryStorage] transaction is not supported")

    async def commit(self) -> None:
        return None

    async def rollback(self) -> None:
        return None

    # CustomFunctionStore / CustomFunctionStoreMut

    async def fetch_function(self, func_name: str) -> CustomFunction | None:
        return self._functions.get(func_name)

    async def fetch_all_functions(self) -> list[CustomFunction]:
        return [self._functions[name] for name in sorted(self._functions)]

    async def insert_function(self, func: CustomFunction) -> None:
        self._functions[func.func_name] = func

    async def delete_function(self, func_name: str) -> None:
        self._functions.pop(func_name, None)


class StorageMemoryPlugin(PluginBase):
    def __init__(self, plugin_id: str, context: PluginContext) -> None:
        super().__init__(plugin_id, context)
        self._rows = MemoryStorage()

    def capabilities(self) -> dict[str, Any]:
        return {"storage.rows": self._rows}


def create_plugin(plugin_id: str, context: PluginContext) -> StorageMemoryPlugin:
    return StorageMemoryPlugin(plugin_id, context)
