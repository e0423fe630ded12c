"""Row-store capability contract.

Stores satisfy these protocols structurally; nothing has to inherit from them.
Every method is a coroutine. Scans resolve to an async iterator of
``(key, row)`` pairs that can be consumed once. Failures are reported as
``rowcrypt.kernel.errors.StoreError``.
"""

from __future__ import annotations

from typing import Any, AsyncIterator, Protocol, runtime_checkable

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


RowIter = AsyncIterator[tuple[RowKey, DataRow]]
MetaIter = AsyncIterator[tuple[str, dict[str, Any]]]


@runtime_checkable
class Store(Protocol):
    async def fetch_schema(self, table_name: str) -> Schema | None: ...

    async def fetch_all_schemas(self) -> list[Schema]: ...

    async def fetch_data(self, table_name: str, key: RowKey) -> DataRow | None: ...

    async def scan_data(self, table_name: str) -> RowIter: ...

    async def fetch_referencings(self, table_name: str) -> list[Referencing]: ...


@runtime_checkable
class StoreMut(Protocol):
    async def insert_schema(self, schema: Schema) -> None: ...

    async def delete_schema(self, table_name: str) -> None: ...

    async def append_data(self, table_name: str, rows: list[DataRow]) -> None: ...

    async def insert_data(self, table_name: str, rows: list[tuple[RowKey, DataRow]]) -> None: ...

    async def delete_data(self, table_name: str, keys: list[RowKey]) -> None: ...


@runtime_checkable
class AlterTable(Protocol):
    async def rename_schema(self, table_name: str, new_table_name: str) -> None: ...

    async def rename_column(self, table_name: str, column_name: str, new_column_name: str) -> None: ...

    async def add_column(self, table_name: str, column_def: ColumnDef) -> None: ...

    async def drop_column(self, table_name: str, column_name: str, if_exists: bool) -> None: ...


@runtime_checkable
class Index(Protocol):
    async def scan_indexed_data(
        self,
        table_name: str,
        index_name: str,
        asc: bool | None = None,
        cmp_value: tuple[IndexOperator, Any] | None = None,
    ) -> RowIter: ...


@runtime_checkable
class IndexMut(Protocol):
    async def create_index(self, table_name: str, index_name: str, column: OrderByExpr) -> None: ...

    async def drop_index(self, table_name: str, index_name: str) -> None: ...


@runtime_checkable
class Metadata(Protocol):
    async def scan_table_meta(self) -> MetaIter: ...


@runtime_checkable
class Transaction(Protocol):
    async def begin(self, autocommit: bool) -> bool: ...

    async def commit(self) -> None: ...

    async def rollback(self) -> None: ...


@runtime_checkable
class CustomFunctionStore(Protocol):
    async def fetch_function(self, func_name: str) -> CustomFunction | None: ...

    async def fetch_all_functions(self) -> list[CustomFunction]: ...


@runtime_checkable
class CustomFunctionStoreMut(Protocol):
    async def insert_function(self, func: CustomFunction) -> None: ...

    async def delete_function(self, func_name: str) -> None: ...


@runtime_checkable
class RowStore(
    Store,
    StoreMut,
    AlterTable,
    Index,
    IndexMut,
    Metadata,
    Transaction,
    CustomFunctionStore,
    CustomFunctionStoreMut,
    Protocol,
):
    """The full capability set a store decorator wraps."""
