"""Row-store data model shared by stores and the encryption layer.

Values are plain Python objects (see ``rowcrypt.kernel.codec`` for the
supported set). Rows are either positional (``list``) or named (``dict``).
Schemas, keys and everything in this module are never encrypted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Hashable, Union


DataRow = Union[list[Any], dict[str, Any]]
RowKey = Hashable


class DataType(str, Enum):
    BOOLEAN = "BOOLEAN"
    INT8 = "INT8"
    INT16 = "INT16"
    INT32 = "INT32"
    INT = "INT"
    INT128 = "INT128"
    FLOAT32 = "FLOAT32"
    FLOAT = "FLOAT"
    DECIMAL = "DECIMAL"
    TEXT = "TEXT"
    BYTEA = "BYTEA"
    INET = "INET"
    DATE = "DATE"
    TIMESTAMP = "TIMESTAMP"
    TIME = "TIME"
    INTERVAL = "INTERVAL"
    UUID = "UUID"
    MAP = "MAP"
    LIST = "LIST"


class IndexOperator(str, Enum):
    GT = ">"
    LT = "<"
    GT_EQ = ">="
    LT_EQ = "<="
    EQ = "="


@dataclass(frozen=True)
class ColumnDef:
    name: str
    data_type: DataType
    nullable: bool = True
    default: Any = None
    unique: bool = False
    comment: str | None = None


@dataclass(frozen=True)
class OrderByExpr:
    column: str
    asc: bool | None = None


@dataclass(frozen=True)
class SchemaIndex:
    name: str
    expr: OrderByExpr
    created: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class ForeignKey:
    name: str
    referencing_columns: tuple[str, ...]
    referenced_table: str
    referenced_columns: tuple[str, ...]


@dataclass
class Schema:
    table_name: str
    column_defs: list[ColumnDef] | None = None
    indexes: list[SchemaIndex] = field(default_factory=list)
    engine: str | None = None
    foreign_keys: list[ForeignKey] = field(default_factory=list)
    comment: str | None = None

    def column_names(self) -> list[str]:
        return [column.name for column in self.column_defs or []]


@dataclass(frozen=True)
class Referencing:
    table_name: str
    foreign_key: ForeignKey


@dataclass(frozen=True)
class FunctionArg:
    name: str
    data_type: DataType
    default: Any = None


@dataclass(frozen=True)
class CustomFunction:
    func_name: str
    args: tuple[FunctionArg, ...] = ()
    body: str = ""
