"""
Logical types of the upstream engine.

A row produced by the engine is described by a RowType: an ordered sequence of
(name, LogicalType) pairs. Rows themselves are plain Python sequences holding one
value per field, or mappings keyed by field name.
"""

import datetime
import decimal
import logging
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TypeAlias

from icepod.errors import ConfigurationError

logger = logging.getLogger(__name__)


class SqlType(Enum):
    ARRAY = "ARRAY"
    MAP = "MAP"
    STRING = "STRING"
    BOOLEAN = "BOOLEAN"
    TINYINT = "TINYINT"
    SMALLINT = "SMALLINT"
    INT = "INT"
    BIGINT = "BIGINT"
    FLOAT = "FLOAT"
    DOUBLE = "DOUBLE"
    DECIMAL = "DECIMAL"
    NULL = "NULL"
    BYTES = "BYTES"
    DATE = "DATE"
    TIME = "TIME"
    TIMESTAMP = "TIMESTAMP"
    ROW = "ROW"


@dataclass(frozen=True)
class LogicalType:
    sql_type: SqlType
    python_type: type = object

    def __str__(self) -> str:
        return self.sql_type.value


@dataclass(frozen=True)
class DecimalType(LogicalType):
    precision: int = 38
    scale: int = 18
    sql_type: SqlType = field(default=SqlType.DECIMAL, init=False)
    python_type: type = field(default=decimal.Decimal, init=False)

    def __post_init__(self) -> None:
        if not 0 < self.precision <= 38:
            raise ValueError(f"Decimal precision must be in [1, 38], got {self.precision}")
        if not 0 <= self.scale <= self.precision:
            raise ValueError(
                f"Decimal scale must be in [0, {self.precision}], got {self.scale}"
            )

    def __str__(self) -> str:
        return f"DECIMAL({self.precision}, {self.scale})"


@dataclass(frozen=True)
class ArrayType(LogicalType):
    element_type: LogicalType = None  # type: ignore[assignment]
    sql_type: SqlType = field(default=SqlType.ARRAY, init=False)
    python_type: type = field(default=list, init=False)

    def __str__(self) -> str:
        return f"ARRAY<{self.element_type}>"


@dataclass(frozen=True)
class MapType(LogicalType):
    key_type: LogicalType = None  # type: ignore[assignment]
    value_type: LogicalType = None  # type: ignore[assignment]
    sql_type: SqlType = field(default=SqlType.MAP, init=False)
    python_type: type = field(default=dict, init=False)

    def __str__(self) -> str:
        return f"MAP<{self.key_type}, {self.value_type}>"


STRING_TYPE = LogicalType(SqlType.STRING, str)
BOOLEAN_TYPE = LogicalType(SqlType.BOOLEAN, bool)
BYTE_TYPE = LogicalType(SqlType.TINYINT, int)
SHORT_TYPE = LogicalType(SqlType.SMALLINT, int)
INT_TYPE = LogicalType(SqlType.INT, int)
LONG_TYPE = LogicalType(SqlType.BIGINT, int)
FLOAT_TYPE = LogicalType(SqlType.FLOAT, float)
DOUBLE_TYPE = LogicalType(SqlType.DOUBLE, float)
VOID_TYPE = LogicalType(SqlType.NULL, type(None))
BYTES_TYPE = LogicalType(SqlType.BYTES, bytes)
LOCAL_DATE_TYPE = LogicalType(SqlType.DATE, datetime.date)
LOCAL_TIME_TYPE = LogicalType(SqlType.TIME, datetime.time)
LOCAL_DATE_TIME_TYPE = LogicalType(SqlType.TIMESTAMP, datetime.datetime)

# a row is either positional (one value per field of its RowType) or keyed by field name
Row: TypeAlias = Sequence[Any] | Mapping[str, Any]


@dataclass(frozen=True, init=False)
class RowType(LogicalType):
    """
    Ordered, named and typed columns of an engine row.

    Field names are matched exactly; callers that need case-insensitive matching
    normalize with lower_case() first.
    """

    field_names: tuple[str, ...] = ()
    field_types: tuple[LogicalType, ...] = ()

    def __init__(
        self, field_names: Sequence[str], field_types: Sequence[LogicalType]
    ) -> None:
        if len(field_names) != len(field_types):
            raise ValueError(
                f"Row type has {len(field_names)} field names but {len(field_types)} field types"
            )
        object.__setattr__(self, "sql_type", SqlType.ROW)
        object.__setattr__(self, "python_type", tuple)
        object.__setattr__(self, "field_names", tuple(field_names))
        object.__setattr__(self, "field_types", tuple(field_types))

    @classmethod
    def of(cls, *fields: tuple[str, LogicalType]) -> "RowType":
        return cls([name for name, _ in fields], [data_type for _, data_type in fields])

    def __len__(self) -> int:
        return len(self.field_names)

    def __iter__(self) -> Iterator[tuple[str, LogicalType]]:
        return iter(zip(self.field_names, self.field_types))

    def __str__(self) -> str:
        inner = ", ".join(f"{name}: {data_type}" for name, data_type in self)
        return f"ROW<{inner}>"

    def index_of(self, field_name: str) -> int:
        """
        Position of a field by name.

        Raises:
            ConfigurationError: If no field carries that name.
        """
        try:
            return self.field_names.index(field_name)
        except ValueError:
            raise ConfigurationError(
                f"Field '{field_name}' not found in row type {self}"
            ) from None

    def contains(self, field_name: str) -> bool:
        return field_name in self.field_names

    def field_type(self, index: int) -> LogicalType:
        return self.field_types[index]

    def lower_case(self) -> "RowType":
        """Copy of this row type with every field name lower-cased."""
        return RowType([name.lower() for name in self.field_names], self.field_types)

    def project(self, field_names: Sequence[str]) -> "RowType":
        """
        Row type holding only the named fields, in the requested order, typed as in this row.

        Raises:
            ConfigurationError: If a requested name is not a field of this row type.
        """
        types = [self.field_type(self.index_of(name)) for name in field_names]
        return RowType(list(field_names), types)

    def value_of(self, row: Row, field_name: str) -> Any:
        """Extract one field from a positional or name-keyed row."""
        if isinstance(row, Mapping):
            return row.get(field_name)
        return row[self.index_of(field_name)]
