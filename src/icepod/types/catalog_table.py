"""Engine-side description of a table: its path, columns and keys."""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from typing import Any

from icepod.types.core import LogicalType, RowType


@dataclass(frozen=True)
class Column:
    name: str
    data_type: LogicalType
    column_length: int | None = None
    nullable: bool = True
    default_value: Any = None
    comment: str | None = None


@dataclass(frozen=True)
class PrimaryKey:
    name: str
    column_names: tuple[str, ...]


@dataclass(frozen=True)
class ConstraintKeyColumn:
    column_name: str | None
    sort_type: str | None = None


@dataclass(frozen=True)
class ConstraintKey:
    constraint_type: str
    constraint_name: str
    column_names: tuple[ConstraintKeyColumn, ...] | None = None


@dataclass(frozen=True)
class TableSchema:
    columns: tuple[Column, ...]
    primary_key: PrimaryKey | None = None
    constraint_keys: tuple[ConstraintKey, ...] = ()

    def to_physical_row_type(self) -> RowType:
        return RowType(
            [column.name for column in self.columns],
            [column.data_type for column in self.columns],
        )

    def lower_case(self) -> "TableSchema":
        """Copy with every column, primary key and constraint key name lower-cased."""
        columns = tuple(replace(c, name=c.name.lower()) for c in self.columns)
        primary_key = None
        if self.primary_key is not None:
            primary_key = PrimaryKey(
                self.primary_key.name,
                tuple(name.lower() for name in self.primary_key.column_names),
            )
        constraint_keys = tuple(
            replace(
                key,
                column_names=(
                    tuple(
                        ConstraintKeyColumn(
                            c.column_name.lower() if c.column_name is not None else None,
                            c.sort_type,
                        )
                        for c in key.column_names
                    )
                    if key.column_names is not None
                    else None
                ),
            )
            for key in self.constraint_keys
        )
        return TableSchema(columns, primary_key, constraint_keys)


@dataclass(frozen=True)
class TablePath:
    database_name: str | None
    table_name: str
    schema_name: str | None = None

    def __str__(self) -> str:
        parts = (self.database_name, self.schema_name, self.table_name)
        return ".".join(part for part in parts if part)


@dataclass(frozen=True)
class CatalogTable:
    """A table as seen by the upstream engine."""

    table_path: TablePath
    table_schema: TableSchema
    options: Mapping[str, str] = field(default_factory=dict)
    partition_keys: Sequence[str] = ()
    comment: str | None = None
    catalog_name: str | None = None

    @property
    def table_name(self) -> str:
        return self.table_path.table_name

    def lower_case(self) -> "CatalogTable":
        """Copy whose schema names are lower-cased; path and options are kept as-is."""
        return replace(self, table_schema=self.table_schema.lower_case())
