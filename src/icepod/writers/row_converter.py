"""
Record translators: engine rows in, Arrow batches laid out for one file schema out.

A converter is always built from the row type that describes the records it
will receive. Data files get the full engine row type; delete files get the
projected delete row type, so the converter only knows how to extract the
delete columns, in delete-schema order.
"""

import decimal
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import pyarrow as pa

from icepod.errors import ConfigurationError
from icepod.types.core import Row, RowType
from icepod.utils.lazy_module import LazyModule

if TYPE_CHECKING:
    import polars as pl
else:
    pl = LazyModule("polars")

logger = logging.getLogger(__name__)

DELETE_FILE_PATH_COLUMN = "file_path"
DELETE_FILE_POS_COLUMN = "pos"
DELETE_FILE_ROW_COLUMN = "row"


@dataclass(frozen=True)
class PositionDelete:
    """A delete of the row at ``pos`` in the data file at ``path``; ``row`` optionally carries its values."""

    path: str
    pos: int
    row: Row | None = None


def _decimal_adapter(column: str, precision: int, scale: int):
    quantum = decimal.Decimal(1).scaleb(-scale)
    # rescaling must be exact and fit the declared precision
    context = decimal.Context(
        prec=precision, traps=[decimal.Inexact, decimal.InvalidOperation]
    )

    def adapt(value: Any) -> Any:
        if value is None:
            return None
        if not isinstance(value, decimal.Decimal):
            value = decimal.Decimal(str(value))
        try:
            return value.quantize(quantum, context=context)
        except (decimal.Inexact, decimal.InvalidOperation) as e:
            raise ConfigurationError(
                f"Value {value} of column '{column}' cannot be stored as "
                f"DECIMAL({precision}, {scale}) without losing digits"
            ) from e

    return adapt


def _to_arrow_table(frame: "pa.Table | pl.DataFrame") -> pa.Table:
    if isinstance(frame, pa.Table):
        return frame
    if isinstance(frame, pl.DataFrame):
        return frame.to_arrow()
    raise ConfigurationError(
        f"Cannot write a frame of type {type(frame).__name__}; expected a pyarrow Table or polars DataFrame"
    )


class RowConverter:
    """Translates rows shaped by a RowType into record batches of a given Arrow schema."""

    def __init__(self, arrow_schema: pa.Schema, row_type: RowType):
        """
        Args:
            arrow_schema: Layout of the file being written
            row_type: Shape of the rows that will be converted

        Raises:
            ConfigurationError: If a required column of the file is not part of the row type.
        """
        self._arrow_schema = arrow_schema
        self.row_type = row_type
        self._columns: list[tuple[pa.Field, int | None]] = []
        for arrow_field in arrow_schema:
            if row_type.contains(arrow_field.name):
                self._columns.append((arrow_field, row_type.index_of(arrow_field.name)))
            elif arrow_field.nullable:
                self._columns.append((arrow_field, None))
            else:
                raise ConfigurationError(
                    f"Required column '{arrow_field.name}' is missing from row type {row_type}"
                )

    @property
    def arrow_schema(self) -> pa.Schema:
        return self._arrow_schema

    def _column(self, arrow_field: pa.Field, index: int | None, rows: Sequence[Row]) -> pa.Array:
        if index is None:
            return pa.nulls(len(rows), type=arrow_field.type)
        name = arrow_field.name
        values = [
            row.get(name) if isinstance(row, Mapping) else row[index] for row in rows
        ]
        if not arrow_field.nullable and None in values:
            raise ConfigurationError(
                f"Required column '{name}' has no value in row {values.index(None)} of the batch"
            )
        if pa.types.is_decimal(arrow_field.type):
            adapt = _decimal_adapter(name, arrow_field.type.precision, arrow_field.type.scale)
            values = [adapt(value) for value in values]
        return pa.array(values, type=arrow_field.type)

    def convert(self, rows: Sequence[Row]) -> pa.RecordBatch:
        arrays = [self._column(f, index, rows) for f, index in self._columns]
        return pa.RecordBatch.from_arrays(arrays, schema=self._arrow_schema)

    def convert_frame(self, frame: "pa.Table | pl.DataFrame") -> pa.Table:
        """
        Translate a columnar batch, matching its columns by name.

        Columns the file schema does not know are ignored; optional columns the
        frame lacks are written as nulls.

        Args:
            frame: An Arrow table or a polars DataFrame

        Raises:
            ConfigurationError: If a required column is absent from the frame.
        """
        table = _to_arrow_table(frame)
        arrays = []
        for arrow_field, _ in self._columns:
            if arrow_field.name in table.column_names:
                arrays.append(table.column(arrow_field.name).cast(arrow_field.type))
            elif arrow_field.nullable:
                arrays.append(pa.nulls(table.num_rows, type=arrow_field.type))
            else:
                raise ConfigurationError(
                    f"Required column '{arrow_field.name}' is missing from the written frame"
                )
        return pa.Table.from_arrays(arrays, schema=self._arrow_schema)


class PositionDeleteConverter:
    """Translates PositionDelete records into the ``file_path, pos, row`` delete layout."""

    def __init__(self, arrow_schema: pa.Schema, row_type: RowType | None):
        self._arrow_schema = arrow_schema
        self._path_type = arrow_schema.field(DELETE_FILE_PATH_COLUMN).type
        self._pos_type = arrow_schema.field(DELETE_FILE_POS_COLUMN).type
        self._row_fields: list[pa.Field] | None = None
        self._row_converter: RowConverter | None = None
        if DELETE_FILE_ROW_COLUMN in arrow_schema.names:
            if row_type is None:
                raise ConfigurationError(
                    "Position delete file carries deleted rows but no row type was given"
                )
            row_struct = arrow_schema.field(DELETE_FILE_ROW_COLUMN).type
            self._row_fields = list(row_struct)
            self._row_converter = RowConverter(pa.schema(self._row_fields), row_type)

    @property
    def arrow_schema(self) -> pa.Schema:
        return self._arrow_schema

    def convert(self, deletes: Sequence[PositionDelete]) -> pa.RecordBatch:
        arrays = [
            pa.array([d.path for d in deletes], type=self._path_type),
            pa.array([d.pos for d in deletes], type=self._pos_type),
        ]
        if self._row_converter is not None:
            rows = [d.row if d.row is not None else {} for d in deletes]
            batch = self._row_converter.convert(rows)
            mask = pa.array([d.row is None for d in deletes], type=pa.bool_())
            arrays.append(
                pa.StructArray.from_arrays(batch.columns, fields=self._row_fields, mask=mask)
            )
        return pa.RecordBatch.from_arrays(arrays, schema=self._arrow_schema)

    def convert_frame(self, frame: "pa.Table | pl.DataFrame") -> pa.Table:
        table = _to_arrow_table(frame)
        missing = [n for n in self._arrow_schema.names if n not in table.column_names]
        if missing:
            raise ConfigurationError(
                f"Columns {missing} are missing from the written position deletes"
            )
        return table.select(self._arrow_schema.names).cast(self._arrow_schema)
