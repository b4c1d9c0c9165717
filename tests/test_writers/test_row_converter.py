import datetime
import decimal

import polars as pl
import pyarrow as pa
import pytest

from icepod.errors import ConfigurationError
from icepod.types import (
    INT_TYPE,
    LOCAL_DATE_TIME_TYPE,
    LOCAL_TIME_TYPE,
    STRING_TYPE,
    DecimalType,
    RowType,
)
from icepod.writers import PositionDelete, PositionDeleteConverter, RowConverter


@pytest.fixture
def arrow_schema():
    return pa.schema(
        [
            pa.field("id", pa.large_string(), nullable=False),
            pa.field("name", pa.large_string()),
            pa.field("age", pa.int32()),
        ]
    )


def test_convert_positional_rows(arrow_schema, people_row_type):
    converter = RowConverter(arrow_schema, people_row_type)
    batch = converter.convert([("1", "ann", 31), ("2", None, None)])
    assert batch.schema == arrow_schema
    assert batch.to_pylist() == [
        {"id": "1", "name": "ann", "age": 31},
        {"id": "2", "name": None, "age": None},
    ]


def test_convert_follows_file_column_order(arrow_schema):
    """Positional rows are read through the row type, whatever the file order."""
    row_type = RowType.of(("age", INT_TYPE), ("id", STRING_TYPE), ("name", STRING_TYPE))
    converter = RowConverter(arrow_schema, row_type)
    batch = converter.convert([(31, "1", "ann")])
    assert batch.to_pylist() == [{"id": "1", "name": "ann", "age": 31}]


def test_optional_columns_missing_from_row_type_are_null(arrow_schema):
    converter = RowConverter(arrow_schema, RowType.of(("id", STRING_TYPE)))
    assert converter.convert([("7",)]).to_pylist() == [{"id": "7", "name": None, "age": None}]


def test_required_column_missing_from_row_type(arrow_schema):
    with pytest.raises(ConfigurationError, match="'id'"):
        RowConverter(arrow_schema, RowType.of(("name", STRING_TYPE)))


def test_decimals_are_rescaled():
    schema = pa.schema([pa.field("amount", pa.decimal128(10, 2))])
    converter = RowConverter(schema, RowType.of(("amount", DecimalType(38, 18))))
    batch = converter.convert([(decimal.Decimal("1.5"),), (2.25,), (None,)])
    assert batch.column(0).to_pylist() == [
        decimal.Decimal("1.50"),
        decimal.Decimal("2.25"),
        None,
    ]


def test_wide_decimals_keep_every_digit():
    schema = pa.schema([pa.field("amount", pa.decimal128(38, 18))])
    converter = RowConverter(schema, RowType.of(("amount", DecimalType(38, 18))))
    value = decimal.Decimal("12345678901234567890.5")
    batch = converter.convert([(value,), (decimal.Decimal("12345678901.5"),)])
    assert batch.column(0).to_pylist() == [
        decimal.Decimal("12345678901234567890.500000000000000000"),
        decimal.Decimal("12345678901.500000000000000000"),
    ]


@pytest.mark.parametrize(
    "value", [decimal.Decimal("1.239"), decimal.Decimal("123456789.5"), 0.125]
)
def test_decimals_that_do_not_fit_are_rejected(value):
    schema = pa.schema([pa.field("amount", pa.decimal128(10, 2))])
    converter = RowConverter(schema, RowType.of(("amount", DecimalType(38, 18))))
    with pytest.raises(ConfigurationError, match="'amount'"):
        converter.convert([(value,)])


def test_keyed_row_without_required_value(arrow_schema, people_row_type):
    converter = RowConverter(arrow_schema, people_row_type)
    with pytest.raises(ConfigurationError, match="'id'"):
        converter.convert([{"id": "1", "name": "ann"}, {"name": "x", "age": 1}])


def test_temporal_values():
    schema = pa.schema(
        [pa.field("ts", pa.timestamp("us")), pa.field("t", pa.time64("us"))]
    )
    row_type = RowType.of(("ts", LOCAL_DATE_TIME_TYPE), ("t", LOCAL_TIME_TYPE))
    value = datetime.datetime(2024, 1, 2, 3, 4, 5)
    batch = RowConverter(schema, row_type).convert([(value, value.time())])
    assert batch.to_pylist() == [{"ts": value, "t": value.time()}]


def test_convert_frame_from_polars(arrow_schema, people_row_type):
    converter = RowConverter(arrow_schema, people_row_type)
    frame = pl.DataFrame({"id": ["1", "2"], "age": [30, 40], "ignored": [1.0, 2.0]})
    table = converter.convert_frame(frame)
    assert table.schema == arrow_schema
    assert table.to_pylist() == [
        {"id": "1", "name": None, "age": 30},
        {"id": "2", "name": None, "age": 40},
    ]


def test_convert_frame_missing_required_column(arrow_schema, people_row_type):
    converter = RowConverter(arrow_schema, people_row_type)
    with pytest.raises(ConfigurationError, match="'id'"):
        converter.convert_frame(pa.table({"name": ["ann"]}))


def test_convert_frame_rejects_other_objects(arrow_schema, people_row_type):
    converter = RowConverter(arrow_schema, people_row_type)
    with pytest.raises(ConfigurationError, match="list"):
        converter.convert_frame([("1", "ann", 30)])


def test_position_delete_converter():
    row_struct = pa.struct(
        [pa.field("id", pa.large_string(), nullable=False), pa.field("name", pa.large_string())]
    )
    schema = pa.schema(
        [
            pa.field("file_path", pa.large_string(), nullable=False),
            pa.field("pos", pa.int64(), nullable=False),
            pa.field("row", row_struct),
        ]
    )
    row_type = RowType.of(("id", STRING_TYPE), ("name", STRING_TYPE))
    converter = PositionDeleteConverter(schema, row_type)
    batch = converter.convert(
        [PositionDelete("a.parquet", 1, ("1", "ann")), PositionDelete("a.parquet", 4)]
    )
    assert batch.to_pylist() == [
        {"file_path": "a.parquet", "pos": 1, "row": {"id": "1", "name": "ann"}},
        {"file_path": "a.parquet", "pos": 4, "row": None},
    ]


def test_position_delete_converter_without_rows():
    schema = pa.schema(
        [
            pa.field("file_path", pa.large_string(), nullable=False),
            pa.field("pos", pa.int64(), nullable=False),
        ]
    )
    converter = PositionDeleteConverter(schema, None)
    batch = converter.convert([PositionDelete("b.parquet", 0, ("ignored",))])
    assert batch.to_pylist() == [{"file_path": "b.parquet", "pos": 0}]

    frame = pa.table({"pos": [3], "file_path": ["c.parquet"]})
    assert converter.convert_frame(frame).to_pylist() == [{"file_path": "c.parquet", "pos": 3}]


def test_position_delete_converter_needs_row_type_for_rows():
    schema = pa.schema(
        [
            pa.field("file_path", pa.large_string()),
            pa.field("pos", pa.int64()),
            pa.field("row", pa.struct([pa.field("id", pa.large_string())])),
        ]
    )
    with pytest.raises(ConfigurationError):
        PositionDeleteConverter(schema, None)
