import datetime

import pyarrow as pa
import pyarrow.orc as orc
import pyarrow.parquet as pq
import pytest
from pyiceberg.io.pyarrow import schema_to_pyarrow
from pyiceberg.manifest import FileFormat
from pyiceberg.schema import Schema
from pyiceberg.types import LongType, NestedField, StringType, TimeType

from icepod.errors import IcepodError, UnsupportedFormatError
from icepod.types import LOCAL_TIME_TYPE, LONG_TYPE, STRING_TYPE, RowType
from icepod.writers import (
    FormatWriter,
    OrcFormatWriter,
    ParquetFormatWriter,
    RowConverter,
    get_format_writer,
    register_format_writer,
)
from icepod.writers import formats
from icepod.writers.formats import parquet_writer_kwargs, parse_file_format
from icepod.writers.metrics import MetricsConfig


@pytest.fixture
def event_schema():
    return Schema(
        NestedField(field_id=1, name="id", field_type=LongType(), required=True),
        NestedField(field_id=2, name="at", field_type=TimeType(), required=False),
        NestedField(field_id=3, name="label", field_type=StringType(), required=False),
    )


@pytest.fixture
def event_row_type():
    return RowType.of(("id", LONG_TYPE), ("at", LOCAL_TIME_TYPE), ("label", STRING_TYPE))


def open_appender(file_format, people_table, temp_dir, schema, row_type, properties=None):
    writer = get_format_writer(file_format)
    location = f"{temp_dir}/events.{writer.extension}"
    converter = RowConverter(schema_to_pyarrow(schema), row_type)
    appender = writer.new_appender(
        people_table.io.new_output(location),
        schema,
        converter,
        properties or {},
        MetricsConfig(),
    )
    return appender, location


def test_registry_dispatch():
    assert isinstance(get_format_writer("parquet"), ParquetFormatWriter)
    assert isinstance(get_format_writer(" ORC "), OrcFormatWriter)
    assert isinstance(get_format_writer(FileFormat.PARQUET), ParquetFormatWriter)
    assert parse_file_format("Parquet") == FileFormat.PARQUET


def test_registry_rejects_unknown_formats():
    with pytest.raises(UnsupportedFormatError, match="AVRO"):
        get_format_writer("avro")
    with pytest.raises(UnsupportedFormatError, match="'json'"):
        get_format_writer("json")


def test_register_replaces_writer(monkeypatch):
    monkeypatch.setattr(formats, "_FORMAT_WRITERS", dict(formats._FORMAT_WRITERS))

    class CustomParquetWriter(ParquetFormatWriter):
        pass

    custom = CustomParquetWriter()
    register_format_writer(custom)
    assert get_format_writer("parquet") is custom
    assert isinstance(custom, FormatWriter)


def test_parquet_writer_kwargs():
    kwargs = parquet_writer_kwargs(
        {
            "write.parquet.compression-codec": "uncompressed",
            "write.parquet.page-size-bytes": "4096",
            "write.parquet.page-row-limit": "100",
        }
    )
    assert kwargs["compression"] == "none"
    assert kwargs["data_page_size"] == 4096
    assert kwargs["write_batch_size"] == 100
    assert parquet_writer_kwargs({})["compression"] == "zstd"


def test_parquet_compression_property(people_table, temp_dir, event_schema, event_row_type):
    appender, location = open_appender(
        "parquet",
        people_table,
        temp_dir,
        event_schema,
        event_row_type,
        {"write.parquet.compression-codec": "snappy"},
    )
    appender.add((1, datetime.time(12, 30), "lunch"))
    appender.close()
    metadata = pq.read_metadata(location)
    assert metadata.row_group(0).column(0).compression == "SNAPPY"


def test_parquet_row_group_limit(people_table, temp_dir, event_schema, event_row_type):
    appender, location = open_appender(
        "parquet",
        people_table,
        temp_dir,
        event_schema,
        event_row_type,
        {"write.parquet.row-group-limit": "2"},
    )
    appender.add_all((i, None, None) for i in range(5))
    appender.close()
    assert pq.read_metadata(location).num_row_groups == 3
    assert len(appender.split_offsets()) == 3


def test_orc_stores_times_as_microseconds(people_table, temp_dir, event_schema, event_row_type):
    appender, location = open_appender(
        "orc", people_table, temp_dir, event_schema, event_row_type
    )
    appender.add((1, datetime.time(0, 0, 1, 5), "a"))
    appender.close()
    table = orc.read_table(location)
    assert table.column("at").type == pa.int64()
    assert table.column("at").to_pylist() == [1_000_005]


def test_orc_compression_property(people_table, temp_dir, event_schema, event_row_type):
    appender, location = open_appender(
        "orc",
        people_table,
        temp_dir,
        event_schema,
        event_row_type,
        {"write.orc.compression-codec": "snappy"},
    )
    appender.add((1, None, "a"))
    appender.close()
    assert orc.ORCFile(location).compression == "SNAPPY"


def test_appender_batches_rows(people_table, temp_dir, event_schema, event_row_type, monkeypatch):
    appender, location = open_appender(
        "orc", people_table, temp_dir, event_schema, event_row_type
    )
    appender.batch_size = 2
    written = []
    original = appender._write_batch
    monkeypatch.setattr(
        appender, "_write_batch", lambda batch: (written.append(batch.num_rows), original(batch))
    )
    appender.add_all((i, None, None) for i in range(5))
    assert written == [2, 2]
    appender.close()
    assert written == [2, 2, 1]
    assert orc.read_table(location).num_rows == 5


def test_closed_appender_rejects_rows(people_table, temp_dir, event_schema, event_row_type):
    appender, _ = open_appender(
        "parquet", people_table, temp_dir, event_schema, event_row_type
    )
    with pytest.raises(IcepodError, match="after close"):
        appender.metrics()
    appender.close()
    appender.close()
    assert appender.closed
    with pytest.raises(IcepodError, match="already closed"):
        appender.add((1, None, None))


def test_empty_file_has_no_records(people_table, temp_dir, event_schema, event_row_type):
    appender, location = open_appender(
        "parquet", people_table, temp_dir, event_schema, event_row_type
    )
    appender.close()
    assert appender.metrics().record_count == 0
    assert pq.read_table(location).num_rows == 0
