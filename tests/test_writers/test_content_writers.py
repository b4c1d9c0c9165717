from unittest.mock import MagicMock

import polars as pl
import pyarrow.parquet as pq
import pytest
from pyiceberg.manifest import DataFileContent, FileFormat
from pyiceberg.typedef import Record

from icepod.errors import IcepodError
from icepod.writers import EqualityDeleteWriter, PositionDelete, PositionDeleteWriter
from icepod.writers.metrics import FileMetrics


def test_data_writer_accepts_polars_frames(data_factory, new_output):
    output = new_output("polars.parquet")
    frame = pl.DataFrame({"id": ["1", "2"], "name": ["ann", None], "age": [30, 41]})
    with data_factory.new_data_writer(output, "parquet") as writer:
        writer.write_frame(frame)
    assert pq.read_table(output.location).to_pylist() == [
        {"id": "1", "name": "ann", "age": 30},
        {"id": "2", "name": None, "age": 41},
    ]
    assert writer.to_data_file().record_count == 2


def test_eq_delete_writer_accepts_frames(delete_factory, new_output):
    output = new_output("eq_frame.parquet")
    frame = pl.DataFrame({"id": ["9"], "name": ["zed"], "age": [50]})
    with delete_factory.new_eq_delete_writer(output, "parquet") as writer:
        writer.delete_frame(frame)
        writer.delete_all([("8", None, None)])
    data_file = writer.to_data_file()
    assert data_file.record_count == 2
    assert data_file.equality_ids == [1]


def test_data_file_is_only_available_after_close(data_factory, new_output):
    writer = data_factory.new_data_writer(new_output("open.parquet"), "parquet")
    with pytest.raises(IcepodError, match="before it is closed"):
        writer.to_data_file()
    writer.close()
    assert writer.closed


def test_partition_is_recorded(data_factory, new_output):
    partition = Record(7)
    with data_factory.new_data_writer(new_output("p.parquet"), "parquet", partition) as writer:
        writer.write(("1", "ann", 7))
    assert writer.to_data_file().partition == partition


def test_writers_wrap_any_appender():
    appender = MagicMock()
    appender.file_format = FileFormat.ORC
    appender.length.return_value = 128
    appender.metrics.return_value = FileMetrics(record_count=1)
    spec = MagicMock(spec_id=4)

    writer = PositionDeleteWriter(appender, "mem://deletes.orc", spec)
    writer.write_all([PositionDelete("mem://a.orc", 1)])
    writer.close()

    appender.add.assert_called_once_with(PositionDelete("mem://a.orc", 1))
    data_file = writer.to_data_file()
    assert data_file.content == DataFileContent.POSITION_DELETES
    assert data_file.file_size_in_bytes == 128
    assert data_file.spec_id == 4


def test_eq_delete_writer_requires_field_ids():
    with pytest.raises(IcepodError):
        EqualityDeleteWriter(MagicMock(), "mem://eq.parquet", MagicMock(), [])
