"""
File encoders and the registry that dispatches to them.

Each supported on-disk encoding is a FormatWriter registered under its
pyiceberg FileFormat. A FormatWriter hands out FileAppenders: single-use
objects that own one output stream, buffer converted rows, and report the
file's length and column metrics once closed.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping, Sequence
from typing import TYPE_CHECKING, Any

import pyarrow as pa
import pyarrow.parquet as pq
from pyiceberg.manifest import FileFormat
from pyiceberg.table import TableProperties
from pyiceberg.utils.properties import property_as_int

from icepod.errors import ConfigurationError, IcepodError, UnsupportedFormatError, WriteIOError
from icepod.utils.lazy_module import LazyModule
from icepod.writers.metrics import ArrowMetricsCollector, FileMetrics, MetricsConfig

if TYPE_CHECKING:
    import polars as pl
    import pyarrow.orc as orc
    from pyiceberg.io import OutputFile, OutputStream
    from pyiceberg.schema import Schema

    from icepod.protocols.writer_protocols import RecordConverter
else:
    orc = LazyModule("pyarrow.orc")

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 1024

PARQUET_UNCOMPRESSED_CODEC = "uncompressed"
PYARROW_UNCOMPRESSED_CODEC = "none"

ORC_COMPRESSION = "write.orc.compression-codec"
ORC_COMPRESSION_DEFAULT = "zlib"
ORC_STRIPE_SIZE_BYTES = "write.orc.stripe-size-bytes"
ORC_STRIPE_SIZE_BYTES_DEFAULT = 64 * 1024 * 1024


def parquet_writer_kwargs(properties: Mapping[str, str]) -> dict[str, Any]:
    """Translate Iceberg Parquet properties into ``pyarrow.parquet.ParquetWriter`` options."""
    compression = properties.get(
        TableProperties.PARQUET_COMPRESSION, TableProperties.PARQUET_COMPRESSION_DEFAULT
    )
    if compression == PARQUET_UNCOMPRESSED_CODEC:
        compression = PYARROW_UNCOMPRESSED_CODEC
    return {
        "compression": compression,
        "compression_level": property_as_int(
            properties=dict(properties),
            property_name=TableProperties.PARQUET_COMPRESSION_LEVEL,
            default=TableProperties.PARQUET_COMPRESSION_LEVEL_DEFAULT,
        ),
        "data_page_size": property_as_int(
            properties=dict(properties),
            property_name=TableProperties.PARQUET_PAGE_SIZE_BYTES,
            default=TableProperties.PARQUET_PAGE_SIZE_BYTES_DEFAULT,
        ),
        "dictionary_pagesize_limit": property_as_int(
            properties=dict(properties),
            property_name=TableProperties.PARQUET_DICT_SIZE_BYTES,
            default=TableProperties.PARQUET_DICT_SIZE_BYTES_DEFAULT,
        ),
        "write_batch_size": property_as_int(
            properties=dict(properties),
            property_name=TableProperties.PARQUET_PAGE_ROW_LIMIT,
            default=TableProperties.PARQUET_PAGE_ROW_LIMIT_DEFAULT,
        ),
    }


def _orc_compatible_type(arrow_type: pa.DataType) -> pa.DataType:
    # the ORC adapter has no time type; times are stored as microseconds
    if pa.types.is_time(arrow_type):
        return pa.int64()
    if pa.types.is_struct(arrow_type):
        return pa.struct([_orc_compatible_field(f) for f in arrow_type])
    if pa.types.is_large_list(arrow_type):
        return pa.large_list(_orc_compatible_field(arrow_type.value_field))
    if pa.types.is_list(arrow_type):
        return pa.list_(_orc_compatible_field(arrow_type.value_field))
    if pa.types.is_map(arrow_type):
        return pa.map_(
            _orc_compatible_field(arrow_type.key_field),
            _orc_compatible_field(arrow_type.item_field),
        )
    return arrow_type


def _orc_compatible_field(arrow_field: pa.Field) -> pa.Field:
    return arrow_field.with_type(_orc_compatible_type(arrow_field.type))


class FileAppender(ABC):
    """
    Writes converted rows of one schema into one file.

    Rows are buffered and handed to the encoder in batches of ``batch_size``.
    After close() the appender reports the file length and its metrics; it
    cannot be reopened.
    """

    file_format: FileFormat

    def __init__(
        self,
        output_file: "OutputFile",
        schema: "Schema",
        converter: "RecordConverter",
        properties: Mapping[str, str],
        metrics_config: MetricsConfig,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ):
        self.output_file = output_file
        self.schema = schema
        self.converter = converter
        self.properties = dict(properties)
        self.metrics_config = metrics_config
        self.batch_size = batch_size
        self._buffer: list[Any] = []
        self._closed = False
        self._file_length: int | None = None
        self._metrics: FileMetrics | None = None
        try:
            self._stream: "OutputStream" = output_file.create(overwrite=True)
        except OSError as e:
            raise WriteIOError(
                f"Failed to open {self.file_format.name} file {output_file.location}: {e}"
            ) from e
        try:
            self._open_encoder(self._stream, converter.arrow_schema)
        except OSError as e:
            self._stream.close()
            raise WriteIOError(
                f"Failed to open {self.file_format.name} file {output_file.location}: {e}"
            ) from e
        except (pa.ArrowException, ValueError, TypeError) as e:
            self._stream.close()
            raise ConfigurationError(
                f"Cannot open a {self.file_format.name} encoder for {output_file.location} "
                f"with write properties {self.properties}: {e}"
            ) from e
        logger.debug(f"Opened {self.file_format.name} appender for {output_file.location}")

    @property
    def location(self) -> str:
        return self.output_file.location

    @property
    def closed(self) -> bool:
        return self._closed

    @abstractmethod
    def _open_encoder(self, stream: "OutputStream", arrow_schema: pa.Schema) -> None: ...

    @abstractmethod
    def _write_batch(self, batch: pa.RecordBatch) -> None: ...

    @abstractmethod
    def _close_encoder(self) -> None: ...

    @abstractmethod
    def _collect_metrics(self) -> FileMetrics: ...

    def _check_open(self) -> None:
        if self._closed:
            raise IcepodError(f"Appender for {self.location} is already closed")

    def _flush(self) -> None:
        if not self._buffer:
            return
        rows, self._buffer = self._buffer, []
        self._write(self.converter.convert(rows))

    def _write(self, batch: pa.RecordBatch) -> None:
        try:
            self._write_batch(batch)
        except OSError as e:
            raise WriteIOError(f"Failed to write to {self.location}: {e}") from e

    def add(self, row: Any) -> None:
        self._check_open()
        self._buffer.append(row)
        if len(self._buffer) >= self.batch_size:
            self._flush()

    def add_all(self, rows: Iterable[Any]) -> None:
        for row in rows:
            self.add(row)

    def add_frame(self, frame: "pa.Table | pl.DataFrame") -> None:
        """Write a columnar batch; buffered rows are flushed first so order is kept."""
        self._check_open()
        self._flush()
        table = self.converter.convert_frame(frame)
        for batch in table.to_batches():
            self._write(batch)

    def length(self) -> int:
        if self._file_length is not None:
            return self._file_length
        return self._stream.tell()

    def metrics(self) -> FileMetrics:
        if self._metrics is None:
            raise IcepodError(f"Metrics of {self.location} are only available after close()")
        return self._metrics

    def split_offsets(self) -> list[int] | None:
        if self._metrics is None or not self._metrics.split_offsets:
            return None
        return list(self._metrics.split_offsets)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._flush()
            self._close_encoder()
        except OSError as e:
            raise WriteIOError(f"Failed to close {self.location}: {e}") from e
        finally:
            if not getattr(self._stream, "closed", False):
                self._stream.close()
        self._file_length = len(self.output_file)
        self._metrics = self._collect_metrics()
        logger.debug(
            f"Closed {self.file_format.name} file {self.location}: "
            f"{self._metrics.record_count} records, {self._file_length} bytes"
        )

    def __enter__(self) -> "FileAppender":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()


class ParquetFileAppender(FileAppender):
    file_format = FileFormat.PARQUET

    def _open_encoder(self, stream: "OutputStream", arrow_schema: pa.Schema) -> None:
        self._row_group_size = property_as_int(
            properties=self.properties,
            property_name=TableProperties.PARQUET_ROW_GROUP_LIMIT,
            default=TableProperties.PARQUET_ROW_GROUP_LIMIT_DEFAULT,
        )
        self._pending: list[pa.RecordBatch] = []
        self._pending_rows = 0
        self._writer = pq.ParquetWriter(
            stream,
            schema=arrow_schema,
            store_decimal_as_integer=True,
            **parquet_writer_kwargs(self.properties),
        )

    def _write_pending(self) -> None:
        if not self._pending:
            return
        table = pa.Table.from_batches(self._pending)
        self._pending, self._pending_rows = [], 0
        self._writer.write(table, row_group_size=self._row_group_size)

    def _write_batch(self, batch: pa.RecordBatch) -> None:
        self._pending.append(batch)
        self._pending_rows += batch.num_rows
        if self._pending_rows >= self._row_group_size:
            self._write_pending()

    def _close_encoder(self) -> None:
        self._write_pending()
        self._writer.close()

    def _collect_metrics(self) -> FileMetrics:
        return FileMetrics.from_parquet_metadata(
            self._writer.writer.metadata, self.schema, self.metrics_config
        )


class OrcFileAppender(FileAppender):
    file_format = FileFormat.ORC

    def _open_encoder(self, stream: "OutputStream", arrow_schema: pa.Schema) -> None:
        self._orc_schema = pa.schema([_orc_compatible_field(f) for f in arrow_schema])
        self._collector = ArrowMetricsCollector(self.schema, self.metrics_config)
        self._writer = orc.ORCWriter(
            stream,
            compression=self.properties.get(ORC_COMPRESSION, ORC_COMPRESSION_DEFAULT),
            stripe_size=property_as_int(
                properties=self.properties,
                property_name=ORC_STRIPE_SIZE_BYTES,
                default=ORC_STRIPE_SIZE_BYTES_DEFAULT,
            ),
        )

    def _write_batch(self, batch: pa.RecordBatch) -> None:
        self._collector.update(batch)
        self._writer.write(pa.Table.from_batches([batch]).cast(self._orc_schema))

    def _close_encoder(self) -> None:
        self._writer.close()

    def _collect_metrics(self) -> FileMetrics:
        return self._collector.to_metrics()


class FormatWriter(ABC):
    """An on-disk encoding that can produce appenders."""

    file_format: FileFormat
    extension: str

    @abstractmethod
    def new_appender(
        self,
        output_file: "OutputFile",
        schema: "Schema",
        converter: "RecordConverter",
        properties: Mapping[str, str],
        metrics_config: MetricsConfig,
    ) -> FileAppender: ...

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.file_format.name})"


class ParquetFormatWriter(FormatWriter):
    file_format = FileFormat.PARQUET
    extension = "parquet"

    def new_appender(self, output_file, schema, converter, properties, metrics_config):
        return ParquetFileAppender(output_file, schema, converter, properties, metrics_config)


class OrcFormatWriter(FormatWriter):
    file_format = FileFormat.ORC
    extension = "orc"

    def new_appender(self, output_file, schema, converter, properties, metrics_config):
        return OrcFileAppender(output_file, schema, converter, properties, metrics_config)


_FORMAT_WRITERS: dict[FileFormat, FormatWriter] = {}


def register_format_writer(writer: FormatWriter) -> None:
    """Register (or replace) the writer for ``writer.file_format``."""
    _FORMAT_WRITERS[writer.file_format] = writer


def parse_file_format(file_format: FileFormat | str) -> FileFormat:
    if isinstance(file_format, FileFormat):
        return file_format
    try:
        return FileFormat(str(file_format).strip().upper())
    except ValueError as e:
        raise UnsupportedFormatError(f"Unknown file format: {file_format!r}") from e


def get_format_writer(file_format: FileFormat | str) -> FormatWriter:
    """
    Look up the writer for a file format.

    Raises:
        UnsupportedFormatError: If no writer is registered for the format.
    """
    parsed = parse_file_format(file_format)
    writer = _FORMAT_WRITERS.get(parsed)
    if writer is None:
        supported = ", ".join(sorted(f.name for f in _FORMAT_WRITERS))
        raise UnsupportedFormatError(
            f"Cannot write using unsupported file format: {parsed.name} (supported: {supported})"
        )
    return writer


def supported_formats() -> Sequence[FileFormat]:
    return tuple(_FORMAT_WRITERS)


register_format_writer(ParquetFormatWriter())
register_format_writer(OrcFormatWriter())
