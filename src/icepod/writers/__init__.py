from .appender_factory import AppenderFactory, position_delete_schema
from .content_writers import DataWriter, EqualityDeleteWriter, PositionDeleteWriter
from .formats import (
    FileAppender,
    FormatWriter,
    OrcFormatWriter,
    ParquetFormatWriter,
    get_format_writer,
    register_format_writer,
)
from .metrics import FileMetrics, MetricsConfig
from .output_file_factory import EncryptedOutputFile, OutputFileFactory
from .row_converter import PositionDelete, PositionDeleteConverter, RowConverter

__all__ = [
    "AppenderFactory",
    "position_delete_schema",
    "DataWriter",
    "EqualityDeleteWriter",
    "PositionDeleteWriter",
    "FileAppender",
    "FormatWriter",
    "OrcFormatWriter",
    "ParquetFormatWriter",
    "get_format_writer",
    "register_format_writer",
    "FileMetrics",
    "MetricsConfig",
    "EncryptedOutputFile",
    "OutputFileFactory",
    "PositionDelete",
    "PositionDeleteConverter",
    "RowConverter",
]
