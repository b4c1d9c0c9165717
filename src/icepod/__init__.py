from .config import SinkConfig
from .errors import (
    ConfigurationError,
    IcepodError,
    TableNotFoundError,
    UnsupportedFormatError,
    UnsupportedTypeError,
    WriteIOError,
    WriterPreconditionError,
)
from .catalog import CachingCatalog, CatalogFactory, TableLoader
from .writers import AppenderFactory, EncryptedOutputFile, OutputFileFactory
from .sink import IcebergSink, WriterContext
from . import types

__all__ = [
    "SinkConfig",
    "ConfigurationError",
    "IcepodError",
    "TableNotFoundError",
    "UnsupportedFormatError",
    "UnsupportedTypeError",
    "WriteIOError",
    "WriterPreconditionError",
    "CachingCatalog",
    "CatalogFactory",
    "TableLoader",
    "AppenderFactory",
    "EncryptedOutputFile",
    "OutputFileFactory",
    "IcebergSink",
    "WriterContext",
    "types",
]
