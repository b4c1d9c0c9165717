"""
Builds the file writers for one table: data files, equality deletes and
position deletes, in any registered encoding.

The factory reconciles three schemas. Data files are written with the
table's physical schema and converted from the full engine row type. Delete
files are written with a delete schema and converted from a projection of the
engine row type onto that schema, so their physical layout holds only the
delete columns, in delete-schema order.
"""

import logging
import threading
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING

from pyiceberg.io.pyarrow import schema_to_pyarrow
from pyiceberg.schema import Schema
from pyiceberg.types import LongType, NestedField, StringType, StructType

from icepod.errors import IcepodError, WriterPreconditionError
from icepod.writers.content_writers import (
    DataWriter,
    EqualityDeleteWriter,
    PositionDeleteWriter,
)
from icepod.writers.formats import FileAppender, FormatWriter, get_format_writer
from icepod.writers.metrics import MetricsConfig
from icepod.writers.row_converter import (
    DELETE_FILE_PATH_COLUMN,
    DELETE_FILE_POS_COLUMN,
    DELETE_FILE_ROW_COLUMN,
    PositionDeleteConverter,
    RowConverter,
)

if TYPE_CHECKING:
    from pyiceberg.io import OutputFile
    from pyiceberg.manifest import FileFormat
    from pyiceberg.partitioning import PartitionSpec
    from pyiceberg.table import Table
    from pyiceberg.typedef import Record

    from icepod.protocols.writer_protocols import RecordConverter
    from icepod.types.core import RowType
    from icepod.writers.output_file_factory import EncryptedOutputFile

logger = logging.getLogger(__name__)

# reserved field ids of the position delete layout
DELETE_FILE_PATH_ID = 2147483546
DELETE_FILE_POS_ID = 2147483545
DELETE_FILE_ROW_ID = 2147483544


def position_delete_schema(row_schema: Schema | None = None) -> Schema:
    """The ``file_path, pos[, row]`` schema of a position delete file."""
    fields = [
        NestedField(
            DELETE_FILE_PATH_ID,
            DELETE_FILE_PATH_COLUMN,
            StringType(),
            required=True,
            doc="Path of a file in which a deleted row is stored",
        ),
        NestedField(
            DELETE_FILE_POS_ID,
            DELETE_FILE_POS_COLUMN,
            LongType(),
            required=True,
            doc="Ordinal position of a deleted row in the data file",
        ),
    ]
    if row_schema is not None:
        fields.append(
            NestedField(
                DELETE_FILE_ROW_ID,
                DELETE_FILE_ROW_COLUMN,
                StructType(*row_schema.fields),
                required=False,
                doc="Deleted row values",
            )
        )
    return Schema(*fields)


class AppenderFactory:
    """
    Creates appenders and content writers for a table.

    The factory only borrows the table: it reads its current properties to
    configure metrics on every call, and never closes or commits anything.
    Delete row types are projected on first use and memoized.
    """

    def __init__(
        self,
        table: "Table",
        schema: Schema,
        row_type: "RowType",
        properties: Mapping[str, str],
        spec: "PartitionSpec",
        equality_field_ids: Sequence[int] | None = None,
        eq_delete_row_schema: Schema | None = None,
        pos_delete_row_schema: Schema | None = None,
    ):
        """
        Args:
            table: Table the files are written for; consulted for metrics settings
            schema: Physical schema of data files
            row_type: Engine row type of the rows handed to data writers
            properties: Serialization properties (compression, page and stripe sizes)
            spec: Partition spec the written files belong to
            equality_field_ids: Field ids identifying a logical record
            eq_delete_row_schema: Schema of equality delete files
            pos_delete_row_schema: Schema of the rows carried by position delete files
        """
        self.table = table
        self.schema = schema
        self.row_type = row_type
        self.properties = dict(properties)
        self.spec = spec
        self.equality_field_ids = list(equality_field_ids) if equality_field_ids else []
        self.eq_delete_row_schema = eq_delete_row_schema
        self.pos_delete_row_schema = pos_delete_row_schema
        self._eq_delete_row_type: "RowType | None" = None
        self._pos_delete_row_type: "RowType | None" = None
        self._lock = threading.Lock()

    def _project(self, delete_schema: Schema) -> "RowType":
        return self.row_type.project([f.name for f in delete_schema.fields])

    def eq_delete_row_type(self) -> "RowType":
        if self._eq_delete_row_type is None:
            with self._lock:
                if self._eq_delete_row_type is None:
                    self._eq_delete_row_type = self._project(self.eq_delete_row_schema)
        return self._eq_delete_row_type

    def pos_delete_row_type(self) -> "RowType":
        if self._pos_delete_row_type is None:
            with self._lock:
                if self._pos_delete_row_type is None:
                    self._pos_delete_row_type = self._project(self.pos_delete_row_schema)
        return self._pos_delete_row_type

    def _check_delete_preconditions(self, kind: str, delete_schema: Schema | None) -> None:
        if not self.equality_field_ids:
            raise WriterPreconditionError(
                f"Equality field ids shouldn't be null or empty when creating {kind} delete writer"
            )
        if delete_schema is None:
            raise WriterPreconditionError(
                f"{kind.capitalize()} delete row schema shouldn't be null when creating {kind} delete writer"
            )

    def _open_appender(
        self,
        format_writer: FormatWriter,
        output_file: "OutputFile",
        schema: Schema,
        converter: "RecordConverter",
        metrics_config: MetricsConfig,
    ) -> FileAppender:
        try:
            return format_writer.new_appender(
                output_file, schema, converter, self.properties, metrics_config
            )
        except IcepodError:
            self._discard(output_file.location)
            raise

    def _discard(self, location: str) -> None:
        try:
            if self.table.io.new_input(location).exists():
                self.table.io.delete(location)
        except OSError as e:
            logger.warning(f"Could not remove partially written file {location}: {e}")

    def new_appender(
        self, output_file: "OutputFile", file_format: "FileFormat | str"
    ) -> FileAppender:
        """
        Open an appender writing full rows with the physical schema.

        A file created before the encoder failed is removed again.

        Raises:
            UnsupportedFormatError: If the format has no registered writer; no file
                is created in that case.
            ConfigurationError: If the write properties are rejected by the encoder.
            WriteIOError: If the file cannot be created.
        """
        format_writer = get_format_writer(file_format)
        converter = RowConverter(schema_to_pyarrow(self.schema), self.row_type)
        return self._open_appender(
            format_writer,
            output_file,
            self.schema,
            converter,
            MetricsConfig.for_table(self.table),
        )

    def new_data_writer(
        self,
        encrypted_file: "EncryptedOutputFile",
        file_format: "FileFormat | str",
        partition: "Record | None" = None,
    ) -> DataWriter:
        appender = self.new_appender(encrypted_file.encrypting_output_file, file_format)
        logger.debug(f"Created data writer for {encrypted_file.location}")
        return DataWriter(
            appender,
            encrypted_file.location,
            self.spec,
            partition=partition,
            key_metadata=encrypted_file.key_metadata,
        )

    def new_eq_delete_writer(
        self,
        encrypted_file: "EncryptedOutputFile",
        file_format: "FileFormat | str",
        partition: "Record | None" = None,
    ) -> EqualityDeleteWriter:
        """
        Open a writer for equality deletes.

        Rows handed to it are shaped like ``eq_delete_row_type()``.

        Raises:
            WriterPreconditionError: If there are no equality field ids or no
                equality delete row schema.
        """
        self._check_delete_preconditions("equality", self.eq_delete_row_schema)
        format_writer = get_format_writer(file_format)
        converter = RowConverter(
            schema_to_pyarrow(self.eq_delete_row_schema), self.eq_delete_row_type()
        )
        appender = self._open_appender(
            format_writer,
            encrypted_file.encrypting_output_file,
            self.eq_delete_row_schema,
            converter,
            MetricsConfig.for_table(self.table),
        )
        logger.debug(
            f"Created equality delete writer for {encrypted_file.location} "
            f"on field ids {self.equality_field_ids}"
        )
        return EqualityDeleteWriter(
            appender,
            encrypted_file.location,
            self.spec,
            self.equality_field_ids,
            partition=partition,
            key_metadata=encrypted_file.key_metadata,
        )

    def new_pos_delete_writer(
        self,
        encrypted_file: "EncryptedOutputFile",
        file_format: "FileFormat | str",
        partition: "Record | None" = None,
    ) -> PositionDeleteWriter:
        """
        Open a writer for position deletes carrying the deleted rows.

        Raises:
            WriterPreconditionError: If there are no equality field ids or no
                position delete row schema.
        """
        self._check_delete_preconditions("position", self.pos_delete_row_schema)
        format_writer = get_format_writer(file_format)
        delete_schema = position_delete_schema(self.pos_delete_row_schema)
        converter = PositionDeleteConverter(
            schema_to_pyarrow(delete_schema), self.pos_delete_row_type()
        )
        appender = self._open_appender(
            format_writer,
            encrypted_file.encrypting_output_file,
            delete_schema,
            converter,
            MetricsConfig.for_position_delete(self.table),
        )
        logger.debug(f"Created position delete writer for {encrypted_file.location}")
        return PositionDeleteWriter(
            appender,
            encrypted_file.location,
            self.spec,
            partition=partition,
            key_metadata=encrypted_file.key_metadata,
        )
