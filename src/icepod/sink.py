"""
Sink orchestration: from a sink configuration and an engine table to ready-made
file writer factories.

The sink resolves the target table, decides which columns identify a logical
record, and builds the AppenderFactory and OutputFileFactory that the engine's
task writer uses for every file it rolls.
"""

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from icepod.catalog.table_loader import TableLoader
from icepod.config import SinkConfig
from icepod.errors import ConfigurationError
from icepod.writers.appender_factory import AppenderFactory
from icepod.writers.formats import get_format_writer
from icepod.writers.output_file_factory import OutputFileFactory

if TYPE_CHECKING:
    from pyiceberg.manifest import FileFormat
    from pyiceberg.schema import Schema
    from pyiceberg.table import Table

    from icepod.types.catalog_table import CatalogTable
    from icepod.types.core import RowType

logger = logging.getLogger(__name__)


def resolve_equality_field_ids(schema: "Schema", columns: Sequence[str]) -> list[int]:
    """
    Field ids of the named columns, in the given order and without repeats.

    Raises:
        ConfigurationError: If a column is not part of the schema.
    """
    field_ids: list[int] = []
    for column in columns:
        try:
            field_id = schema.find_field(column).field_id
        except ValueError as e:
            raise ConfigurationError(
                f"Missing required equality field column '{column}' in table schema {schema}"
            ) from e
        if field_id not in field_ids:
            field_ids.append(field_id)
    return field_ids


@dataclass
class WriterContext:
    """Everything a task writer needs to roll files for one table."""

    table: "Table"
    appender_factory: AppenderFactory
    output_file_factory: OutputFileFactory
    file_format: "FileFormat"
    target_file_size_bytes: int
    equality_field_ids: list[int] = field(default_factory=list)
    upsert: bool = False
    table_loader: TableLoader | None = None

    def close(self) -> None:
        if self.table_loader is not None:
            self.table_loader.close()

    def __enter__(self) -> "WriterContext":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()


class IcebergSink:
    """
    Entry point of the write path for one Iceberg table.

    Field names coming from the engine are lower-cased before they are matched
    against the table. Equality columns come from the engine table's primary
    key unless the configuration names its own ``primary_keys``.
    """

    plugin_name = "Iceberg"

    def __init__(self, catalog_table: "CatalogTable | None", config: SinkConfig):
        self.config = config
        self.catalog_table = catalog_table.lower_case() if catalog_table is not None else None
        self.row_type: "RowType | None" = None
        self.equality_field_columns: tuple[str, ...] = ()
        if self.catalog_table is not None:
            table_schema = self.catalog_table.table_schema
            self.row_type = table_schema.to_physical_row_type()
            if table_schema.primary_key is not None:
                self.equality_field_columns = tuple(table_schema.primary_key.column_names)
        if config.primary_keys:
            self.equality_field_columns = tuple(config.primary_keys)

    @classmethod
    def from_options(
        cls, options: Mapping[str, Any], catalog_table: "CatalogTable | None" = None
    ) -> "IcebergSink":
        return cls(catalog_table, SinkConfig.from_mapping(options))

    def set_type_info(self, row_type: "RowType") -> None:
        """Adopt the engine row type when no catalog table described it."""
        if self.row_type is None:
            self.row_type = row_type.lower_case()
            self.equality_field_columns = tuple(self.config.primary_keys)

    @property
    def consumed_type(self) -> "RowType | None":
        return self.row_type

    def table_loader(self) -> TableLoader:
        return TableLoader.create(self.config, self.catalog_table)

    def load_table(self) -> "Table":
        with self.table_loader() as loader:
            loader.open()
            return loader.load_table()

    def equality_field_ids(self, table: "Table | None" = None) -> list[int]:
        """
        The field ids that identify a logical record in the table.

        Starts from the table's identifier fields; configured equality columns
        override them, with a warning when the two disagree.
        """
        if table is None:
            table = self.load_table()
        schema = table.schema()
        identifier_field_ids = list(schema.identifier_field_ids)
        if not self.equality_field_columns:
            return identifier_field_ids
        equality_field_ids = resolve_equality_field_ids(schema, self.equality_field_columns)
        if set(equality_field_ids) != set(identifier_field_ids):
            logger.warning(
                f"The configured equality field column IDs {equality_field_ids} are not matched "
                f"with the schema identifier field IDs {identifier_field_ids}, use job specified "
                f"equality field columns as the equality fields by default."
            )
        return equality_field_ids

    def write_properties(self, table: "Table") -> dict[str, str]:
        properties = dict(table.properties)
        properties.update(self.config.write_properties)
        return properties

    def create_appender_factory(
        self, table: "Table", equality_field_ids: Sequence[int]
    ) -> AppenderFactory:
        """
        Build the appender factory for the table.

        Without equality ids only data files can be written. In upsert mode the
        inserted row may differ from the deleted one in every non-key column, so
        equality deletes carry the key columns only; otherwise they carry the
        full row.
        """
        if self.row_type is None:
            raise ConfigurationError(
                "Row type is unknown: provide a catalog table or call set_type_info() first"
            )
        schema = table.schema()
        properties = self.write_properties(table)
        if not equality_field_ids:
            return AppenderFactory(table, schema, self.row_type, properties, table.spec())
        if self.config.enable_upsert:
            key_names = [schema.find_column_name(field_id) for field_id in equality_field_ids]
            eq_delete_row_schema = schema.select(*key_names)
        else:
            eq_delete_row_schema = schema
        return AppenderFactory(
            table,
            schema,
            self.row_type,
            properties,
            table.spec(),
            equality_field_ids=equality_field_ids,
            eq_delete_row_schema=eq_delete_row_schema,
            pos_delete_row_schema=None,
        )

    def create_writer_context(
        self, partition_id: int, task_id: int, operation_id: str | None = None
    ) -> WriterContext:
        """
        Open the table and build the factories for one writer task.

        The returned context owns an open table loader; closing the context
        releases it.
        """
        file_format = get_format_writer(self.config.file_format).file_format
        loader = self.table_loader()
        loader.open()
        try:
            table = loader.load_table()
            equality_field_ids = self.equality_field_ids(table)
            appender_factory = self.create_appender_factory(table, equality_field_ids)
            output_file_factory = OutputFileFactory(
                table, file_format, partition_id, task_id, operation_id
            )
        except Exception:
            loader.close()
            raise
        logger.info(
            f"Created writer context for {loader.identifier_str} "
            f"(partition {partition_id}, task {task_id}, format {file_format.name})"
        )
        return WriterContext(
            table=table,
            appender_factory=appender_factory,
            output_file_factory=output_file_factory,
            file_format=file_format,
            target_file_size_bytes=self.config.target_file_size_bytes,
            equality_field_ids=list(equality_field_ids),
            upsert=self.config.enable_upsert,
            table_loader=loader,
        )
