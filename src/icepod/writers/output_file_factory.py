import itertools
import logging
import threading
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING

from pyiceberg.manifest import FileFormat
from pyiceberg.table import TableProperties

from icepod.writers.formats import get_format_writer

if TYPE_CHECKING:
    from pyiceberg.io import OutputFile
    from pyiceberg.table import Table
    from pyiceberg.typedef import Record

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EncryptedOutputFile:
    """An output file plus the key metadata needed to read it back, if any."""

    encrypting_output_file: "OutputFile"
    key_metadata: bytes | None = None

    @property
    def location(self) -> str:
        return self.encrypting_output_file.location


class OutputFileFactory:
    """
    Hands out unique file locations for one writer task.

    Names follow ``{partition_id:05d}-{task_id}-{operation_id}-{count:05d}.{ext}``
    so that files from different tasks and different runs never collide. Files
    land under ``write.data.path`` (``<table location>/data`` by default),
    nested in the partition path for partitioned tables.
    """

    def __init__(
        self,
        table: "Table",
        file_format: FileFormat | str,
        partition_id: int,
        task_id: int,
        operation_id: str | None = None,
    ):
        self.table = table
        self.file_format = get_format_writer(file_format).file_format
        self.extension = get_format_writer(file_format).extension
        self.partition_id = partition_id
        self.task_id = task_id
        self.operation_id = operation_id or str(uuid.uuid4())
        self._file_count = itertools.count(1)
        self._lock = threading.Lock()

    @property
    def data_location(self) -> str:
        default = f"{self.table.location().rstrip('/')}/data"
        return self.table.properties.get(TableProperties.WRITE_DATA_PATH, default).rstrip("/")

    def generate_filename(self) -> str:
        with self._lock:
            count = next(self._file_count)
        return (
            f"{self.partition_id:05d}-{self.task_id}-{self.operation_id}-{count:05d}.{self.extension}"
        )

    def new_output_file(self, partition: "Record | None" = None) -> EncryptedOutputFile:
        """Allocate a fresh file, placed under the partition path when one is given."""
        filename = self.generate_filename()
        spec = self.table.spec()
        if partition is not None and not spec.is_unpartitioned():
            partition_path = spec.partition_to_path(partition, self.table.schema())
            location = f"{self.data_location}/{partition_path}/{filename}"
        else:
            location = f"{self.data_location}/{filename}"
        logger.debug(f"Allocated output file {location}")
        return EncryptedOutputFile(self.table.io.new_output(location))
