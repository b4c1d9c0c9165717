"""
Content writers wrap a FileAppender and describe the finished file.

A content writer knows what kind of content its file holds (rows, equality
deletes or position deletes) and, once closed, produces the pyiceberg
DataFile that a commit needs: location, format, partition, spec id, size,
metrics and, for equality deletes, the equality field ids.
"""

import logging
from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING, Any

from pyiceberg.manifest import DataFile, DataFileContent
from pyiceberg.typedef import Record

from icepod.errors import IcepodError
from icepod.writers.row_converter import PositionDelete

if TYPE_CHECKING:
    import pyarrow as pa
    import polars as pl
    from pyiceberg.partitioning import PartitionSpec

    from icepod.protocols.writer_protocols import FileAppender
    from icepod.types.core import Row

logger = logging.getLogger(__name__)


class ContentFileWriter:
    content: DataFileContent = DataFileContent.DATA

    def __init__(
        self,
        appender: "FileAppender",
        location: str,
        spec: "PartitionSpec",
        partition: Record | None = None,
        key_metadata: bytes | None = None,
        equality_field_ids: Sequence[int] | None = None,
        sort_order_id: int | None = None,
    ):
        self.appender = appender
        self.location = location
        self.spec = spec
        self.partition = partition if partition is not None else Record()
        self.key_metadata = key_metadata
        self.equality_field_ids = list(equality_field_ids) if equality_field_ids else None
        self.sort_order_id = sort_order_id
        self._data_file: DataFile | None = None

    @property
    def file_format(self):
        return self.appender.file_format

    @property
    def closed(self) -> bool:
        return self._data_file is not None

    def length(self) -> int:
        return self.appender.length()

    def close(self) -> None:
        if self._data_file is not None:
            return
        self.appender.close()
        metrics = self.appender.metrics()
        self._data_file = DataFile.from_args(
            content=self.content,
            file_path=self.location,
            file_format=self.file_format,
            partition=self.partition,
            file_size_in_bytes=self.appender.length(),
            sort_order_id=self.sort_order_id,
            equality_ids=self.equality_field_ids,
            key_metadata=self.key_metadata,
            **metrics.to_data_file_args(),
        )
        # not a constructor argument on every pyiceberg release
        self._data_file.spec_id = self.spec.spec_id
        logger.debug(
            f"Closed {self.content.name.lower()} file {self.location} "
            f"with {metrics.record_count} records"
        )

    def to_data_file(self) -> DataFile:
        """The finished file's description; only available once closed."""
        if self._data_file is None:
            raise IcepodError(f"Cannot describe {self.location} before it is closed")
        return self._data_file

    def __enter__(self) -> "ContentFileWriter":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.location!r})"


class DataWriter(ContentFileWriter):
    content = DataFileContent.DATA

    def write(self, row: "Row") -> None:
        self.appender.add(row)

    def write_all(self, rows: Iterable["Row"]) -> None:
        self.appender.add_all(rows)

    def write_frame(self, frame: "pa.Table | pl.DataFrame") -> None:
        self.appender.add_frame(frame)


class EqualityDeleteWriter(ContentFileWriter):
    """
    Writes the rows to delete by equality.

    Rows are shaped like the equality-delete row type: positional rows must
    follow its column order, keyed rows only need its column names.
    """

    content = DataFileContent.EQUALITY_DELETES

    def __init__(self, appender, location, spec, equality_field_ids, **kwargs: Any):
        if not equality_field_ids:
            raise IcepodError("Equality delete files need at least one equality field id")
        super().__init__(appender, location, spec, equality_field_ids=equality_field_ids, **kwargs)

    def delete(self, row: "Row") -> None:
        self.appender.add(row)

    def delete_all(self, rows: Iterable["Row"]) -> None:
        self.appender.add_all(rows)

    def delete_frame(self, frame: "pa.Table | pl.DataFrame") -> None:
        self.appender.add_frame(frame)


class PositionDeleteWriter(ContentFileWriter):
    content = DataFileContent.POSITION_DELETES

    def __init__(self, appender, location, spec, **kwargs: Any):
        super().__init__(appender, location, spec, **kwargs)
        self._referenced_data_files: set[str] = set()

    def delete(self, path: str, pos: int, row: "Row | None" = None) -> None:
        self.write(PositionDelete(path, pos, row))

    def write(self, position_delete: PositionDelete) -> None:
        self._referenced_data_files.add(position_delete.path)
        self.appender.add(position_delete)

    def write_all(self, position_deletes: Iterable[PositionDelete]) -> None:
        for position_delete in position_deletes:
            self.write(position_delete)

    @property
    def referenced_data_files(self) -> frozenset[str]:
        """Locations of the data files this delete file points into."""
        return frozenset(self._referenced_data_files)
