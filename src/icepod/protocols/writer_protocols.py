from collections.abc import Iterable, Sequence
from typing import Any, Protocol, TYPE_CHECKING

if TYPE_CHECKING:
    import pyarrow as pa
    from pyiceberg.manifest import FileFormat

    from icepod.writers.metrics import FileMetrics


class RecordConverter(Protocol):
    """Translates engine records into Arrow batches laid out for one file schema."""

    @property
    def arrow_schema(self) -> "pa.Schema": ...

    def convert(self, records: Sequence[Any]) -> "pa.RecordBatch": ...

    def convert_frame(self, frame: Any) -> "pa.Table":
        """Translate a columnar batch (Arrow table or polars DataFrame) by column name."""
        ...


class FileAppender(Protocol):
    file_format: "FileFormat"

    def add(self, record: Any) -> None: ...

    def add_all(self, records: Iterable[Any]) -> None: ...

    def add_frame(self, frame: Any) -> None: ...

    def metrics(self) -> "FileMetrics":
        """Metrics of the written file; only available once closed."""
        ...

    def length(self) -> int:
        """Bytes written so far; the final file length once closed."""
        ...

    def close(self) -> None: ...
