"""
Column metrics for written files.

What is collected for each column follows the table's metrics properties
(``write.metadata.metrics.default`` and ``write.metadata.metrics.column.<name>``),
resolved through pyiceberg's statistics plan. Parquet metrics are read back
from the file footer; ORC metrics are accumulated from the Arrow batches as
they are written.
"""

import datetime
import logging
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Any

import pyarrow as pa
import pyarrow.compute as pc
from pyiceberg.conversions import to_bytes
from pyiceberg.io.pyarrow import (
    MetricModeTypes,
    StatisticsCollector,
    compute_statistics_plan,
    data_file_statistics_from_parquet_metadata,
    parquet_path_to_id_mapping,
)
from pyiceberg.table import TableProperties
from pyiceberg.types import BinaryType, PrimitiveType, StringType
from pyiceberg.utils.datetime import date_to_days, datetime_to_micros
from pyiceberg.utils.truncate import (
    truncate_upper_bound_binary_string,
    truncate_upper_bound_text_string,
)

if TYPE_CHECKING:
    import pyarrow.parquet as pq
    from pyiceberg.schema import Schema
    from pyiceberg.table import Table

logger = logging.getLogger(__name__)

DELETE_FILE_PATH_NAME = "file_path"
DELETE_FILE_POS_NAME = "pos"


@dataclass(frozen=True)
class MetricsConfig:
    """Snapshot of the metrics properties in effect for one writer."""

    properties: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def for_table(cls, table: "Table") -> "MetricsConfig":
        return cls(dict(table.properties))

    @classmethod
    def for_position_delete(cls, table: "Table") -> "MetricsConfig":
        """Table metrics settings, except that path and position columns always get full metrics."""
        properties = dict(table.properties)
        for column in (DELETE_FILE_PATH_NAME, DELETE_FILE_POS_NAME):
            properties[f"{TableProperties.METRICS_MODE_COLUMN_CONF_PREFIX}.{column}"] = "full"
        return cls(properties)

    @property
    def default_mode(self) -> str:
        return self.properties.get(
            TableProperties.DEFAULT_WRITE_METRICS_MODE,
            TableProperties.DEFAULT_WRITE_METRICS_MODE_DEFAULT,
        )

    def plan(self, schema: "Schema") -> dict[int, StatisticsCollector]:
        """Per field id, the metrics mode to collect for a file of this schema."""
        return compute_statistics_plan(schema, dict(self.properties))


@dataclass(frozen=True)
class FileMetrics:
    record_count: int
    column_sizes: dict[int, int] = field(default_factory=dict)
    value_counts: dict[int, int] = field(default_factory=dict)
    null_value_counts: dict[int, int] = field(default_factory=dict)
    nan_value_counts: dict[int, int] = field(default_factory=dict)
    lower_bounds: dict[int, bytes] = field(default_factory=dict)
    upper_bounds: dict[int, bytes] = field(default_factory=dict)
    split_offsets: list[int] = field(default_factory=list)

    @classmethod
    def from_parquet_metadata(
        cls,
        parquet_metadata: "pq.FileMetaData",
        schema: "Schema",
        metrics_config: MetricsConfig,
    ) -> "FileMetrics":
        statistics = data_file_statistics_from_parquet_metadata(
            parquet_metadata=parquet_metadata,
            stats_columns=metrics_config.plan(schema),
            parquet_column_mapping=parquet_path_to_id_mapping(schema),
        )
        serialized = statistics.to_serialized_dict()
        return cls(**{k: v for k, v in serialized.items() if k in cls.__dataclass_fields__})

    def to_data_file_args(self) -> dict[str, Any]:
        return asdict(self)


def _to_iceberg_value(value: Any) -> Any:
    # pyiceberg serializes temporal bounds from their integer encodings
    if isinstance(value, datetime.datetime):
        return datetime_to_micros(value)
    if isinstance(value, datetime.date):
        return date_to_days(value)
    if isinstance(value, datetime.time):
        return (
            (value.hour * 60 + value.minute) * 60 + value.second
        ) * 1_000_000 + value.microsecond
    return value


class _ColumnMetrics:
    def __init__(self, collector: StatisticsCollector):
        self.collector = collector
        self.value_count = 0
        self.null_count = 0
        self.nan_count = 0
        self.current_min: Any = None
        self.current_max: Any = None

    @property
    def mode(self) -> MetricModeTypes:
        return self.collector.mode.type

    @property
    def collects_bounds(self) -> bool:
        return self.mode in (MetricModeTypes.TRUNCATE, MetricModeTypes.FULL)

    def update(self, values: pa.Array) -> None:
        self.value_count += len(values)
        self.null_count += values.null_count
        if pa.types.is_floating(values.type):
            self.nan_count += pc.sum(pc.is_nan(values)).as_py() or 0
        if not self.collects_bounds or values.null_count == len(values):
            return
        bounds = pc.min_max(values).as_py()
        low, high = bounds["min"], bounds["max"]
        if low is not None and (self.current_min is None or low < self.current_min):
            self.current_min = low
        if high is not None and (self.current_max is None or high > self.current_max):
            self.current_max = high

    def _serialize(self, value: Any) -> bytes:
        return to_bytes(self.collector.iceberg_type, _to_iceberg_value(value))

    def lower_bound(self) -> bytes | None:
        if self.current_min is None:
            return None
        value = self.current_min
        if self.mode == MetricModeTypes.TRUNCATE and isinstance(value, (str, bytes)):
            value = value[: self.collector.mode.length]
        return self._serialize(value)

    def upper_bound(self) -> bytes | None:
        if self.current_max is None:
            return None
        value = self.current_max
        if self.mode == MetricModeTypes.TRUNCATE:
            length = self.collector.mode.length
            iceberg_type = self.collector.iceberg_type
            if isinstance(iceberg_type, StringType):
                value = truncate_upper_bound_text_string(value, length)
            elif isinstance(iceberg_type, BinaryType):
                value = truncate_upper_bound_binary_string(value, length)
            if value is None:
                return None
        return self._serialize(value)


class ArrowMetricsCollector:
    """
    Accumulates file metrics from the Arrow batches handed to an encoder.

    Only top-level primitive columns are measured. Nested columns (such as the
    ``row`` struct of a position-delete file) are left without metrics.
    """

    def __init__(self, schema: "Schema", metrics_config: MetricsConfig):
        plan = metrics_config.plan(schema)
        self._columns: dict[str, tuple[int, _ColumnMetrics]] = {}
        for nested_field in schema.columns:
            collector = plan.get(nested_field.field_id)
            if collector is None or not isinstance(nested_field.field_type, PrimitiveType):
                continue
            if collector.mode.type == MetricModeTypes.NONE:
                continue
            self._columns[nested_field.name] = (
                nested_field.field_id,
                _ColumnMetrics(collector),
            )
        self.record_count = 0

    def update(self, batch: pa.RecordBatch) -> None:
        self.record_count += batch.num_rows
        for name, (_, column) in self._columns.items():
            column.update(batch.column(name))

    def to_metrics(self) -> FileMetrics:
        value_counts, null_counts, nan_counts = {}, {}, {}
        lower_bounds, upper_bounds = {}, {}
        for field_id, column in self._columns.values():
            value_counts[field_id] = column.value_count
            null_counts[field_id] = column.null_count
            if column.nan_count:
                nan_counts[field_id] = column.nan_count
            if (lower := column.lower_bound()) is not None:
                lower_bounds[field_id] = lower
            if (upper := column.upper_bound()) is not None:
                upper_bounds[field_id] = upper
        return FileMetrics(
            record_count=self.record_count,
            value_counts=value_counts,
            null_value_counts=null_counts,
            nan_value_counts=nan_counts,
            lower_bounds=lower_bounds,
            upper_bounds=upper_bounds,
        )
