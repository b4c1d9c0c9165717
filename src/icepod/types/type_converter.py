"""
Type bridge between engine logical types and Iceberg types.

The mapping is total on primitive scalars and refuses nested kinds:

1. Integer widths collapse to Iceberg ``int``; ``fixed`` and ``binary`` collapse to bytes
2. Logical → Iceberg decimals take precision and scale from a side-channel property map
3. Iceberg → logical decimals always come back as DECIMAL(38, 18), whatever the table declares
"""

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from pyiceberg.schema import Schema
from pyiceberg.types import (
    BinaryType,
    BooleanType,
    DateType,
    DoubleType,
    FixedType,
    FloatType,
    IcebergType,
    IntegerType,
    ListType,
    LongType,
    MapType,
    NestedField,
    StringType,
    StructType,
    TimestampType,
    TimestamptzType,
    TimeType,
    UUIDType,
)
from pyiceberg.types import DecimalType as IcebergDecimalType

from icepod.errors import ConfigurationError, UnsupportedTypeError
from icepod.types.core import (
    BOOLEAN_TYPE,
    BYTES_TYPE,
    DOUBLE_TYPE,
    FLOAT_TYPE,
    INT_TYPE,
    LOCAL_DATE_TIME_TYPE,
    LOCAL_DATE_TYPE,
    LOCAL_TIME_TYPE,
    LONG_TYPE,
    STRING_TYPE,
    DecimalType,
    LogicalType,
    RowType,
    SqlType,
)

logger = logging.getLogger(__name__)

PRECISION = "precision"
SCALE = "scale"

# precision/scale handed out for every Iceberg decimal, regardless of the declared one
DEFAULT_DECIMAL_PRECISION = 38
DEFAULT_DECIMAL_SCALE = 18

_TYPE_IDS: dict[type, str] = {
    BooleanType: "BOOLEAN",
    IntegerType: "INTEGER",
    LongType: "LONG",
    FloatType: "FLOAT",
    DoubleType: "DOUBLE",
    DateType: "DATE",
    TimeType: "TIME",
    TimestampType: "TIMESTAMP",
    TimestamptzType: "TIMESTAMP",
    StringType: "STRING",
    UUIDType: "UUID",
    FixedType: "FIXED",
    BinaryType: "BINARY",
    IcebergDecimalType: "DECIMAL",
    StructType: "STRUCT",
    ListType: "LIST",
    MapType: "MAP",
}

# spellings produced by str() on pyiceberg types
_TYPE_ID_ALIASES = {
    "INT": "INTEGER",
    "TIMESTAMPTZ": "TIMESTAMP",
}

_NESTED_TYPE_IDS = frozenset({"STRUCT", "LIST", "MAP"})

_ICEBERG_TO_LOGICAL: dict[str, LogicalType] = {
    "BOOLEAN": BOOLEAN_TYPE,
    "INTEGER": INT_TYPE,
    "LONG": LONG_TYPE,
    "FLOAT": FLOAT_TYPE,
    "DOUBLE": DOUBLE_TYPE,
    "DATE": LOCAL_DATE_TYPE,
    "TIME": LOCAL_TIME_TYPE,
    "TIMESTAMP": LOCAL_DATE_TIME_TYPE,
    "STRING": STRING_TYPE,
    "FIXED": BYTES_TYPE,
    "BINARY": BYTES_TYPE,
}

_LOGICAL_TO_ICEBERG: dict[SqlType, IcebergType] = {
    SqlType.STRING: StringType(),
    SqlType.BOOLEAN: BooleanType(),
    SqlType.TINYINT: IntegerType(),
    SqlType.SMALLINT: IntegerType(),
    SqlType.INT: IntegerType(),
    SqlType.BIGINT: LongType(),
    SqlType.FLOAT: FloatType(),
    SqlType.DOUBLE: DoubleType(),
    SqlType.BYTES: BinaryType(),
    SqlType.DATE: DateType(),
    SqlType.TIME: TimeType(),
    SqlType.TIMESTAMP: TimestampType(),
}


def type_id_of(iceberg_type: IcebergType | str) -> str:
    """
    Normalize an Iceberg type, or the name of one, to its upper-case type id.

    Parameterized spellings such as ``decimal(10, 2)`` or ``fixed[16]`` reduce to
    their base id. Unknown names are returned normalized; callers decide whether
    they are supported.
    """
    if isinstance(iceberg_type, str):
        name = iceberg_type.strip().upper()
        for delimiter in ("(", "["):
            name = name.split(delimiter, 1)[0]
        name = name.strip()
        return _TYPE_ID_ALIASES.get(name, name)
    for iceberg_class, type_id in _TYPE_IDS.items():
        if isinstance(iceberg_type, iceberg_class):
            return type_id
    return type(iceberg_type).__name__.upper()


class IcebergTypeConverter:
    """Converts between engine logical types and Iceberg types."""

    identity = "Iceberg"

    def to_logical_type(self, iceberg_type: IcebergType | str | None) -> LogicalType | None:
        """
        Map an Iceberg type (or its type id name) to the engine's logical type.

        Args:
            iceberg_type: A pyiceberg type instance or a type id such as ``"LONG"``.
                ``None`` maps to ``None``.

        Returns:
            The logical type. Iceberg decimals always map to DECIMAL(38, 18).

        Raises:
            UnsupportedTypeError: For nested types (struct, list, map) and any
                other kind with no logical counterpart.
        """
        if iceberg_type is None:
            return None
        type_id = type_id_of(iceberg_type)
        if type_id == "DECIMAL":
            return DecimalType(DEFAULT_DECIMAL_PRECISION, DEFAULT_DECIMAL_SCALE)
        logical_type = _ICEBERG_TO_LOGICAL.get(type_id)
        if logical_type is None:
            kind = "nested " if type_id in _NESTED_TYPE_IDS else ""
            raise UnsupportedTypeError(f"Unsupported {kind}iceberg type: {type_id}")
        return logical_type

    def to_physical_type(
        self,
        logical_type: LogicalType,
        properties: Mapping[str, Any] | None = None,
    ) -> IcebergType:
        """
        Map an engine logical type to an Iceberg type.

        Args:
            logical_type: The engine type to convert
            properties: Side-channel type properties; DECIMAL requires ``precision``
                and ``scale`` entries

        Raises:
            ConfigurationError: If a decimal is converted without precision and scale.
            UnsupportedTypeError: For arrays, maps, rows, nulls and unknown kinds.
        """
        sql_type = logical_type.sql_type
        if sql_type is SqlType.DECIMAL:
            properties = properties or {}
            if PRECISION not in properties or SCALE not in properties:
                raise ConfigurationError(
                    f"Converting {logical_type} to an iceberg decimal requires "
                    f"'{PRECISION}' and '{SCALE}' properties"
                )
            return IcebergDecimalType(int(properties[PRECISION]), int(properties[SCALE]))
        iceberg_type = _LOGICAL_TO_ICEBERG.get(sql_type)
        if iceberg_type is None:
            raise UnsupportedTypeError(f"Doesn't support Iceberg type '{sql_type.value}' yet.")
        return iceberg_type

    def to_connector_type(
        self,
        logical_type: LogicalType,
        properties: Mapping[str, Any] | None = None,
    ) -> str:
        """Iceberg type id name for a logical type, e.g. ``"LONG"``."""
        return type_id_of(self.to_physical_type(logical_type, properties))

    def to_iceberg_schema(
        self,
        row_type: RowType,
        identifier_columns: Sequence[str] = (),
    ) -> Schema:
        """
        Build a fresh Iceberg schema from a row type, assigning field ids from 1.

        Identifier columns become required fields and the schema's identifier fields.
        Decimal columns carry their own precision and scale into the conversion.

        Raises:
            ConfigurationError: If an identifier column is not part of the row type.
        """
        missing = [name for name in identifier_columns if not row_type.contains(name)]
        if missing:
            raise ConfigurationError(
                f"Identifier column(s) {missing} not found in row type {row_type}"
            )
        fields = []
        for field_id, (name, logical_type) in enumerate(row_type, start=1):
            properties = None
            if isinstance(logical_type, DecimalType):
                properties = {PRECISION: logical_type.precision, SCALE: logical_type.scale}
            fields.append(
                NestedField(
                    field_id=field_id,
                    name=name,
                    field_type=self.to_physical_type(logical_type, properties),
                    required=name in identifier_columns,
                )
            )
        identifier_field_ids = [row_type.index_of(name) + 1 for name in identifier_columns]
        return Schema(*fields, identifier_field_ids=identifier_field_ids)


DEFAULT_TYPE_CONVERTER = IcebergTypeConverter()


def to_logical_type(iceberg_type: IcebergType | str | None) -> LogicalType | None:
    return DEFAULT_TYPE_CONVERTER.to_logical_type(iceberg_type)


def to_physical_type(
    logical_type: LogicalType, properties: Mapping[str, Any] | None = None
) -> IcebergType:
    return DEFAULT_TYPE_CONVERTER.to_physical_type(logical_type, properties)
