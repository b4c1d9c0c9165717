from .core import (
    BOOLEAN_TYPE,
    BYTE_TYPE,
    BYTES_TYPE,
    DOUBLE_TYPE,
    FLOAT_TYPE,
    INT_TYPE,
    LOCAL_DATE_TIME_TYPE,
    LOCAL_DATE_TYPE,
    LOCAL_TIME_TYPE,
    LONG_TYPE,
    SHORT_TYPE,
    STRING_TYPE,
    VOID_TYPE,
    ArrayType,
    DecimalType,
    LogicalType,
    MapType,
    Row,
    RowType,
    SqlType,
)
from .catalog_table import (
    CatalogTable,
    Column,
    ConstraintKey,
    ConstraintKeyColumn,
    PrimaryKey,
    TablePath,
    TableSchema,
)
from .type_converter import IcebergTypeConverter, to_logical_type, to_physical_type

__all__ = [
    "BOOLEAN_TYPE",
    "BYTE_TYPE",
    "BYTES_TYPE",
    "DOUBLE_TYPE",
    "FLOAT_TYPE",
    "INT_TYPE",
    "LOCAL_DATE_TIME_TYPE",
    "LOCAL_DATE_TYPE",
    "LOCAL_TIME_TYPE",
    "LONG_TYPE",
    "SHORT_TYPE",
    "STRING_TYPE",
    "VOID_TYPE",
    "ArrayType",
    "DecimalType",
    "LogicalType",
    "MapType",
    "Row",
    "RowType",
    "SqlType",
    "CatalogTable",
    "Column",
    "ConstraintKey",
    "ConstraintKeyColumn",
    "PrimaryKey",
    "TablePath",
    "TableSchema",
    "IcebergTypeConverter",
    "to_logical_type",
    "to_physical_type",
]
