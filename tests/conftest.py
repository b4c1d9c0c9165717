#!/usr/bin/env python
"""Common test fixtures: a throwaway SQLite-backed catalog and a small people table."""

import shutil
import tempfile

import pytest
from pyiceberg.catalog.sql import SqlCatalog
from pyiceberg.schema import Schema
from pyiceberg.types import IntegerType, NestedField, StringType

from icepod.config import SinkConfig
from icepod.types import INT_TYPE, STRING_TYPE, RowType

CATALOG_NAME = "test_catalog"
NAMESPACE = "db"
TABLE_NAME = "people"


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    temp_dir = tempfile.mkdtemp()
    yield temp_dir
    # Cleanup after test
    shutil.rmtree(temp_dir)


@pytest.fixture
def catalog_properties(temp_dir):
    return {
        "type": "sql",
        "uri": f"sqlite:///{temp_dir}/pyiceberg_catalog.db",
        "warehouse": f"file://{temp_dir}",
    }


@pytest.fixture
def sql_catalog(catalog_properties):
    catalog = SqlCatalog(
        CATALOG_NAME,
        uri=catalog_properties["uri"],
        warehouse=catalog_properties["warehouse"],
    )
    catalog.create_namespace(NAMESPACE)
    return catalog


@pytest.fixture
def people_schema():
    return Schema(
        NestedField(field_id=1, name="id", field_type=StringType(), required=True),
        NestedField(field_id=2, name="name", field_type=StringType(), required=False),
        NestedField(field_id=3, name="age", field_type=IntegerType(), required=False),
        identifier_field_ids=[1],
    )


@pytest.fixture
def people_table(sql_catalog, people_schema):
    return sql_catalog.create_table(f"{NAMESPACE}.{TABLE_NAME}", schema=people_schema)


@pytest.fixture
def people_row_type():
    return RowType.of(("id", STRING_TYPE), ("name", STRING_TYPE), ("age", INT_TYPE))


@pytest.fixture
def sink_config(catalog_properties):
    return SinkConfig(
        namespace=NAMESPACE,
        table=TABLE_NAME,
        catalog_name=CATALOG_NAME,
        catalog_type=catalog_properties["type"],
        uri=catalog_properties["uri"],
        warehouse=catalog_properties["warehouse"],
    )
