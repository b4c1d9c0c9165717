#!/usr/bin/env python
"""Common test fixtures for writer tests."""

from pathlib import Path

import pytest
from pyiceberg.schema import Schema
from pyiceberg.types import NestedField, StringType

from icepod.writers import AppenderFactory, EncryptedOutputFile


@pytest.fixture
def new_output(people_table, temp_dir):
    """Allocate output files inside the temporary directory."""
    out_dir = Path(temp_dir) / "out"
    out_dir.mkdir(exist_ok=True)

    def _new_output(name, key_metadata=None):
        location = str(out_dir / name)
        return EncryptedOutputFile(people_table.io.new_output(location), key_metadata)

    return _new_output


@pytest.fixture
def pos_delete_row_schema():
    return Schema(
        NestedField(field_id=1, name="id", field_type=StringType(), required=True),
        NestedField(field_id=2, name="name", field_type=StringType(), required=False),
    )


@pytest.fixture
def delete_factory(people_table, people_row_type, pos_delete_row_schema):
    """Factory keyed on ``id`` with full-row equality deletes and [id, name] position deletes."""
    schema = people_table.schema()
    return AppenderFactory(
        people_table,
        schema,
        people_row_type,
        dict(people_table.properties),
        people_table.spec(),
        equality_field_ids=[1],
        eq_delete_row_schema=schema,
        pos_delete_row_schema=pos_delete_row_schema,
    )


@pytest.fixture
def data_factory(people_table, people_row_type):
    return AppenderFactory(
        people_table,
        people_table.schema(),
        people_row_type,
        dict(people_table.properties),
        people_table.spec(),
    )
