import pytest

from icepod.utils.lazy_module import LazyModule


def test_module_is_imported_on_first_attribute_access():
    json_module = LazyModule("json")
    assert not json_module.is_loaded
    assert "not loaded" in repr(json_module)

    assert json_module.dumps({"a": 1}) == '{"a": 1}'
    assert json_module.is_loaded


def test_private_attributes_do_not_trigger_import():
    missing = LazyModule("icepod_no_such_module")
    with pytest.raises(AttributeError):
        missing._hidden
    assert not missing.is_loaded


def test_missing_module_fails_on_use():
    missing = LazyModule("icepod_no_such_module")
    with pytest.raises(ModuleNotFoundError):
        missing.anything
