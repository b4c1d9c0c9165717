import importlib
from types import ModuleType
from typing import Any


class LazyModule:
    """
    A wrapper that imports a module the first time one of its attributes is used.

    Encoders that are optional on some platforms (``pyarrow.orc``) and heavy frame
    libraries (``polars``) are bound this way so that importing icepod never pays
    for, or fails on, a format the job does not write.

    Example:
        orc = LazyModule("pyarrow.orc")

        # pyarrow.orc is imported here, on first use
        writer = orc.ORCWriter(stream)
    """

    def __init__(self, module_name: str, package: str | None = None):
        """
        Args:
            module_name: Name of the module to import
            package: Package for relative imports (same as importlib.import_module)
        """
        self._module_name = module_name
        self._package = package
        self._module: ModuleType | None = None

    def _load_module(self) -> ModuleType:
        if self._module is None:
            self._module = importlib.import_module(self._module_name, self._package)
        return self._module

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            # internal attributes never reach the wrapped module
            raise AttributeError(
                f"'{self.__class__.__name__}' object has no attribute '{name}'"
            )
        return getattr(self._load_module(), name)

    def __repr__(self) -> str:
        state = "loaded" if self._module is not None else "not loaded"
        return f"<LazyModule '{self._module_name}' ({state})>"

    @property
    def is_loaded(self) -> bool:
        return self._module is not None

    @property
    def module_name(self) -> str:
        return self._module_name
