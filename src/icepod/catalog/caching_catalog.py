import logging
import threading
import time
from typing import TYPE_CHECKING, Any

from icepod.config import DEFAULT_CACHE_EXPIRATION_INTERVAL_MS

if TYPE_CHECKING:
    from pyiceberg.table import Table

    from icepod.protocols.catalog_protocols import Catalog

logger = logging.getLogger(__name__)


class CachingCatalog:
    """
    Read-through cache in front of a catalog.

    Loaded tables are memoized per identifier and served from memory until they
    expire; everything that is not a cached read is delegated untouched, so the
    wrapper can stand wherever the wrapped catalog is expected. Dropping,
    purging or renaming a table through the wrapper invalidates its entry.
    """

    def __init__(
        self,
        catalog: "Catalog",
        expiration_interval_ms: int = DEFAULT_CACHE_EXPIRATION_INTERVAL_MS,
        case_sensitive: bool = True,
    ):
        """
        Args:
            catalog: The catalog to wrap
            expiration_interval_ms: Lifetime of a cached table; ``<= 0`` keeps entries
                until invalidated
            case_sensitive: Whether identifiers differing only in case share an entry
        """
        self._catalog = catalog
        self.expiration_interval_ms = expiration_interval_ms
        self.case_sensitive = case_sensitive
        self._tables: dict[tuple[str, ...], tuple[float, "Table"]] = {}
        self._lock = threading.RLock()

    @classmethod
    def wrap(
        cls,
        catalog: "Catalog",
        expiration_interval_ms: int = DEFAULT_CACHE_EXPIRATION_INTERVAL_MS,
        case_sensitive: bool = True,
    ) -> "CachingCatalog":
        if isinstance(catalog, CachingCatalog):
            return catalog
        return cls(catalog, expiration_interval_ms, case_sensitive)

    @property
    def wrapped(self) -> "Catalog":
        return self._catalog

    def _cache_key(self, identifier: str | tuple[str, ...]) -> tuple[str, ...]:
        if isinstance(identifier, str):
            key = tuple(identifier.split("."))
        else:
            key = tuple(identifier)
        if not self.case_sensitive:
            key = tuple(part.lower() for part in key)
        return key

    def _is_expired(self, loaded_at: float) -> bool:
        if self.expiration_interval_ms <= 0:
            return False
        return (time.monotonic() - loaded_at) * 1000 >= self.expiration_interval_ms

    def _cached(self, key: tuple[str, ...]) -> "Table | None":
        entry = self._tables.get(key)
        if entry is None:
            return None
        loaded_at, table = entry
        if self._is_expired(loaded_at):
            del self._tables[key]
            return None
        return table

    def load_table(self, identifier: str | tuple[str, ...]) -> "Table":
        key = self._cache_key(identifier)
        with self._lock:
            table = self._cached(key)
            if table is not None:
                logger.debug(f"Serving table {'.'.join(key)} from catalog cache")
                return table
            table = self._catalog.load_table(identifier)
            self._tables[key] = (time.monotonic(), table)
            return table

    def table_exists(self, identifier: str | tuple[str, ...]) -> bool:
        key = self._cache_key(identifier)
        with self._lock:
            if self._cached(key) is not None:
                return True
        return self._catalog.table_exists(identifier)

    def invalidate_table(self, identifier: str | tuple[str, ...]) -> None:
        with self._lock:
            self._tables.pop(self._cache_key(identifier), None)

    def invalidate_all(self) -> None:
        with self._lock:
            self._tables.clear()

    def drop_table(self, identifier: str | tuple[str, ...]) -> None:
        self.invalidate_table(identifier)
        self._catalog.drop_table(identifier)

    def purge_table(self, identifier: str | tuple[str, ...]) -> None:
        self.invalidate_table(identifier)
        self._catalog.purge_table(identifier)

    def rename_table(
        self,
        from_identifier: str | tuple[str, ...],
        to_identifier: str | tuple[str, ...],
    ) -> "Table":
        self.invalidate_table(from_identifier)
        self.invalidate_table(to_identifier)
        return self._catalog.rename_table(from_identifier, to_identifier)

    def close(self) -> None:
        """Drop cached tables and close the wrapped catalog if it can be closed."""
        self.invalidate_all()
        close = getattr(self._catalog, "close", None)
        if callable(close):
            close()

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(
                f"'{self.__class__.__name__}' object has no attribute '{name}'"
            )
        return getattr(self._catalog, name)

    def __repr__(self) -> str:
        return f"CachingCatalog({self._catalog!r}, expiration_interval_ms={self.expiration_interval_ms})"
