import logging
from typing import TYPE_CHECKING, Any

from pyiceberg.exceptions import NoSuchTableError

from icepod.catalog.caching_catalog import CachingCatalog
from icepod.catalog.catalog_factory import CatalogFactory
from icepod.config import DEFAULT_CACHE_EXPIRATION_INTERVAL_MS
from icepod.errors import ConfigurationError, TableNotFoundError

if TYPE_CHECKING:
    from pyiceberg.table import Table

    from icepod.config import SinkConfig
    from icepod.protocols.catalog_protocols import Catalog, CatalogProvider
    from icepod.types.catalog_table import CatalogTable

logger = logging.getLogger(__name__)


class TableLoader:
    """
    Owns a catalog connection and resolves one table through it.

    The connection is a scoped resource: open() acquires it, close() releases it.
    Pickling a loader carries its configuration only; open() has to be called
    again on the receiving side before load_table().
    """

    def __init__(
        self,
        catalog_factory: "CatalogProvider",
        table_identifier: tuple[str, ...],
        cache_enabled: bool = True,
        cache_expiration_interval_ms: int = DEFAULT_CACHE_EXPIRATION_INTERVAL_MS,
    ):
        if catalog_factory is None:
            raise ConfigurationError("Catalog factory must not be None")
        if not table_identifier or not all(table_identifier):
            raise ConfigurationError(f"Invalid table identifier: {table_identifier!r}")
        self.catalog_factory = catalog_factory
        self.table_identifier = tuple(table_identifier)
        self.cache_enabled = cache_enabled
        self.cache_expiration_interval_ms = cache_expiration_interval_ms
        self._catalog: "Catalog | None" = None

    @classmethod
    def create(
        cls,
        config: "SinkConfig",
        catalog_table: "CatalogTable | None" = None,
    ) -> "TableLoader":
        """
        Build a loader for the table named by a sink configuration.

        Args:
            config: Sink configuration carrying catalog settings, namespace and table
            catalog_table: Engine-side table; its name is used when ``config.table``
                is blank

        Raises:
            ConfigurationError: If neither source yields a table name.
        """
        table_name = config.table.strip() if config.table else ""
        if not table_name:
            if catalog_table is not None and catalog_table.table_name:
                table_name = catalog_table.table_name
                logger.info(
                    f"Configured table name is empty, using catalog table name: {table_name}"
                )
            else:
                raise ConfigurationError(
                    "Table name is empty: set the 'table' option or provide a catalog table"
                )
        return cls(
            CatalogFactory.from_config(config),
            (config.namespace, table_name),
            cache_enabled=config.cache_enabled,
            cache_expiration_interval_ms=config.cache_expiration_interval_ms,
        )

    @property
    def identifier_str(self) -> str:
        return ".".join(self.table_identifier)

    @property
    def is_open(self) -> bool:
        return self._catalog is not None

    def open(self) -> None:
        if self._catalog is not None:
            logger.debug(f"Table loader for {self.identifier_str} is already open")
            return
        catalog = self.catalog_factory.create()
        if self.cache_enabled:
            catalog = CachingCatalog.wrap(catalog, self.cache_expiration_interval_ms)
        self._catalog = catalog

    def load_table(self) -> "Table":
        """
        Load the table, checking that it exists first.

        Raises:
            ConfigurationError: If the loader has not been opened.
            TableNotFoundError: If the catalog does not know the table.
        """
        if self._catalog is None:
            raise ConfigurationError(
                f"Table loader for {self.identifier_str} is not open; call open() first"
            )
        if not self._catalog.table_exists(self.table_identifier):
            raise TableNotFoundError(f"Illegal source table: {self.identifier_str}")
        try:
            table = self._catalog.load_table(self.table_identifier)
        except NoSuchTableError as e:
            # dropped between the existence check and the load
            raise TableNotFoundError(f"Illegal source table: {self.identifier_str}") from e
        logger.info(f"Loaded iceberg table {self.identifier_str}")
        return table

    def close(self) -> None:
        catalog, self._catalog = self._catalog, None
        if catalog is None:
            return
        close = getattr(catalog, "close", None)
        if callable(close):
            close()

    def __enter__(self) -> "TableLoader":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    def __getstate__(self) -> dict[str, Any]:
        state = self.__dict__.copy()
        state["_catalog"] = None
        return state

    def __setstate__(self, state: dict[str, Any]) -> None:
        self.__dict__.update(state)
        self._catalog = None

    def __repr__(self) -> str:
        return f"TableLoader({self.identifier_str!r}, open={self.is_open})"
