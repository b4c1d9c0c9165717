from typing import Protocol, TYPE_CHECKING

if TYPE_CHECKING:
    from pyiceberg.table import Table


class Catalog(Protocol):
    """The slice of a pyiceberg catalog the write path relies on."""

    def table_exists(self, identifier: str | tuple[str, ...]) -> bool: ...

    def load_table(self, identifier: str | tuple[str, ...]) -> "Table": ...


class CatalogProvider(Protocol):
    def create(self) -> Catalog:
        """Open a new catalog connection."""
        ...
