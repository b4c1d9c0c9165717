from .caching_catalog import CachingCatalog
from .catalog_factory import CatalogFactory, load_site_properties
from .table_loader import TableLoader

__all__ = [
    "CachingCatalog",
    "CatalogFactory",
    "TableLoader",
    "load_site_properties",
]
