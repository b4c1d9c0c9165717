import logging
import os
import xml.etree.ElementTree as ET
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from pyiceberg.catalog import load_catalog

from icepod.errors import ConfigurationError

if TYPE_CHECKING:
    from pyiceberg.catalog import Catalog

    from icepod.config import SinkConfig

logger = logging.getLogger(__name__)

HIVE_CATALOG_TYPE = "hive"
HIVE_METASTORE_URIS = "hive.metastore.uris"
HIVE_METASTORE_WAREHOUSE_DIR = "hive.metastore.warehouse.dir"
HIVE_KERBEROS_AUTHENTICATION = "hive.kerberos-authentication"


def load_site_properties(site_path: str | Path) -> dict[str, str]:
    """
    Read a Hadoop-style ``*-site.xml`` file into a flat property mapping.

    Args:
        site_path: Path to a file of ``<configuration><property><name/><value/>``
            entries

    Raises:
        ConfigurationError: If the file is missing or is not well-formed XML.
    """
    path = Path(site_path)
    if not path.is_file():
        raise ConfigurationError(f"Site configuration file {path} does not exist")
    try:
        root = ET.parse(path).getroot()
    except ET.ParseError as e:
        raise ConfigurationError(f"Cannot parse site configuration file {path}: {e}") from e

    properties = {}
    for prop in root.iter("property"):
        name = prop.findtext("name")
        value = prop.findtext("value")
        if name and value is not None:
            properties[name.strip()] = value.strip()
    return properties


@dataclass(frozen=True)
class CatalogFactory:
    """
    Recipe for opening a pyiceberg catalog.

    Only configuration is held here, so a factory can be pickled and shipped to
    workers; every call to create() opens a fresh catalog.
    """

    catalog_name: str
    catalog_type: str | None = None
    warehouse: str | None = None
    uri: str | None = None
    kerberos_principal: str | None = None
    kerberos_krb5_conf_path: str | None = None
    kerberos_keytab_path: str | None = None
    hdfs_site_path: str | None = None
    hive_site_path: str | None = None
    properties: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_config(cls, config: "SinkConfig") -> "CatalogFactory":
        return cls(
            catalog_name=config.catalog_name,
            catalog_type=config.catalog_type,
            warehouse=config.warehouse,
            uri=config.uri,
            kerberos_principal=config.kerberos_principal,
            kerberos_krb5_conf_path=config.kerberos_krb5_conf_path,
            kerberos_keytab_path=config.kerberos_keytab_path,
            hdfs_site_path=config.hdfs_site_path,
            hive_site_path=config.hive_site_path,
            properties=dict(config.catalog_properties),
        )

    def catalog_properties(self) -> dict[str, str]:
        """Resolve the property mapping handed to ``pyiceberg.catalog.load_catalog``."""
        properties = dict(self.properties)
        if self.catalog_type:
            properties["type"] = self.catalog_type
        if self.uri:
            properties["uri"] = self.uri
        if self.warehouse:
            properties["warehouse"] = self.warehouse

        if self.hive_site_path:
            site = load_site_properties(self.hive_site_path)
            if "uri" not in properties and HIVE_METASTORE_URIS in site:
                properties["uri"] = site[HIVE_METASTORE_URIS]
            if "warehouse" not in properties and HIVE_METASTORE_WAREHOUSE_DIR in site:
                properties["warehouse"] = site[HIVE_METASTORE_WAREHOUSE_DIR]

        if self.kerberos_principal and properties.get("type") == HIVE_CATALOG_TYPE:
            properties.setdefault(HIVE_KERBEROS_AUTHENTICATION, "true")
        return properties

    def _export_environment(self) -> None:
        # libhdfs and the MIT Kerberos client only read these from the environment
        if self.hdfs_site_path:
            os.environ["HADOOP_CONF_DIR"] = str(Path(self.hdfs_site_path).parent)
        if self.kerberos_krb5_conf_path:
            os.environ["KRB5_CONFIG"] = str(self.kerberos_krb5_conf_path)
        if self.kerberos_keytab_path:
            os.environ["KRB5_CLIENT_KTNAME"] = str(self.kerberos_keytab_path)

    def create(self) -> "Catalog":
        """
        Open the catalog.

        Raises:
            ConfigurationError: If pyiceberg rejects the catalog configuration.
        """
        properties = self.catalog_properties()
        self._export_environment()
        if self.kerberos_principal:
            logger.info(
                f"Using kerberos principal {self.kerberos_principal} for catalog {self.catalog_name}"
            )
        logger.info(
            f"Creating iceberg catalog {self.catalog_name} of type {properties.get('type', '<inferred>')}"
        )
        try:
            return load_catalog(self.catalog_name, **properties)
        except ValueError as e:
            raise ConfigurationError(
                f"Cannot create iceberg catalog {self.catalog_name}: {e}"
            ) from e
