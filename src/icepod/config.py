# config.py
from collections.abc import Mapping
from dataclasses import dataclass, field, fields, replace
from typing import Any, Self

from icepod.errors import ConfigurationError

DEFAULT_CATALOG_NAME = "default"
DEFAULT_FILE_FORMAT = "parquet"
# Iceberg's write.target-file-size-bytes default
DEFAULT_TARGET_FILE_SIZE_BYTES = 512 * 1024 * 1024
DEFAULT_CACHE_EXPIRATION_INTERVAL_MS = 30_000


@dataclass(frozen=True)
class SinkConfig:
    """Immutable configuration for an Iceberg sink."""

    namespace: str
    table: str | None = None
    catalog_name: str = DEFAULT_CATALOG_NAME
    catalog_type: str | None = None
    warehouse: str | None = None
    uri: str | None = None
    kerberos_principal: str | None = None
    kerberos_krb5_conf_path: str | None = None
    kerberos_keytab_path: str | None = None
    hdfs_site_path: str | None = None
    hive_site_path: str | None = None
    catalog_properties: Mapping[str, str] = field(default_factory=dict)
    primary_keys: tuple[str, ...] = ()
    file_format: str = DEFAULT_FILE_FORMAT
    target_file_size_bytes: int = DEFAULT_TARGET_FILE_SIZE_BYTES
    enable_upsert: bool = False
    write_properties: Mapping[str, str] = field(default_factory=dict)
    cache_enabled: bool = True
    cache_expiration_interval_ms: int = DEFAULT_CACHE_EXPIRATION_INTERVAL_MS

    def __post_init__(self) -> None:
        if not self.namespace or not str(self.namespace).strip():
            raise ConfigurationError("Sink option 'namespace' must not be empty")
        if isinstance(self.primary_keys, str):
            object.__setattr__(
                self, "primary_keys", _split_columns(self.primary_keys)
            )
        else:
            object.__setattr__(self, "primary_keys", tuple(self.primary_keys))
        if self.target_file_size_bytes <= 0:
            raise ConfigurationError(
                f"Sink option 'target_file_size_bytes' must be positive, got {self.target_file_size_bytes}"
            )

    def with_updates(self, **kwargs) -> Self:
        """Create a new SinkConfig instance with updated values."""
        return replace(self, **kwargs)

    def merge(self, other: "SinkConfig") -> "SinkConfig":
        """Merge with another config, other takes precedence for non-default values."""
        if not isinstance(other, SinkConfig):
            raise TypeError("Can only merge with another SinkConfig instance")

        defaults = SinkConfig(namespace=other.namespace)
        updates = {}
        for field_name in self.__dataclass_fields__:
            other_value = getattr(other, field_name)
            default_value = getattr(defaults, field_name)
            if field_name == "namespace" or other_value != default_value:
                updates[field_name] = other_value

        return self.with_updates(**updates)

    @classmethod
    def from_mapping(cls, options: Mapping[str, Any]) -> "SinkConfig":
        """
        Build a SinkConfig from a plain option mapping, as read from a job file.

        Args:
            options: Option names are the field names of SinkConfig. ``primary_keys``
                accepts either a list or a comma separated string.

        Raises:
            ConfigurationError: On unknown options, a missing namespace or values of the
                wrong kind.
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(options) - known)
        if unknown:
            raise ConfigurationError(f"Unknown sink option(s): {', '.join(unknown)}")
        if "namespace" not in options:
            raise ConfigurationError("Sink option 'namespace' is required")

        values = dict(options)
        for int_option in ("target_file_size_bytes", "cache_expiration_interval_ms"):
            if int_option in values:
                values[int_option] = _as_int(int_option, values[int_option])
        for bool_option in ("enable_upsert", "cache_enabled"):
            if bool_option in values:
                values[bool_option] = _as_bool(bool_option, values[bool_option])
        for map_option in ("catalog_properties", "write_properties"):
            if map_option in values:
                value = values[map_option] or {}
                if not isinstance(value, Mapping):
                    raise ConfigurationError(
                        f"Sink option '{map_option}' must be a mapping, got {type(value).__name__}"
                    )
                values[map_option] = {str(k): str(v) for k, v in value.items()}
        if "primary_keys" in values and values["primary_keys"] is None:
            values["primary_keys"] = ()
        return cls(**values)


def _split_columns(value: str) -> tuple[str, ...]:
    return tuple(part.strip() for part in value.split(",") if part.strip())


def _as_int(name: str, value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(
            f"Sink option '{name}' must be an integer, got {value!r}"
        ) from e


def _as_bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise ConfigurationError(f"Sink option '{name}' must be a boolean, got {value!r}")
