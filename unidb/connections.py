"""
Connection Descriptor Registry - resolves logical connection names.

Provides:
- PoolConfig: relational pool bounds
- ConnectionConfig: immutable, fully merged connection descriptor
- ConnectionRegistry: name -> ConnectionConfig resolution with runtime overrides
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional
from urllib.parse import quote

from .faults import ConfigurationError

if TYPE_CHECKING:
    from .config import ConfigLoader
    from .drivers.base import BackendKind

logger = logging.getLogger("unidb.connections")

__all__ = [
    "PoolConfig",
    "ConnectionConfig",
    "ConnectionRegistry",
    "DEFAULT_CONNECTION",
    "mask_url",
]

DEFAULT_CONNECTION = "default"

_SCALAR_FIELDS = ("driver", "url", "host", "port", "username", "password", "database", "migrations")
_REQUIRED_FIELDS = ("host", "username", "password", "database")

_SCHEMES = {
    "postgres": "postgresql",
    "postgresql": "postgresql",
    "mysql": "mysql",
    "mongo": "mongodb",
    "mongodb": "mongodb",
}


@dataclass(frozen=True)
class PoolConfig:
    """Bounds for a relational connection pool."""

    min_size: int = 2
    max_size: int = 20
    acquire_timeout: float = 60.0

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> PoolConfig:
        if not data:
            return cls()
        timeout = data.get("acquire_timeout")
        if timeout is None and data.get("acquire_timeout_millis") is not None:
            timeout = float(data["acquire_timeout_millis"]) / 1000
        pool = cls(
            min_size=int(data.get("min", data.get("min_size", cls.min_size))),
            max_size=int(data.get("max", data.get("max_size", cls.max_size))),
            acquire_timeout=float(timeout if timeout is not None else cls.acquire_timeout),
        )
        if pool.min_size < 0 or pool.max_size < 1 or pool.min_size > pool.max_size:
            raise ConfigurationError(
                f"pool bounds must satisfy 0 <= min <= max and max >= 1, "
                f"got min={pool.min_size} max={pool.max_size}"
            )
        return pool


@dataclass(frozen=True)
class ConnectionConfig:
    """
    A resolved connection descriptor.

    Immutable: a new one is resolved for every ``fabricate`` call that
    carries runtime overrides.
    """

    name: str
    driver: str
    url: Optional[str] = None
    host: Optional[str] = None
    port: Optional[int] = None
    username: Optional[str] = None
    password: Optional[str] = None
    database: Optional[str] = None
    migrations_table: str = "migrations"
    pool: PoolConfig = field(default_factory=PoolConfig)
    options: Mapping[str, Any] = field(default_factory=dict)
    kind: Optional["BackendKind"] = None

    def with_kind(self, kind: "BackendKind") -> ConnectionConfig:
        return replace(self, kind=kind)

    def dsn(self) -> str:
        """
        Return the connection URL.

        An explicit ``url`` always wins. Otherwise one is built from the
        discrete fields.
        """
        if self.url:
            return self.url
        if self.driver == "sqlite":
            return f"sqlite:///{self.database}"
        scheme = _SCHEMES.get(self.driver, self.driver)
        auth = ""
        if self.username:
            auth = quote(str(self.username), safe="")
            if self.password:
                auth += ":" + quote(str(self.password), safe="")
            auth += "@"
        port = f":{self.port}" if self.port else ""
        return f"{scheme}://{auth}{self.host}{port}/{self.database}"

    def masked_dsn(self) -> str:
        return mask_url(self.dsn())


class ConnectionRegistry:
    """
    Resolves logical connection names against the ``database`` settings.

    ``settings`` has the shape::

        {
            "default": "postgresql",
            "connections": {"postgresql": {"driver": "postgresql", ...}},
            "migrations": "migrations",
        }

    Resolution is pure: stored settings are never mutated.
    """

    def __init__(self, settings: Optional[Mapping[str, Any]] = None):
        settings = dict(settings or {})
        self._default = settings.get("default")
        self._connections: Dict[str, Dict[str, Any]] = {
            name: dict(entry or {}) for name, entry in (settings.get("connections") or {}).items()
        }
        self._migrations = settings.get("migrations") or "migrations"

    @classmethod
    def from_loader(cls, loader: "ConfigLoader", section: str = "database") -> ConnectionRegistry:
        return cls(loader.get(section, {}))

    @property
    def default_connection(self) -> Optional[str]:
        return self._default

    def names(self) -> list[str]:
        return list(self._connections)

    def __contains__(self, name: str) -> bool:
        return self.canonical_name(name) in self._connections

    def canonical_name(self, name: str) -> str:
        """Map the ``default`` alias onto the configured connection name."""
        if name == DEFAULT_CONNECTION:
            if not self._default:
                raise ConfigurationError("no default connection is configured")
            return self._default
        return name

    def resolve(self, name: str, runtime_config: Optional[Mapping[str, Any]] = None) -> ConnectionConfig:
        """
        Resolve ``name`` into a ConnectionConfig.

        For every recognized field the runtime value wins when it is not
        None. ``pool`` and ``options`` merge key by key.

        Raises:
            ConfigurationError: Unknown name, or a required field is empty
                and no URL was supplied.
        """
        canonical = self.canonical_name(name)
        stored = self._connections.get(canonical)
        if stored is None:
            raise ConfigurationError("connection is not configured", connection=canonical)

        runtime = dict(runtime_config or {})
        merged: Dict[str, Any] = {}
        for key in _SCALAR_FIELDS:
            value = runtime.get(key)
            merged[key] = value if value is not None else stored.get(key)

        pool = {**(stored.get("pool") or {}), **(runtime.get("pool") or {})}
        options = {**(stored.get("options") or {}), **(runtime.get("options") or {})}

        driver = merged["driver"]
        if not driver:
            raise ConfigurationError("missing 'driver'", connection=canonical)
        driver = str(driver).lower()

        url = merged["url"] or None
        if not url:
            required = ("database",) if driver == "sqlite" else _REQUIRED_FIELDS
            for key in required:
                if merged[key] is None or str(merged[key]) == "":
                    raise ConfigurationError(f"missing required field '{key}'", connection=canonical)

        port = merged["port"]
        if port not in (None, ""):
            try:
                port = int(port)
            except (TypeError, ValueError) as exc:
                raise ConfigurationError(f"invalid port {port!r}", connection=canonical) from exc
        else:
            port = None

        try:
            pool_config = PoolConfig.from_mapping(pool)
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"invalid pool settings: {exc}", connection=canonical) from exc

        config = ConnectionConfig(
            name=canonical,
            driver=driver,
            url=url,
            host=_as_str(merged["host"]),
            port=port,
            username=_as_str(merged["username"]),
            password=_as_str(merged["password"]),
            database=_as_str(merged["database"]),
            migrations_table=merged["migrations"] or self._migrations,
            pool=pool_config,
            options=options,
        )
        logger.debug(f"Resolved connection '{canonical}' -> {config.driver} ({config.masked_dsn()})")
        return config


def _as_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def mask_url(url: str) -> str:
    """Mask password in URL for logging."""
    if "@" in url:
        parts = url.rsplit("@", 1)
        pre = parts[0]
        scheme_end = pre.find("://") + 3
        if ":" in pre[scheme_end:]:
            scheme_user = pre.rsplit(":", 1)[0]
            return f"{scheme_user}:***@{parts[1]}"
    return url
