"""
Driver Factory - opens, caches and closes one client per logical connection.

The factory is the only owner of backend clients. Drivers borrow a
``DriverHandle`` from it; the handle map is guarded by one asyncio.Lock
so a concurrent ``close`` can never race a ``fabricate`` for the same
name.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Type

from ..connections import DEFAULT_CONNECTION, ConnectionConfig, ConnectionRegistry
from ..faults import (
    ConfigFault,
    ConnectionFailedError,
    DriverAlreadyExistsError,
    DriverFault,
    UnknownDriverError,
)
from .base import BackendKind, Driver
from .mongo import MongoDriver
from .sql import MySqlDriver, PostgresDriver, SqliteDriver

logger = logging.getLogger("unidb.drivers.factory")

__all__ = ["DriverFactory", "DriverHandle", "BUILTIN_DRIVERS"]

BUILTIN_DRIVERS: Dict[str, Type[Driver]] = {
    "sqlite": SqliteDriver,
    "postgres": PostgresDriver,
    "postgresql": PostgresDriver,
    "mysql": MySqlDriver,
    "mongo": MongoDriver,
    "mongodb": MongoDriver,
}


@dataclass
class DriverHandle:
    """An open client for one logical connection."""

    name: str
    driver: str
    kind: BackendKind
    config: ConnectionConfig
    client: Any
    opened_at: float = field(default_factory=time.monotonic)
    closed: bool = False


class DriverFactory:
    """
    Registry of driver classes plus the cache of open handles.

    Usage::

        factory = DriverFactory(ConnectionRegistry(settings))
        handle = await factory.fabricate("default")
        ...
        await factory.close_all()
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        drivers: Optional[Mapping[str, Type[Driver]]] = None,
    ):
        self._registry = registry
        self._drivers: Dict[str, Type[Driver]] = dict(BUILTIN_DRIVERS)
        for name, driver_cls in (drivers or {}).items():
            self.register_driver(name, driver_cls)
        self._handles: Dict[str, DriverHandle] = {}
        self._lock = asyncio.Lock()

    @property
    def registry(self) -> ConnectionRegistry:
        return self._registry

    # ── Driver registration ──────────────────────────────────────────

    def register_driver(self, name: str, driver_cls: Type[Driver]) -> None:
        key = name.lower()
        if key in self._drivers:
            raise DriverAlreadyExistsError(key)
        self._drivers[key] = driver_cls
        logger.debug(f"Registered driver '{key}' -> {driver_cls.__name__}")

    def available_drivers(self) -> List[str]:
        return sorted(self._drivers)

    def driver_class(self, name: str, connection: Optional[str] = None) -> Type[Driver]:
        try:
            return self._drivers[name.lower()]
        except KeyError:
            raise UnknownDriverError(name, connection=connection) from None

    def create_driver(
        self,
        connection: str = DEFAULT_CONNECTION,
        runtime_config: Optional[Mapping[str, Any]] = None,
    ) -> Driver:
        """
        Build an unconnected driver for ``connection``.

        The driver class is chosen once here, from the resolved config.
        """
        config = self._registry.resolve(connection, runtime_config)
        driver_cls = self.driver_class(config.driver, connection=config.name)
        handle = self._handles.get(config.name)
        if handle is not None and handle.closed:
            handle = None
        return driver_cls(self, connection, runtime_config, handle=handle)

    # ── Handles ──────────────────────────────────────────────────────

    def handle(self, name: str = DEFAULT_CONNECTION) -> Optional[DriverHandle]:
        """Return the cached handle for ``name`` without opening one."""
        return self._handles.get(self._registry.canonical_name(name))

    async def fabricate(
        self,
        name: str = DEFAULT_CONNECTION,
        runtime_config: Optional[Mapping[str, Any]] = None,
        force: bool = False,
    ) -> DriverHandle:
        """
        Return the open handle for ``name``, opening it if needed.

        ``"default"`` and the configured default name share one cache
        slot. With ``force`` the cached handle is closed and replaced.
        """
        canonical = self._registry.canonical_name(name)
        async with self._lock:
            current = self._handles.get(canonical)
            if current is not None and not current.closed and not force:
                return current

            config = self._registry.resolve(canonical, runtime_config)
            driver_cls = self.driver_class(config.driver, connection=canonical)
            config = config.with_kind(driver_cls.kind)

            if current is not None and not current.closed:
                await self._close_handle(current)

            client = await self._open(driver_cls, config)
            handle = DriverHandle(
                name=canonical,
                driver=config.driver,
                kind=driver_cls.kind,
                config=config,
                client=client,
            )
            self._handles[canonical] = handle
            return handle

    async def _open(self, driver_cls: Type[Driver], config: ConnectionConfig) -> Any:
        """Open a client, retrying transient failures."""
        retries = max(1, int(config.options.get("connect_retries", 3)))
        delay = float(config.options.get("connect_retry_delay", 0.5))

        last_exc: Optional[Exception] = None
        for attempt in range(1, retries + 1):
            try:
                client = await driver_cls.open_client(config)
                logger.info(f"Connection '{config.name}' opened ({config.driver}), attempt {attempt}")
                return client
            except (ConfigFault, DriverFault, ImportError):
                raise
            except Exception as exc:
                last_exc = exc
                if attempt < retries:
                    logger.warning(
                        f"Connection attempt {attempt} for '{config.name}' failed: {exc}, "
                        f"retrying in {delay}s..."
                    )
                    await asyncio.sleep(delay)

        raise ConnectionFailedError(
            url=config.masked_dsn(),
            reason=f"Failed after {retries} attempts: {last_exc}",
        ) from last_exc

    async def _close_handle(self, handle: DriverHandle) -> None:
        handle.closed = True
        driver_cls = self.driver_class(handle.driver, connection=handle.name)
        await driver_cls.close_client(handle.client)
        logger.info(f"Connection '{handle.name}' closed")

    async def close(self, name: str = DEFAULT_CONNECTION) -> None:
        canonical = self._registry.canonical_name(name)
        async with self._lock:
            handle = self._handles.pop(canonical, None)
            if handle is not None and not handle.closed:
                await self._close_handle(handle)

    async def close_all(self) -> None:
        """
        Close every open handle.

        A failing close does not stop the others; the first failure is
        raised once all handles have been tried.
        """
        async with self._lock:
            handles = list(self._handles.values())
            self._handles.clear()
            first_error: Optional[Exception] = None
            for handle in handles:
                if handle.closed:
                    continue
                try:
                    await self._close_handle(handle)
                except Exception as exc:
                    logger.error(f"Failed to close connection '{handle.name}': {exc}")
                    if first_error is None:
                        first_error = exc
            if first_error is not None:
                raise first_error

    # ── Lifecycle hooks ──────────────────────────────────────────────

    async def on_startup(self, names: Optional[List[str]] = None) -> None:
        """Open ``names`` (default: the default connection) eagerly."""
        for name in names or [DEFAULT_CONNECTION]:
            await self.fabricate(name)

    async def on_shutdown(self) -> None:
        await self.close_all()

    def __repr__(self) -> str:
        return f"<DriverFactory drivers={len(self._drivers)} open={len(self._handles)}>"
