"""
Database facade - one query surface over every registered backend.

Usage::

    registry = ConnectionRegistry.from_loader(ConfigLoader.load(paths=["config.yaml"]))
    factory = DriverFactory(registry)
    db = Database(factory)

    users = await db.build_table("users").build_where("active", True).find_many()
    report = db.connection("analytics")
    total = await report.build_table("events").count()
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Mapping, Optional, Type

from .connections import DEFAULT_CONNECTION
from .drivers.base import Driver
from .drivers.factory import DriverFactory
from .surface import QuerySurface
from .transaction import Transaction

logger = logging.getLogger("unidb.database")

__all__ = ["Database"]


class Database(QuerySurface):
    """
    Facade over one driver.

    The backend variant is chosen once, when the connection is resolved.
    Builder methods return the facade; terminal methods return the
    driver's results unchanged.
    """

    def __init__(
        self,
        factory: DriverFactory,
        connection: str = DEFAULT_CONNECTION,
        runtime_config: Optional[Mapping[str, Any]] = None,
        *,
        driver: Optional[Driver] = None,
    ):
        self._factory = factory
        self._connection = connection
        self._runtime_config = dict(runtime_config or {})
        self._driver = driver or factory.create_driver(connection, self._runtime_config)

    @classmethod
    def build(cls, factory: DriverFactory, name: str, driver_cls: Type[Driver]) -> None:
        """Register a custom driver class under ``name``."""
        factory.register_driver(name, driver_cls)

    @property
    def driver(self) -> Driver:
        return self._driver

    @property
    def connection_name(self) -> str:
        return self._connection

    @property
    def factory(self) -> DriverFactory:
        return self._factory

    def _target(self, operation: str) -> Driver:
        return self._driver

    # ── Connection management ────────────────────────────────────────

    async def connect(self, force: bool = False) -> Database:
        await self._driver.connect(force=force)
        return self

    async def close(self) -> None:
        await self._driver.close()

    def connection(self, name: str, runtime_config: Optional[Mapping[str, Any]] = None) -> Database:
        """A new facade on another logical connection."""
        return type(self)(self._factory, name, runtime_config)

    def clone(self) -> Database:
        """A new facade over the same client with a copy of the query state."""
        return type(self)(
            self._factory,
            self._connection,
            self._runtime_config,
            driver=self._driver.clone(),
        )

    # ── Transactions ─────────────────────────────────────────────────

    async def begin_transaction(self) -> Transaction:
        return await self._driver.begin_transaction()

    async def transaction(self, callback: Callable[[Transaction], Awaitable[Any]]) -> Any:
        return await self._driver.transaction(callback)

    def __repr__(self) -> str:
        return f"<Database connection={self._connection!r} driver={self._driver.name}>"
