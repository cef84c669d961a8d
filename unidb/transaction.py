"""
Transaction wrapper - the query surface scoped to one backend transaction.

Usage::

    trx = await db.begin_transaction()
    await trx.build_table("orders").insert({"total": 10})
    await trx.commit()

    async with await db.begin_transaction() as trx:
        ...
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Optional

from .faults import Fault, QueryExecutionError, TransactionClosedError
from .surface import QuerySurface

if TYPE_CHECKING:
    from .drivers.base import Driver

logger = logging.getLogger("unidb.transaction")

__all__ = ["Transaction"]


class Transaction(QuerySurface):
    """
    Exposes the facade's read/write surface bound to ``scope``.

    ``scope`` is the backend transaction object: an ``AdapterTransaction``
    for relational drivers or a ``MongoSessionScope``. ``commit`` and
    ``rollback`` each end the transaction exactly once; afterwards every
    method raises ``TransactionClosedError``.
    """

    def __init__(self, driver: "Driver", scope: Any):
        self._driver = driver
        self._scope = scope
        self._state = "open"

    @property
    def closed(self) -> bool:
        return self._state != "open"

    @property
    def state(self) -> str:
        return self._state

    @property
    def driver(self) -> "Driver":
        return self._driver

    def _target(self, operation: str) -> "Driver":
        if self._state != "open":
            raise TransactionClosedError(operation, self._state)
        return self._driver

    async def _finish(self, operation: str, state: str) -> None:
        if self._state != "open":
            raise TransactionClosedError(operation, self._state)
        self._state = state
        try:
            await getattr(self._scope, operation)()
        except Fault:
            raise
        except Exception as exc:
            raise QueryExecutionError(operation, str(exc), table=self._driver.table_name) from exc
        logger.info(f"[{self._driver.connection_name}] transaction {state}")

    async def commit(self) -> None:
        await self._finish("commit", "committed")

    async def rollback(self) -> None:
        await self._finish("rollback", "rolled back")

    async def __aenter__(self) -> Transaction:
        return self

    async def __aexit__(self, exc_type: Optional[type], exc: Optional[BaseException], tb: Any) -> bool:
        if self.closed:
            return False
        if exc_type is None:
            await self.commit()
        else:
            await self.rollback()
        return False

    def __repr__(self) -> str:
        return f"<Transaction {self._driver.name} state={self._state}>"
