"""
Event Tests - query listeners registered through the facade.
"""

import asyncio
import logging

import pytest

from unidb import BackendKind


class TestQueryEvents:
    """Every statement or pipeline is announced before it runs."""

    @pytest.mark.asyncio
    async def test_read_emits_query(self, any_db):
        seen = []
        any_db.on("query", seen.append)
        await any_db.build_table("people").build_where("name", "Ada").find_many()

        assert len(seen) == 1
        event = seen[0]
        assert event["operation"] == "find_many"
        assert event["table"] == "people"
        assert event["connection"] == any_db.connection_name
        assert event["driver"] == any_db.driver.name
        if any_db.driver.kind is BackendKind.RELATIONAL:
            assert event["bindings"] == ["Ada"]
            assert event["sql"].startswith("SELECT")
        else:
            assert event["pipeline"] == [{"$match": {"name": "Ada"}}]

    @pytest.mark.asyncio
    async def test_coroutine_listener_is_awaited(self, any_db):
        seen = []

        async def record(event):
            await asyncio.sleep(0)
            seen.append(event["operation"])

        any_db.on("query", record)
        await any_db.build_table("people").insert({"name": "Ada"})
        assert seen and set(seen) == {"insert"}

    @pytest.mark.asyncio
    async def test_listeners_follow_clones_and_transactions(self, any_db):
        seen = []
        any_db.on("query", lambda event: seen.append(event["operation"]))

        await any_db.clone().build_table("people").count()
        trx = await any_db.begin_transaction()
        await trx.build_table("people").pluck("name")
        await trx.rollback()

        assert seen == ["count", "pluck"]

    @pytest.mark.asyncio
    async def test_other_connection_has_own_listeners(self, sql_db):
        seen = []
        sql_db.on("query", seen.append)
        other = sql_db.connection("sqlite")
        await other.build_table("people").count()
        assert seen == []

    @pytest.mark.asyncio
    async def test_unrelated_event_is_not_called(self, any_db):
        seen = []
        any_db.on("disconnect", seen.append)
        await any_db.build_table("people").count()
        assert seen == []

    @pytest.mark.asyncio
    async def test_failing_listener_is_logged(self, any_db, caplog):
        seen = []

        def explode(event):
            raise RuntimeError("listener down")

        any_db.on("query", explode).on("query", seen.append)
        with caplog.at_level(logging.ERROR, logger="unidb.drivers"):
            assert await any_db.build_table("people").count() == 0

        assert len(seen) == 1
        assert "explode" in caplog.text
        assert "listener down" in caplog.text

    def test_on_returns_surface(self, sql_db):
        assert sql_db.on("query", print) is sql_db
        assert sql_db.driver.on("query", print) is sql_db.driver

    def test_listener_must_be_callable(self, sql_db):
        with pytest.raises(TypeError):
            sql_db.on("query", "not a function")
