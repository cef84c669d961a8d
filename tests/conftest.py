"""
Shared test fixtures for the unidb test suite.

The relational path runs against in-memory aiosqlite. The document path
runs against ``FakeMongoClient`` swapped into ``MongoDriver.client_class``.
"""

import pytest

from unidb import ConnectionRegistry, Database, DriverFactory, MongoDriver

from .fake_mongo import FakeMongoClient


# ============================================================================
# Settings
# ============================================================================


def make_settings(**extra_connections) -> dict:
    """A ``database`` config section with sqlite + mongodb connections."""
    connections = {
        "sqlite": {"driver": "sqlite", "database": ":memory:"},
        "mongodb": {
            "driver": "mongodb",
            "url": "mongodb://localhost:27017/unidb_test",
            "options": {"connect_retries": 1},
        },
    }
    connections.update(extra_connections)
    return {"default": "sqlite", "connections": connections, "migrations": "migrations"}


def people_table(table) -> None:
    table.increments("id")
    table.string("name").nullable()
    table.integer("age").nullable()
    table.string("city").nullable()


PEOPLE = [
    {"name": "Ada", "age": 36, "city": "London"},
    {"name": "Grace", "age": 45, "city": "New York"},
    {"name": "Linus", "age": 28, "city": "Helsinki"},
    {"name": "Barbara", "age": 45, "city": "New York"},
]


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def fake_mongo(monkeypatch):
    """Route every MongoDriver client through FakeMongoClient."""
    FakeMongoClient.instances.clear()
    monkeypatch.setattr(MongoDriver, "client_class", FakeMongoClient)
    yield FakeMongoClient
    FakeMongoClient.instances.clear()


@pytest.fixture
def registry():
    return ConnectionRegistry(make_settings())


@pytest.fixture
async def factory(registry, fake_mongo):
    factory = DriverFactory(registry)
    yield factory
    await factory.close_all()


@pytest.fixture
async def sql_db(factory):
    db = Database(factory, "sqlite")
    await db.create_table("people", people_table)
    return db


@pytest.fixture
async def mongo_db(factory):
    db = Database(factory, "mongodb")
    await db.create_table("people", people_table)
    return db


@pytest.fixture(params=["sqlite", "mongodb"])
async def any_db(request, factory):
    """The same facade surface on each backend family."""
    db = Database(factory, request.param)
    await db.create_table("people", people_table)
    return db
