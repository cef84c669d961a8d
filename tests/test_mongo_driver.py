"""
Mongo Driver Tests - pipeline translation and execution against the
in-memory fake client.
"""

import pytest
from bson import ObjectId

from unidb.drivers.mongo import MongoDriver, like_to_regex
from unidb.faults import InvalidJoinError, OperationNotSupportedError, QueryExecutionError, TableNotSetError

from .conftest import PEOPLE


@pytest.fixture
def driver():
    """An unconnected driver; builder calls need no client."""
    return MongoDriver().build_table("people")


@pytest.fixture
async def people(mongo_db):
    await mongo_db.build_table("people").insert(PEOPLE)
    return mongo_db


class TestTranslation:
    """Builder calls -> filter + pipeline."""

    def test_where_updates_both_accumulators(self, driver):
        driver.build_where("city", "London").build_where({"age": 36})
        assert driver.filter == {"city": "London", "age": 36}
        assert driver.pipeline == [{"$match": {"city": "London"}}, {"$match": {"age": 36}}]

    def test_same_field_twice_is_anded(self, driver):
        driver.build_where("age", 1).build_where("age", 2)
        assert driver.filter == {"age": 1, "$and": [{"age": 2}]}

    def test_operator_docs_merge(self, driver):
        driver.build_where_not_null("age").build_where_in("age", [1, 2])
        assert driver.filter == {"age": {"$ne": None, "$in": [1, 2]}}

    def test_or_where_collapses_trailing_matches(self, driver):
        driver.build_where("city", "London").build_where("age", 36).build_or_where("name", "Linus")
        assert driver.pipeline == [
            {"$match": {"$or": [{"city": "London", "age": 36}, {"name": "Linus"}]}}
        ]
        assert driver.filter == {"$or": [{"city": "London", "age": 36}, {"name": "Linus"}]}

    def test_or_where_spans_every_predicate(self, driver):
        driver.build_where("a", 1).build_limit(5).build_where("b", 2).build_or_where("c", 3)
        assert driver.pipeline == [
            {"$match": {"$or": [{"a": 1, "b": 2}, {"c": 3}]}},
            {"$limit": 5},
        ]
        assert driver.filter == {"$or": [{"a": 1, "b": 2}, {"c": 3}]}

    def test_or_where_after_sort(self, driver):
        driver.build_where("city", "London").build_order_by("name").build_or_where("name", "Linus")
        assert driver.pipeline == [
            {"$match": {"$or": [{"city": "London"}, {"name": "Linus"}]}},
            {"$sort": {"name": 1}},
        ]
        assert driver.filter == {"$or": [{"city": "London"}, {"name": "Linus"}]}

    def test_or_where_leaves_join_filter(self, driver):
        driver.build_join("posts", "_id", "author_id").build_where("a", 1).build_or_where("b", 2)
        assert driver.pipeline[1:] == [
            {"$match": {"posts": {"$ne": []}}},
            {"$match": {"$or": [{"a": 1}, {"b": 2}]}},
        ]

    def test_where_after_or_where_is_anded(self, driver):
        driver.build_where("a", 1).build_or_where("b", 2).build_where("c", 3)
        assert driver.pipeline == [
            {"$match": {"$or": [{"a": 1}, {"b": 2}]}},
            {"$match": {"c": 3}},
        ]
        assert driver.filter == {"$or": [{"a": 1}, {"b": 2}], "c": 3}

    def test_or_where_without_predicates(self, driver):
        driver.build_order_by("name").build_or_where("name", "Ada")
        assert driver.pipeline == [{"$sort": {"name": 1}}, {"$match": {"name": "Ada"}}]
        assert driver.filter == {"name": "Ada"}

    def test_clone_keeps_or_where_bookkeeping(self, driver):
        driver.build_where("a", 1)
        other = driver.clone()
        other.build_or_where("b", 2)
        assert driver.pipeline == [{"$match": {"a": 1}}]
        assert other.pipeline == [{"$match": {"$or": [{"a": 1}, {"b": 2}]}}]

    def test_where_not(self, driver):
        driver.build_where_not("city", "Paris").build_where_not({"age": 3, "name": "X"})
        assert driver.pipeline == [
            {"$match": {"city": {"$ne": "Paris"}}},
            {"$match": {"$nor": [{"age": 3, "name": "X"}]}},
        ]

    def test_like_regex(self):
        assert like_to_regex("a%b_c.") == r"^a.*b.c\.$"

    def test_ilike_options(self, driver):
        driver.build_where_ilike("name", "ad%")
        assert driver.pipeline == [{"$match": {"name": {"$regex": "^ad.*$", "$options": "i"}}}]

    def test_exists_and_between(self, driver):
        driver.build_where_exists("email").build_where_not_exists("phone")
        driver.build_where_between("age", (1, 9)).build_where_not_between("score", (0, 5))
        assert driver.pipeline == [
            {"$match": {"email": {"$exists": True}}},
            {"$match": {"phone": {"$exists": False}}},
            {"$match": {"age": {"$gte": 1, "$lte": 9}}},
            {"$match": {"score": {"$not": {"$gte": 0, "$lte": 5}}}},
        ]

    def test_object_id_coercion(self, driver):
        oid = ObjectId()
        driver.build_where("_id", str(oid)).build_where_in("_id", [str(oid), "not-an-id"])
        driver.build_where("owner", str(oid))
        assert driver.pipeline[0] == {"$match": {"_id": oid}}
        assert driver.pipeline[1] == {"$match": {"_id": {"$in": [oid, "not-an-id"]}}}
        # Only the identity field is coerced
        assert driver.pipeline[2] == {"$match": {"owner": str(oid)}}

    def test_join(self, driver):
        driver.build_join("posts", "people._id", "=", "posts.author_id", "left")
        assert driver.pipeline == [{
            "$lookup": {"from": "posts", "localField": "_id", "foreignField": "author_id", "as": "posts"}
        }]

    def test_inner_join_drops_unmatched(self, driver):
        driver.build_join("posts", "_id", "author_id")
        assert driver.pipeline[-1] == {"$match": {"posts": {"$ne": []}}}

    def test_join_to_unrelated_table(self, driver):
        with pytest.raises(InvalidJoinError):
            driver.build_join("posts", "people._id", "=", "comments.post_id")

    def test_join_operator(self, driver):
        with pytest.raises(OperationNotSupportedError):
            driver.build_join("posts", "_id", ">", "author_id")

    def test_group_and_distinct(self, driver):
        driver.build_group_by("city")
        assert driver.pipeline == [
            {"$group": {"_id": {"city": "$city"}}},
            {"$replaceRoot": {"newRoot": "$_id"}},
        ]
        other = MongoDriver().build_table("t").build_distinct()
        assert other.pipeline[0] == {"$group": {"_id": "$$ROOT"}}

    def test_sort_merges_consecutive_calls(self, driver):
        driver.build_order_by("age", "desc").build_order_by("name").build_skip(2).build_order_by("x")
        assert driver.pipeline == [
            {"$sort": {"age": -1, "name": 1}},
            {"$skip": 2},
            {"$sort": {"x": 1}},
        ]

    def test_select_and_having(self, driver):
        driver.build_select("name", "age").build_having("age", ">=", 30)
        assert driver.pipeline == [
            {"$project": {"name": 1, "age": 1}},
            {"$match": {"age": {"$gte": 30}}},
        ]

    @pytest.mark.parametrize("method", ["build_where_raw", "build_join_raw", "build_group_by_raw", "build_order_by_raw"])
    def test_raw_builders_unsupported(self, driver, method):
        with pytest.raises(OperationNotSupportedError):
            getattr(driver, method)("anything")

    def test_clone_copies_state(self, driver):
        driver.build_where("a", 1)
        other = driver.clone()
        other.build_where("b", 2)
        assert driver.filter == {"a": 1}
        assert other.filter == {"a": 1, "b": 2}


class TestExecution:
    """Terminal operations on the fake client."""

    @pytest.mark.asyncio
    async def test_insert_returns_string_ids(self, mongo_db):
        ids = await mongo_db.build_table("people").insert([{"name": "X"}, {"name": "Y"}])
        assert len(ids) == 2
        assert all(isinstance(i, str) and ObjectId.is_valid(i) for i in ids)
        row = await mongo_db.build_table("people").build_where("_id", ids[1]).find()
        assert row["name"] == "Y"

    @pytest.mark.asyncio
    async def test_insert_and_get_keeps_order(self, mongo_db):
        rows = await mongo_db.build_table("people").insert_and_get([{"name": "B"}, {"name": "A"}])
        assert [r["name"] for r in rows] == ["B", "A"]

    @pytest.mark.asyncio
    async def test_reads_drain_state(self, people):
        """A second read without predicates sees every document."""
        assert len(await people.build_table("people").build_where("city", "New York").find_many()) == 2
        assert len(await people.build_table("people").find_many()) == 4
        assert people.driver.pipeline == []
        assert people.driver.filter == {}

    @pytest.mark.asyncio
    async def test_find_appends_limit(self, people, fake_mongo):
        await people.build_table("people").build_where("city", "London").find()
        client = fake_mongo.instances[-1]
        assert client.pipelines[-1] == [{"$match": {"city": "London"}}, {"$limit": 1}]

    @pytest.mark.asyncio
    async def test_call_order_is_pipeline_order(self, people):
        """Filters added after a limit apply to the limited page."""
        before = await people.build_table("people").build_where("city", "New York").build_order_by("name").build_limit(1).pluck("name")
        after = await people.build_table("people").build_order_by("name").build_limit(1).build_where("city", "New York").pluck("name")
        assert before == ["Barbara"]
        assert after == []

    @pytest.mark.asyncio
    async def test_like_executes(self, people):
        names = await people.build_table("people").build_where_like("name", "%a").build_order_by("name").pluck("name")
        assert names == ["Ada", "Barbara"]

    @pytest.mark.asyncio
    async def test_update(self, people):
        ids = await people.build_table("people").build_where("city", "New York").update("city", "Boston")
        assert len(ids) == 2
        assert await people.build_table("people").build_where("city", "Boston").count() == 2
        assert await people.build_table("people").build_where("city", "Atlantis").update({"age": 1}) == []

    @pytest.mark.asyncio
    async def test_update_and_get(self, people):
        rows = await people.build_table("people").build_where("name", "Ada").update_and_get({"age": 37})
        assert [(r["name"], r["age"]) for r in rows] == [("Ada", 37)]

    @pytest.mark.asyncio
    async def test_delete_and_increment(self, people):
        assert await people.build_table("people").build_where("name", "Ada").increment("age", 4) == 1
        assert await people.build_table("people").build_where("name", "Ada").pluck("age") == [40]
        assert await people.build_table("people").build_where("age", 45).delete() == 2
        assert await people.build_table("people").build_where("age", 45).delete() == 0
        assert await people.build_table("people").count() == 2

    @pytest.mark.asyncio
    async def test_aggregates(self, people):
        table = people.build_table("people")
        assert await table.count() == 4
        assert await table.min("age") == 28
        assert await table.max("age") == 45
        assert await table.sum("age") == 154
        assert await table.avg("age") == 38.5
        assert await table.sum_distinct("age") == 109
        assert await table.avg_distinct("age") == pytest.approx(109 / 3)
        assert await table.count_distinct("city") == 3
        assert await table.build_where("city", "New York").avg("age") == 45

    @pytest.mark.asyncio
    async def test_aggregate_pipeline_shape(self, people, fake_mongo):
        await people.build_table("people").build_where("city", "London").count_distinct("name")
        assert fake_mongo.instances[-1].pipelines[-1] == [
            {"$match": {"city": "London"}},
            {"$match": {"name": {"$ne": None}}},
            {"$group": {"_id": None, "aggregate": {"$addToSet": "$name"}}},
            {"$project": {"_id": 0, "aggregate": {"$size": "$aggregate"}}},
        ]

    @pytest.mark.asyncio
    async def test_aggregate_keeps_join_stages(self, people, fake_mongo):
        await (
            people.build_table("people")
            .build_join("posts", "_id", "author_id")
            .build_where("city", "London")
            .build_order_by("name")
            .build_limit(1)
            .count()
        )
        assert fake_mongo.instances[-1].pipelines[-1] == [
            {"$lookup": {"from": "posts", "localField": "_id", "foreignField": "author_id", "as": "posts"}},
            {"$match": {"posts": {"$ne": []}}},
            {"$match": {"city": "London"}},
            {"$group": {"_id": None, "aggregate": {"$sum": 1}}},
        ]

    @pytest.mark.asyncio
    async def test_paginate_joined_query(self, people):
        ada = await people.build_table("people").build_where("name", "Ada").find()
        await people.build_table("posts").insert([{"author_id": ada["_id"], "n": n} for n in range(3)])

        page = await people.build_table("people").build_join("posts", "_id", "author_id").paginate(0, 10)
        assert [row["name"] for row in page.data] == ["Ada"]
        assert page.meta.total_items == 1

    @pytest.mark.asyncio
    async def test_empty_aggregates(self, mongo_db):
        assert await mongo_db.build_table("people").count() == 0
        assert await mongo_db.build_table("people").sum("age") is None

    @pytest.mark.asyncio
    async def test_group_by(self, people):
        rows = await people.build_table("people").build_group_by("city").build_order_by("city").find_many()
        assert rows == [{"city": "Helsinki"}, {"city": "London"}, {"city": "New York"}]

    @pytest.mark.asyncio
    async def test_join_nests_children(self, people):
        ada = await people.build_table("people").build_where("name", "Ada").find()
        await people.build_table("posts").insert([
            {"author_id": ada["_id"], "title": "Notes"},
            {"author_id": ada["_id"], "title": "Engines"},
        ])
        rows = await people.build_table("people").build_join("posts", "_id", "=", "author_id").find_many()
        assert len(rows) == 1
        assert sorted(p["title"] for p in rows[0]["posts"]) == ["Engines", "Notes"]

    @pytest.mark.asyncio
    async def test_paginate(self, people):
        page = await people.build_table("people").build_order_by("name").paginate(page=1, limit=3)
        assert [r["name"] for r in page.data] == ["Linus"]
        assert page.meta.total_items == 4
        assert page.meta.total_pages == 2

    @pytest.mark.asyncio
    async def test_raw_command(self, people):
        result = await people.raw('{"find": ??, "filter": {"age": {"$gt": ?}}}', ["people", 40])
        assert result["command"] == "find"
        assert sorted(r["name"] for r in result["rows"]) == ["Barbara", "Grace"]
        count = await people.raw('{"count": "people"}')
        assert count["rows"] == [{"n": 4, "ok": 1.0}]

    @pytest.mark.asyncio
    async def test_column_info(self, people):
        info = await people.build_table("people").column_info()
        assert info["_id"]["primary_key"] is True
        assert info["age"]["type"] == "int"

    @pytest.mark.asyncio
    async def test_table_not_set(self, factory):
        from unidb import Database

        with pytest.raises(TableNotSetError):
            await Database(factory, "mongodb").find_many()

    @pytest.mark.asyncio
    async def test_backend_error_is_wrapped(self, people):
        with pytest.raises(QueryExecutionError) as info:
            await people.raw('{"explode": 1}')
        assert info.value.operation == "raw"


class TestDDL:
    """Collections and databases."""

    @pytest.mark.asyncio
    async def test_unique_index(self, mongo_db):
        def products(table):
            table.increments("id")
            table.string("sku").unique()

        await mongo_db.create_table("products", products)
        await mongo_db.build_table("products").insert({"sku": "A-1"})
        with pytest.raises(QueryExecutionError):
            await mongo_db.build_table("products").insert({"sku": "A-1"})

    @pytest.mark.asyncio
    async def test_truncate_and_drop(self, people, fake_mongo):
        await people.truncate("people")
        assert await people.build_table("people").count() == 0
        await people.drop_table("people")
        database = fake_mongo.instances[-1]["unidb_test"]
        assert "people" not in database.collections

    @pytest.mark.asyncio
    async def test_databases(self, mongo_db, fake_mongo):
        await mongo_db.create_database("anything")
        await mongo_db.drop_database("unidb_test")
        assert "unidb_test" not in fake_mongo.instances[-1].databases


class TestTransactions:
    """Session-scoped transactions."""

    @pytest.mark.asyncio
    async def test_session_policy_and_scope(self, mongo_db, fake_mongo):
        trx = await mongo_db.begin_transaction()
        await trx.build_table("people").insert({"name": "T"})
        await trx.commit()

        client = fake_mongo.instances[-1]
        session = client.sessions[-1]
        assert session.read_concern.level == "snapshot"
        assert session.write_concern.document == {"w": "majority"}
        assert session.ended
        assert ("insert_many", session) in client.calls
