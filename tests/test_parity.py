"""
Parity Tests - the same facade calls give the same answers on the
relational and document backends.
"""

import pytest

from unidb import BackendKind, one_to_many

from .conftest import PEOPLE


@pytest.fixture
async def people(any_db):
    await any_db.build_table("people").insert(PEOPLE)
    return any_db


async def names(db, build) -> list:
    return await build(db.build_table("people")).build_order_by("name").pluck("name")


class TestPredicates:
    """Filters translate to the same result sets."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "build, expected",
        [
            (lambda q: q.build_where("city", "New York"), ["Barbara", "Grace"]),
            (lambda q: q.build_where({"city": "New York", "age": 45}), ["Barbara", "Grace"]),
            (lambda q: q.build_where_not("city", "New York"), ["Ada", "Linus"]),
            (lambda q: q.build_where_in("age", [28, 36]), ["Ada", "Linus"]),
            (lambda q: q.build_where_not_in("age", [28, 36]), ["Barbara", "Grace"]),
            (lambda q: q.build_where_like("name", "%a"), ["Ada", "Barbara"]),
            (lambda q: q.build_where_between("age", (30, 40)), ["Ada"]),
            (lambda q: q.build_where_not_between("age", (30, 40)), ["Barbara", "Grace", "Linus"]),
            (lambda q: q.build_where("city", "London").build_or_where("name", "Linus"), ["Ada", "Linus"]),
            (
                lambda q: q.build_where("city", "London").build_order_by("name").build_or_where("name", "Linus"),
                ["Ada", "Linus"],
            ),
            (
                lambda q: q.build_where("age", 45).build_where("name", "Grace").build_limit(3).build_or_where("age", 28),
                ["Grace", "Linus"],
            ),
        ],
    )
    async def test_filters(self, people, build, expected):
        assert await names(people, build) == expected

    @pytest.mark.asyncio
    async def test_null_checks(self, people):
        await people.build_table("people").insert({"name": "Nobody"})
        assert await names(people, lambda q: q.build_where_null("age")) == ["Nobody"]
        assert len(await names(people, lambda q: q.build_where_not_null("age"))) == 4

    @pytest.mark.asyncio
    async def test_predicates_drain_after_read(self, people):
        assert len(await people.build_table("people").build_where("age", 45).find_many()) == 2
        assert len(await people.build_table("people").find_many()) == 4

    @pytest.mark.asyncio
    async def test_ordering(self, people):
        ordered = await (
            people.build_table("people")
            .build_order_by("age", "desc")
            .build_order_by("name")
            .pluck("name")
        )
        assert ordered == ["Barbara", "Grace", "Ada", "Linus"]

    @pytest.mark.asyncio
    async def test_find_missing(self, people):
        assert await people.build_table("people").build_where("name", "Nobody").find() is None


class TestWrites:
    """Write results agree across backends."""

    @pytest.mark.asyncio
    async def test_insert_keeps_input_order(self, any_db):
        rows = await any_db.build_table("people").insert_and_get([{"name": "Z"}, {"name": "M"}, {"name": "A"}])
        assert [r["name"] for r in rows] == ["Z", "M", "A"]

    @pytest.mark.asyncio
    async def test_update_returns_affected_keys(self, people):
        keys = await people.build_table("people").build_where("city", "New York").update({"city": "Boston"})
        assert len(keys) == 2
        assert all(isinstance(k, str) for k in keys)
        assert await names(people, lambda q: q.build_where("city", "Boston")) == ["Barbara", "Grace"]

    @pytest.mark.asyncio
    async def test_or_where_writes_match_reads(self, people):
        keys = await (
            people.build_table("people")
            .build_where("city", "London")
            .build_order_by("name")
            .build_or_where("name", "Linus")
            .update("age", 1)
        )
        assert len(keys) == 2
        assert await names(people, lambda q: q.build_where("age", 1)) == ["Ada", "Linus"]

        deleted = await (
            people.build_table("people")
            .build_where("city", "New York")
            .build_limit(10)
            .build_or_where("age", 1)
            .delete()
        )
        assert deleted == 4
        assert await people.build_table("people").count() == 0

    @pytest.mark.asyncio
    async def test_update_and_get(self, people):
        rows = await people.build_table("people").build_where("name", "Linus").update_and_get("age", 29)
        assert [(r["name"], r["age"]) for r in rows] == [("Linus", 29)]

    @pytest.mark.asyncio
    async def test_increment_and_decrement(self, people):
        assert await people.build_table("people").build_where("city", "New York").increment("age") == 2
        assert await people.build_table("people").build_where("name", "Ada").decrement("age", 6) == 1
        ages = await people.build_table("people").build_order_by("name").pluck("age")
        assert ages == [30, 46, 46, 28]

    @pytest.mark.asyncio
    async def test_delete_count(self, people):
        assert await people.build_table("people").build_where("age", 45).delete() == 2
        assert await people.build_table("people").count() == 2

    @pytest.mark.asyncio
    async def test_truncate(self, people):
        await people.truncate("people")
        assert await people.build_table("people").count() == 0


class TestAggregates:
    """Aggregate semantics: nulls skipped, empty sets give None."""

    @pytest.mark.asyncio
    async def test_count_semantics(self, any_db):
        await any_db.build_table("people").insert([{"name": "A"}, {"name": "B"}, {"name": None}])
        table = any_db.build_table("people")
        assert await table.count() == 3
        assert await table.count("name") == 2
        assert await table.count_distinct("name") == 2

    @pytest.mark.asyncio
    async def test_numeric_aggregates(self, people):
        table = people.build_table("people")
        assert await table.min("age") == 28
        assert await table.max("age") == 45
        assert await table.sum("age") == 154
        assert await table.avg("age") == pytest.approx(38.5)
        assert await table.sum_distinct("age") == 109
        assert await table.count_distinct("city") == 3

    @pytest.mark.asyncio
    async def test_aggregates_respect_filters(self, people):
        assert await people.build_table("people").build_where("city", "New York").sum("age") == 90
        assert await people.build_table("people").build_where("city", "Nowhere").max("age") is None
        assert await people.build_table("people").build_where("city", "Nowhere").count() == 0


class TestPagination:
    """Page boundaries and envelope metadata."""

    @pytest.mark.asyncio
    async def test_boundary(self, any_db):
        await any_db.build_table("people").insert([{"name": f"P{i}", "age": i} for i in range(5)])

        first = await any_db.build_table("people").build_order_by("age").paginate(0, 3)
        last = await any_db.build_table("people").build_order_by("age").paginate(1, 3)

        assert [r["name"] for r in first.data] == ["P0", "P1", "P2"]
        assert [r["name"] for r in last.data] == ["P3", "P4"]
        assert first.meta.total_items == last.meta.total_items == 5
        assert first.meta.total_pages == 2
        assert first.links.previous is None and first.links.next is not None
        assert last.links.next is None and last.links.previous is not None

    @pytest.mark.asyncio
    async def test_paginate_counts_filtered_rows(self, people):
        page = await people.build_table("people").build_where("age", 45).paginate(0, 1)
        assert page.meta.total_items == 2
        assert page.meta.item_count == 1

    @pytest.mark.asyncio
    async def test_for_page(self, people):
        rows = await people.build_table("people").build_order_by("name").for_page(1, 2)
        assert [r["name"] for r in rows] == ["Grace", "Linus"]


class TestJoins:
    """Parent -> children nesting from each backend."""

    @pytest.mark.asyncio
    async def test_three_parents_two_children(self, any_db):
        await any_db.create_table("posts", lambda t: (t.increments("id"), t.integer("person_id"), t.string("title")))
        parents = await any_db.build_table("people").insert_and_get(
            [{"name": "Ada"}, {"name": "Grace"}, {"name": "Linus"}]
        )
        pk = any_db.driver.primary_key
        await any_db.build_table("posts").insert([
            {"person_id": parent[pk], "title": f"{parent['name']}-{n}"}
            for parent in parents
            for n in (1, 2)
        ])

        if any_db.driver.kind is BackendKind.RELATIONAL:
            rows = await (
                any_db.build_table("people")
                .build_select("people.id", "people.name", "posts.title as posts__title")
                .build_join("posts", "people.id", "=", "posts.person_id")
                .build_order_by("people.name")
                .find_many()
            )
            assert len(rows) == 6
            nested = one_to_many(rows, "posts")
        else:
            nested = await (
                any_db.build_table("people")
                .build_join("posts", "_id", "=", "posts.person_id")
                .build_order_by("name")
                .find_many()
            )

        assert [p["name"] for p in nested] == ["Ada", "Grace", "Linus"]
        for parent in nested:
            titles = sorted(child["title"] for child in parent["posts"])
            assert titles == [f"{parent['name']}-1", f"{parent['name']}-2"]

    @pytest.mark.asyncio
    async def test_paginate_counts_joined_rows(self, any_db):
        await any_db.create_table("posts", lambda t: (t.increments("id"), t.integer("person_id"), t.string("title")))
        parents = await any_db.build_table("people").insert_and_get(
            [{"name": "Ada"}, {"name": "Grace"}, {"name": "Linus"}]
        )
        pk = any_db.driver.primary_key
        await any_db.build_table("posts").insert({"person_id": parents[0][pk], "title": "Notes"})

        if any_db.driver.kind is BackendKind.RELATIONAL:
            query = any_db.build_table("people").build_join("posts", "people.id", "=", "posts.person_id")
        else:
            query = any_db.build_table("people").build_join("posts", "_id", "=", "posts.person_id")
        page = await query.paginate(0, 10)

        assert page.meta.item_count == 1
        assert page.meta.total_items == 1
        assert page.meta.total_pages == 1
