"""
Schema DSL Tests - column specs and per-dialect DDL.
"""

import pytest

from unidb.schema import ColumnReference, TableBuilder, column_ddl


def build(callback) -> list:
    table = TableBuilder("items")
    callback(table)
    return table.columns


class TestColumnSpecs:
    """TableBuilder collects immutable specs."""

    def test_modifiers(self):
        cols = build(lambda t: (
            t.increments("id"),
            t.string("sku", 40).unique().not_nullable(),
            t.integer("owner_id").references("id").in_table("users"),
        ))
        increments, sku, owner = cols
        assert increments.is_primary and increments.auto_increment and not increments.is_nullable
        assert sku.length == 40 and sku.is_unique and not sku.is_nullable
        assert owner.reference == ColumnReference(table="users", column="id")
        assert owner.is_nullable

    def test_columns_are_rebuilt(self):
        table = TableBuilder("items")
        column = table.string("name")
        before = table.columns[0]
        column.unique()
        assert not before.is_unique
        assert table.columns[0].is_unique


class TestColumnDDL:
    """column_ddl renders one definition per dialect."""

    @pytest.mark.parametrize(
        "dialect, expected",
        [
            ("sqlite", '"id" INTEGER PRIMARY KEY AUTOINCREMENT'),
            ("postgresql", '"id" SERIAL PRIMARY KEY'),
            ("mysql", '"id" INT UNSIGNED AUTO_INCREMENT PRIMARY KEY'),
        ],
    )
    def test_increments(self, dialect, expected):
        spec = build(lambda t: t.increments())[0]
        assert column_ddl(spec, dialect) == expected

    def test_constraints_and_default(self):
        spec = build(lambda t: t.integer("qty").not_nullable().unique().default_to(0))[0]
        assert column_ddl(spec, "postgresql") == '"qty" INTEGER NOT NULL UNIQUE DEFAULT 0'

    def test_boolean_default_per_dialect(self):
        spec = build(lambda t: t.boolean("active").default_to(True))[0]
        assert column_ddl(spec, "sqlite") == '"active" BOOLEAN DEFAULT 1'
        assert column_ddl(spec, "postgresql") == '"active" BOOLEAN DEFAULT TRUE'

    def test_string_default_is_escaped(self):
        spec = build(lambda t: t.string("label", 10).default_to("it's"))[0]
        assert column_ddl(spec, "sqlite") == "\"label\" VARCHAR(10) DEFAULT 'it''s'"

    def test_decimal_and_json(self):
        price, meta = build(lambda t: (t.decimal("price", 10, 3), t.json("meta")))
        assert column_ddl(price, "mysql") == '"price" DECIMAL(10, 3)'
        assert column_ddl(meta, "postgresql") == '"meta" JSONB'
        assert column_ddl(meta, "sqlite") == '"meta" TEXT'

    def test_enum(self):
        spec = build(lambda t: t.enum("size", ["s", "m"]))[0]
        assert column_ddl(spec, "mysql") == "\"size\" ENUM('s', 'm')"
        assert column_ddl(spec, "sqlite") == "\"size\" TEXT CHECK (\"size\" IN ('s', 'm'))"

    def test_reference(self):
        spec = build(lambda t: t.integer("user_id").references("id").in_table("users"))[0]
        assert column_ddl(spec, "sqlite") == '"user_id" INTEGER REFERENCES "users"("id")'

    def test_unknown_dialect_type(self):
        spec = build(lambda t: t.string("x"))[0]
        with pytest.raises(ValueError):
            column_ddl(spec, "oracle")
