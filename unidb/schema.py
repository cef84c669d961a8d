"""
Table/column DSL consumed by ``create_table``.

Usage:
    def products(table: TableBuilder) -> None:
        table.increments("id")
        table.string("name").unique()
        table.integer("quantity").default_to(0)
        table.integer("category_id").nullable().references("id").in_table("categories")

    await db.create_table("products", products)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence, Tuple

from .sql_builder import quote_identifier

__all__ = [
    "ColumnReference",
    "ColumnSpec",
    "ColumnBuilder",
    "ReferenceBuilder",
    "TableBuilder",
    "column_ddl",
]


@dataclass(frozen=True)
class ColumnReference:
    table: str
    column: str


@dataclass(frozen=True)
class ColumnSpec:
    """Backend-agnostic description of one column."""

    name: str
    type: str
    is_unique: bool = False
    is_primary: bool = False
    is_nullable: bool = True
    auto_increment: bool = False
    default: Any = None
    length: Optional[int] = None
    precision: Optional[Tuple[int, int]] = None
    enum_values: Tuple[str, ...] = field(default_factory=tuple)
    reference: Optional[ColumnReference] = None


class ReferenceBuilder:
    """Second half of ``column.references("id").in_table("users")``."""

    def __init__(self, owner: ColumnBuilder, column: str):
        self._owner = owner
        self._column = column

    def in_table(self, table: str) -> ColumnBuilder:
        self._owner._reference = ColumnReference(table=table, column=self._column)
        return self._owner


class ColumnBuilder:
    """Fluent modifiers for a single column. Columns are nullable by default."""

    def __init__(
        self,
        name: str,
        column_type: str,
        *,
        length: Optional[int] = None,
        precision: Optional[Tuple[int, int]] = None,
        enum_values: Sequence[str] = (),
    ):
        self._name = name
        self._type = column_type
        self._length = length
        self._precision = precision
        self._enum_values = tuple(enum_values)
        self._unique = False
        self._primary = False
        self._nullable = True
        self._auto_increment = False
        self._default: Any = None
        self._reference: Optional[ColumnReference] = None

    def unique(self) -> ColumnBuilder:
        self._unique = True
        return self

    def primary(self) -> ColumnBuilder:
        self._primary = True
        self._nullable = False
        return self

    def nullable(self) -> ColumnBuilder:
        self._nullable = True
        return self

    def not_nullable(self) -> ColumnBuilder:
        self._nullable = False
        return self

    def default_to(self, value: Any) -> ColumnBuilder:
        self._default = value
        return self

    def auto_increment(self) -> ColumnBuilder:
        self._auto_increment = True
        return self

    def references(self, column: str) -> ReferenceBuilder:
        return ReferenceBuilder(self, column)

    def build(self) -> ColumnSpec:
        return ColumnSpec(
            name=self._name,
            type=self._type,
            is_unique=self._unique,
            is_primary=self._primary,
            is_nullable=self._nullable,
            auto_increment=self._auto_increment,
            default=self._default,
            length=self._length,
            precision=self._precision,
            enum_values=self._enum_values,
            reference=self._reference,
        )


class TableBuilder:
    """Collects column definitions for one table or collection."""

    def __init__(self, name: str):
        self.name = name
        self._columns: List[ColumnBuilder] = []

    def _add(self, builder: ColumnBuilder) -> ColumnBuilder:
        self._columns.append(builder)
        return builder

    def increments(self, name: str = "id") -> ColumnBuilder:
        return self._add(ColumnBuilder(name, "increments").primary().auto_increment())

    def string(self, name: str, length: int = 255) -> ColumnBuilder:
        return self._add(ColumnBuilder(name, "string", length=length))

    def text(self, name: str) -> ColumnBuilder:
        return self._add(ColumnBuilder(name, "text"))

    def integer(self, name: str) -> ColumnBuilder:
        return self._add(ColumnBuilder(name, "integer"))

    def big_integer(self, name: str) -> ColumnBuilder:
        return self._add(ColumnBuilder(name, "big_integer"))

    def float(self, name: str) -> ColumnBuilder:
        return self._add(ColumnBuilder(name, "float"))

    def decimal(self, name: str, precision: int = 8, scale: int = 2) -> ColumnBuilder:
        return self._add(ColumnBuilder(name, "decimal", precision=(precision, scale)))

    def boolean(self, name: str) -> ColumnBuilder:
        return self._add(ColumnBuilder(name, "boolean"))

    def date(self, name: str) -> ColumnBuilder:
        return self._add(ColumnBuilder(name, "date"))

    def timestamp(self, name: str) -> ColumnBuilder:
        return self._add(ColumnBuilder(name, "timestamp"))

    def json(self, name: str) -> ColumnBuilder:
        return self._add(ColumnBuilder(name, "json"))

    def enum(self, name: str, values: Sequence[str]) -> ColumnBuilder:
        return self._add(ColumnBuilder(name, "enum", enum_values=values))

    @property
    def columns(self) -> List[ColumnSpec]:
        return [c.build() for c in self._columns]


# ── DDL rendering ────────────────────────────────────────────────────────────

_TYPES = {
    "sqlite": {
        "string": "VARCHAR({length})",
        "text": "TEXT",
        "integer": "INTEGER",
        "big_integer": "BIGINT",
        "float": "REAL",
        "decimal": "NUMERIC({precision}, {scale})",
        "boolean": "BOOLEAN",
        "date": "DATE",
        "timestamp": "TIMESTAMP",
        "json": "TEXT",
        "enum": "TEXT",
    },
    "postgresql": {
        "string": "VARCHAR({length})",
        "text": "TEXT",
        "integer": "INTEGER",
        "big_integer": "BIGINT",
        "float": "DOUBLE PRECISION",
        "decimal": "NUMERIC({precision}, {scale})",
        "boolean": "BOOLEAN",
        "date": "DATE",
        "timestamp": "TIMESTAMP",
        "json": "JSONB",
        "enum": "TEXT",
    },
    "mysql": {
        "string": "VARCHAR({length})",
        "text": "TEXT",
        "integer": "INT",
        "big_integer": "BIGINT",
        "float": "DOUBLE",
        "decimal": "DECIMAL({precision}, {scale})",
        "boolean": "TINYINT(1)",
        "date": "DATE",
        "timestamp": "DATETIME",
        "json": "JSON",
        "enum": "ENUM({values})",
    },
}

_INCREMENTS = {
    "sqlite": "INTEGER PRIMARY KEY AUTOINCREMENT",
    "postgresql": "SERIAL PRIMARY KEY",
    "mysql": "INT UNSIGNED AUTO_INCREMENT PRIMARY KEY",
}


def _literal(value: Any, dialect: str) -> str:
    if isinstance(value, bool):
        if dialect == "sqlite":
            return "1" if value else "0"
        return "TRUE" if value else "FALSE"
    if isinstance(value, (int, float)):
        return repr(value)
    return "'" + str(value).replace("'", "''") + "'"


def column_ddl(spec: ColumnSpec, dialect: str) -> str:
    """Render one column definition for ``dialect``."""
    name = quote_identifier(spec.name)
    if spec.type == "increments":
        return f"{name} {_INCREMENTS[dialect]}"

    try:
        template = _TYPES[dialect][spec.type]
    except KeyError:
        raise ValueError(f"Column type {spec.type!r} is not supported on {dialect}") from None

    precision, scale = spec.precision or (8, 2)
    values = ", ".join(_literal(v, dialect) for v in spec.enum_values)
    parts = [name, template.format(length=spec.length or 255, precision=precision, scale=scale, values=values)]

    if spec.is_primary:
        parts.append("PRIMARY KEY")
        if spec.auto_increment and dialect == "mysql":
            parts.append("AUTO_INCREMENT")
    if not spec.is_nullable and not spec.is_primary:
        parts.append("NOT NULL")
    if spec.is_unique and not spec.is_primary:
        parts.append("UNIQUE")
    if spec.default is not None:
        parts.append(f"DEFAULT {_literal(spec.default, dialect)}")
    if spec.type == "enum" and dialect != "mysql" and spec.enum_values:
        parts.append(f"CHECK ({name} IN ({values}))")
    if spec.reference is not None:
        parts.append(
            f"REFERENCES {quote_identifier(spec.reference.table)}"
            f"({quote_identifier(spec.reference.column)})"
        )
    return " ".join(parts)
