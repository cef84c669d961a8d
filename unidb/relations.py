"""
Relation helpers: fold flat join rows into nested objects.

Relational joins return one row per (parent, child) pair. Selecting the
child columns under a ``<relation>__<column>`` alias lets ``one_to_many``
rebuild the parent -> children shape that a ``$lookup`` produces natively.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List

__all__ = ["one_to_many"]


def one_to_many(rows: Iterable[Dict[str, Any]], relation: str, key: str = "id") -> List[Dict[str, Any]]:
    """
    Group ``rows`` by ``key`` and nest the prefixed child columns.

    Parents keep first-seen order. A row whose child columns are all None
    (an unmatched LEFT JOIN) contributes no child.
    """
    prefix = f"{relation}__"
    parents: Dict[Any, Dict[str, Any]] = {}
    for row in rows:
        parent_fields = {k: v for k, v in row.items() if not k.startswith(prefix)}
        child = {k[len(prefix):]: v for k, v in row.items() if k.startswith(prefix)}
        parent = parents.get(row[key])
        if parent is None:
            parent = {**parent_fields, relation: []}
            parents[row[key]] = parent
        if any(v is not None for v in child.values()):
            parent[relation].append(child)
    return list(parents.values())
