"""
Pagination envelope.

Pages are 0-indexed: page ``p`` with ``limit`` rows starts at offset
``p * limit``.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional

__all__ = ["PaginationMeta", "PaginationLinks", "PaginatedResponse", "paginate"]


@dataclass(frozen=True)
class PaginationMeta:
    item_count: int
    total_items: int
    total_pages: int
    current_page: int
    items_per_page: int


@dataclass(frozen=True)
class PaginationLinks:
    first: str
    last: str
    previous: Optional[str] = None
    next: Optional[str] = None


@dataclass(frozen=True)
class PaginatedResponse:
    data: List[Any]
    meta: PaginationMeta
    links: PaginationLinks

    def to_dict(self) -> Dict[str, Any]:
        links = {k: v for k, v in asdict(self.links).items() if v is not None}
        return {"data": list(self.data), "meta": asdict(self.meta), "links": links}


def _link(resource_url: str, page: int, limit: int) -> str:
    separator = "&" if "?" in resource_url else "?"
    return f"{resource_url}{separator}page={page}&limit={limit}"


def paginate(
    data: List[Any],
    total: int,
    page: int,
    limit: int,
    resource_url: str = "/api",
) -> PaginatedResponse:
    """
    Wrap one page of rows and the total count into an envelope.

    ``previous`` is omitted on the first page and ``next`` on the last one.
    """
    if limit <= 0:
        raise ValueError(f"limit must be positive, got {limit}")
    if page < 0:
        raise ValueError(f"page must be >= 0, got {page}")

    total = int(total)
    total_pages = math.ceil(total / limit) if total else 0
    last_page = max(total_pages - 1, 0)

    meta = PaginationMeta(
        item_count=len(data),
        total_items=total,
        total_pages=total_pages,
        current_page=page,
        items_per_page=limit,
    )
    links = PaginationLinks(
        first=_link(resource_url, 0, limit),
        last=_link(resource_url, last_page, limit),
        previous=_link(resource_url, page - 1, limit) if page > 0 else None,
        next=_link(resource_url, page + 1, limit) if page + 1 < total_pages else None,
    )
    return PaginatedResponse(data=list(data), meta=meta, links=links)
