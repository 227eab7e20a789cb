"""Offset pagination over raw SQL queries."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Optional


@dataclass
class PaginationMeta:
    limit: int
    page: int
    has_next_page: bool
    has_prev_page: bool

    def to_dict(self) -> dict:
        return {
            "limit": self.limit,
            "page": self.page,
            "has_next_page": self.has_next_page,
            "has_prev_page": self.has_prev_page,
        }


@dataclass
class PaginationResult:
    items: list = field(default_factory=list)
    meta: Optional[PaginationMeta] = None

    def to_dict(self, item_to_dict: Callable[[Any], dict] = None) -> dict:
        items = [item_to_dict(i) for i in self.items] if item_to_dict else self.items
        return {"items": items, "meta": self.meta.to_dict() if self.meta else None}


def paginate(
    conn,
    sql: str,
    params: tuple | list = (),
    page: int = 1,
    per_page: int = 20,
    row_factory: Callable = dict,
) -> PaginationResult:
    """Run sql with LIMIT/OFFSET and report whether more pages exist.

    Fetches one extra row to decide has_next_page without a COUNT query.
    """
    page = max(int(page or 1), 1)
    per_page = max(int(per_page or 1), 1)
    offset = (page - 1) * per_page
    rows = conn.execute(
        f"{sql} LIMIT ? OFFSET ?", (*params, per_page + 1, offset)
    ).fetchall()
    has_next = len(rows) > per_page
    return PaginationResult(
        items=[row_factory(r) for r in rows[:per_page]],
        meta=PaginationMeta(
            limit=per_page,
            page=page,
            has_next_page=has_next,
            has_prev_page=page > 1,
        ),
    )
