"""Shared filter/sort/skip-limit helper for list endpoints."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from sqlalchemy.orm import Query


@dataclass(frozen=True)
class Page:
    items: list
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    def to_dict(self) -> dict:
        return {
            'items': [item.to_dict() for item in self.items],
            'pagination': {
                'total': self.total,
                'page': self.page,
                'limit': self.limit,
                'pages': self.pages,
            },
        }


def parse_sort(sort: Optional[str]) -> tuple[Optional[str], bool]:
    """Split ``'-field'`` into ``('field', True)``; descending when prefixed."""
    if not sort:
        return None, False
    if sort.startswith('-'):
        return sort[1:], True
    return sort, False


def _order_clause(model, sort: Optional[str]):
    field, descending = parse_sort(sort)
    column = model.__table__.columns.get(field) if field else None
    if column is None:
        return None
    return column.desc() if descending else column.asc()


def paginate(
    query: Query,
    model,
    *,
    filters: Optional[Mapping[str, Any]] = None,
    page: int = 1,
    limit: int = 20,
    sort: Optional[str] = None,
    default_sort: str,
) -> Page:
    page = max(int(page or 1), 1)
    limit = max(int(limit or 1), 1)

    columns = model.__table__.columns
    for name, value in (filters or {}).items():
        if name in columns and value is not None:
            query = query.filter(columns[name] == value)

    order = _order_clause(model, sort)
    if order is None:
        order = _order_clause(model, default_sort)

    total = query.count()
    items = (
        query.order_by(order)
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return Page(items=items, total=total, page=page, limit=limit)
