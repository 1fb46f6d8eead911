from __future__ import annotations

import math
from typing import Iterable

import sqlalchemy as sa
from fastapi import Query

from . import schemas


class PageParams:
    """Query parameters shared by every paginated listing."""

    def __init__(
        self,
        page: int = Query(1, ge=1),
        limit: int = Query(10, ge=1, le=100),
    ):
        self.page = page
        self.limit = limit

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def paginate(query, params: PageParams) -> tuple[list, schemas.Pagination]:
    total = query.order_by(None).count()
    items = query.offset(params.offset).limit(params.limit).all()
    total_pages = math.ceil(total / params.limit) if total else 0
    return items, schemas.Pagination(
        current_page=params.page,
        total_pages=total_pages,
        total_items=total,
        has_next=params.page < total_pages,
        has_prev=params.page > 1,
    )


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def search_filter(model, fields: Iterable[str], term: str):
    """Case-insensitive substring match of ``term`` over the named columns.

    JSON list columns are matched against their serialized text.
    """

    pattern = f"%{_escape_like(term)}%"
    clauses = []
    for name in fields:
        column = getattr(model, name, None)
        if column is None:
            continue
        if isinstance(column.type, sa.JSON):
            column = sa.cast(column, sa.String)
        clauses.append(column.ilike(pattern, escape="\\"))
    if not clauses:
        return sa.false()
    return sa.or_(*clauses)
