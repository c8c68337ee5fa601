"""Paginated listing: a row count and one page of rows, fetched concurrently.

The count and the page query run on separate sessions at the same time, so
under concurrent writes they may observe slightly different snapshots.
That is acceptable for listing screens; callers needing an exact page/total
pair should read both inside one transaction themselves.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any

from sqlalchemy import ColumnElement, func, inspect, select
from sqlalchemy.orm import Session, sessionmaker

from shop_spine.core.errors import InvalidOrderDirection, InvalidOrderField, InvalidPagination
from shop_spine.db.query_builder import SortDirection

DEFAULT_PAGE_SIZE = 20
DEFAULT_ORDER: tuple[tuple[str, str], ...] = (("created_at", "DESC"),)


@dataclass(frozen=True)
class PageRequest:
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE

    def __post_init__(self) -> None:
        if not isinstance(self.page, int) or isinstance(self.page, bool) or self.page < 1:
            raise InvalidPagination("page", self.page)
        if not isinstance(self.page_size, int) or isinstance(self.page_size, bool) or self.page_size < 1:
            raise InvalidPagination("page_size", self.page_size)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


@dataclass(frozen=True)
class PaginationResult:
    rows: list[Any]
    page: int
    page_size: int
    total_pages: int
    total_items: int

    @property
    def pagination(self) -> dict[str, int]:
        return {
            "page": self.page,
            "page_size": self.page_size,
            "total_pages": self.total_pages,
            "total_items": self.total_items,
        }


def _order_clauses(model: type, order: Sequence[tuple[str, str]]) -> list[Any]:
    columns = inspect(model).columns
    clauses = []
    for field, direction in order:
        if field not in columns:
            raise InvalidOrderField(field)
        try:
            sort = SortDirection(direction.upper())
        except ValueError:
            raise InvalidOrderDirection(direction) from None
        column = getattr(model, field)
        clauses.append(column.desc() if sort is SortDirection.DESC else column.asc())
    return clauses


def find_with_pagination(
    session_factory: sessionmaker[Session],
    model: type,
    *,
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
    order: Sequence[tuple[str, str]] = DEFAULT_ORDER,
    where: ColumnElement[bool] | None = None,
    options: Sequence[Any] = (),
) -> PaginationResult:
    """Count matching rows and fetch one page of them concurrently.

    Args:
        session_factory: Produces one session per query.
        model: Mapped class to list.
        page, page_size: 1-based page number and page length.
        order: ``(field, direction)`` pairs, e.g. from
            :func:`~shop_spine.db.query_builder.sanitize_order`.
        where: Filter applied to both the count and the fetch.
        options: Loader options (``selectinload(...)``) for the fetch.

    Returns:
        ``PaginationResult`` with ``total_pages == 0`` when nothing matches.
    """
    request = PageRequest(page=page, page_size=page_size)

    count_stmt = select(func.count()).select_from(model)
    rows_stmt = select(model).order_by(*_order_clauses(model, order))
    if where is not None:
        count_stmt = count_stmt.where(where)
        rows_stmt = rows_stmt.where(where)
    rows_stmt = rows_stmt.options(*options).limit(request.page_size).offset(request.offset)

    def _count() -> int:
        with session_factory() as session:
            return session.scalar(count_stmt) or 0

    def _fetch() -> list[Any]:
        with session_factory() as session:
            return list(session.scalars(rows_stmt).all())

    with ThreadPoolExecutor(max_workers=2, thread_name_prefix="paginate") as executor:
        count_future = executor.submit(_count)
        rows_future = executor.submit(_fetch)
        total_items = count_future.result()
        rows = rows_future.result()

    return PaginationResult(
        rows=rows,
        page=request.page,
        page_size=request.page_size,
        total_pages=math.ceil(total_items / request.page_size),
        total_items=total_items,
    )
