"""
Allow-listed query construction from untrusted input.

Filters and sort specifications arrive as plain strings and mappings from
query parameters.  Nothing in them is ever interpolated into SQL: field
names are resolved against the model's mapped columns, operators against a
closed :class:`FilterOperator` enumeration, and values are always bound
parameters.  Anything outside the allow-lists is rejected with an
:class:`~shop_spine.core.errors.InvalidQueryError` before a statement is
built, so it can never reach the database.

Filter forms:
    ``{"status": "active"}``                   equality
    ``{"status": None}``                       IS NULL
    ``{"price": {"gt": 10}}``                  single operator
    ``{"price": {"gt": 10, "lt": 50}}``        several operators, ANDed
    ``{"name": Condition("like", "%Pro%")}``   explicit tagged condition

Order form:
    ``"<field> <direction>"`` with field in ``id``, ``createdAt``,
    ``updatedAt`` (snake-case accepted) and direction ``ASC`` / ``DESC``.

Example:
    >>> query = create_secure_query(Product, {
    ...     "filters": {"price": {"lt": 100}},
    ...     "order_by": "createdAt desc",
    ...     "page": 2,
    ... })
    >>> query["order"]
    [('created_at', 'DESC')]
    >>> query["page"]
    2
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from sqlalchemy import ColumnElement, and_, inspect, true

from shop_spine.core.errors import (
    InvalidFilterField,
    InvalidOperator,
    InvalidOrderDirection,
    InvalidOrderField,
)


class FilterOperator(str, Enum):
    EQ = "eq"
    GT = "gt"
    LT = "lt"
    LIKE = "like"


class SortDirection(str, Enum):
    ASC = "ASC"
    DESC = "DESC"


@dataclass(frozen=True)
class Condition:
    """An operator/value pair for one field."""

    operator: FilterOperator | str
    value: Any


_COMPARATORS: dict[FilterOperator, Callable[[Any, Any], ColumnElement[bool]]] = {
    FilterOperator.EQ: lambda column, value: column == value,
    FilterOperator.GT: lambda column, value: column > value,
    FilterOperator.LT: lambda column, value: column < value,
    FilterOperator.LIKE: lambda column, value: column.like(value),
}

ORDERABLE_FIELDS = frozenset({"id", "created_at", "updated_at"})

_FIELD_ALIASES = {
    "createdAt": "created_at",
    "updatedAt": "updated_at",
}


def _parse_operator(raw: Any) -> FilterOperator:
    if isinstance(raw, FilterOperator):
        return raw
    try:
        return FilterOperator(raw)
    except ValueError:
        raise InvalidOperator(str(raw)) from None


def _resolve_column(model: type, field: str) -> Any:
    if field not in inspect(model).columns:
        raise InvalidFilterField(field)
    return getattr(model, field)


def _conditions(value: Any) -> list[tuple[FilterOperator, Any]]:
    if isinstance(value, Condition):
        return [(_parse_operator(value.operator), value.value)]
    if isinstance(value, Mapping):
        if not value:
            raise InvalidOperator("<none>")
        return [(_parse_operator(op), operand) for op, operand in value.items()]
    return [(FilterOperator.EQ, value)]


def build_where_clause(model: type, filters: Mapping[str, Any]) -> ColumnElement[bool]:
    """Translate a filter mapping into one ANDed SQLAlchemy clause.

    Raises:
        InvalidOperator: an operator outside ``eq``, ``gt``, ``lt``, ``like``
        InvalidFilterField: a field that is not a mapped column of *model*
    """
    clauses: list[ColumnElement[bool]] = []
    for field, value in filters.items():
        column = _resolve_column(model, field)
        for operator, operand in _conditions(value):
            if operator is FilterOperator.EQ and operand is None:
                clauses.append(column.is_(None))
            else:
                clauses.append(_COMPARATORS[operator](column, operand))
    return and_(*clauses) if clauses else true()


def sanitize_order(order_by: str) -> list[tuple[str, str]]:
    """Validate ``"<field> <direction>"`` and return ``[(field, DIRECTION)]``.

    The direction defaults to ``ASC`` when omitted.
    """
    parts = order_by.split()
    if not parts or len(parts) > 2:
        raise InvalidOrderField(order_by)

    field = _FIELD_ALIASES.get(parts[0], parts[0])
    if field not in ORDERABLE_FIELDS:
        raise InvalidOrderField(parts[0])

    raw_direction = parts[1].upper() if len(parts) == 2 else SortDirection.ASC.value
    try:
        direction = SortDirection(raw_direction)
    except ValueError:
        raise InvalidOrderDirection(parts[1]) from None

    return [(field, direction.value)]


def create_secure_query(model: type, options: Mapping[str, Any]) -> dict[str, Any]:
    """Build a query-options bundle for :func:`~shop_spine.db.pagination.find_with_pagination`.

    ``filters`` becomes ``where`` and ``order_by`` becomes ``order``; every
    other key is passed through untouched.  Callers stay responsible for
    what they put in those pass-through keys.
    """
    query = {k: v for k, v in options.items() if k not in ("filters", "order_by")}

    filters = options.get("filters")
    if filters:
        query["where"] = build_where_clause(model, filters)

    order_by = options.get("order_by")
    if order_by:
        query["order"] = sanitize_order(order_by)

    return query
