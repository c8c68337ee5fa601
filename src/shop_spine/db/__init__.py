"""Database access - engine, connection lifecycle, monitoring, query helpers."""

from shop_spine.db.classifier import ErrorKind, ErrorResponse, classify_error
from shop_spine.db.connection import ConnectionManager, ConnectionState, RetryPolicy
from shop_spine.db.engine import (
    ShopSession,
    create_shop_engine,
    engine_from_settings,
    shop_session_factory,
    write_session,
)
from shop_spine.db.monitor import DatabaseMonitor, MetricsSnapshot, PoolStatus
from shop_spine.db.pagination import PageRequest, PaginationResult, find_with_pagination
from shop_spine.db.query_builder import (
    Condition,
    FilterOperator,
    build_where_clause,
    create_secure_query,
    sanitize_order,
)

__all__ = [
    "ConnectionManager",
    "ConnectionState",
    "RetryPolicy",
    "DatabaseMonitor",
    "MetricsSnapshot",
    "PoolStatus",
    "ShopSession",
    "create_shop_engine",
    "engine_from_settings",
    "shop_session_factory",
    "write_session",
    "Condition",
    "FilterOperator",
    "build_where_clause",
    "create_secure_query",
    "sanitize_order",
    "PageRequest",
    "PaginationResult",
    "find_with_pagination",
    "ErrorKind",
    "ErrorResponse",
    "classify_error",
]
