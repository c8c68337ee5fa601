"""Observability - logging, metrics."""

from shop_spine.observability.logging import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    log_context,
)
from shop_spine.observability.metrics import (
    db_queries_counter,
    db_query_duration_histogram,
    orders_created_counter,
    orders_rejected_counter,
)

__all__ = [
    "get_logger",
    "configure_logging",
    "bind_context",
    "clear_context",
    "log_context",
    "db_queries_counter",
    "db_query_duration_histogram",
    "orders_created_counter",
    "orders_rejected_counter",
]
