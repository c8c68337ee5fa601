"""Prometheus metrics for observability."""

from prometheus_client import Counter, Gauge, Histogram, Info

# Application info
app_info = Info("shop_spine_app", "Shop Spine application info")
app_info.info({"version": "0.1.0", "component": "shop-spine"})

# Database metrics
db_queries_counter = Counter(
    "shop_spine_db_queries_total",
    "Total number of executed database queries",
    ["outcome"],
)

db_slow_queries_counter = Counter(
    "shop_spine_db_slow_queries_total",
    "Queries slower than the configured threshold",
)

db_query_duration_histogram = Histogram(
    "shop_spine_db_query_duration_seconds",
    "Database query duration in seconds",
    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0],
)

db_connections_gauge = Gauge(
    "shop_spine_db_connections",
    "Number of pooled database connections",
    ["state"],
)

db_connection_failures_counter = Counter(
    "shop_spine_db_connection_failures_total",
    "Failed attempts to open a database connection",
)

# Order metrics
orders_created_counter = Counter(
    "shop_spine_orders_created_total",
    "Total number of committed orders",
)

orders_rejected_counter = Counter(
    "shop_spine_orders_rejected_total",
    "Order placements rolled back",
    ["reason"],
)
