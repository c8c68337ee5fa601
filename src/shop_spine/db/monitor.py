"""Query instrumentation and pool monitoring.

``DatabaseMonitor`` hooks SQLAlchemy's cursor events so every statement the
engine executes is counted and timed.  Counters only grow for the lifetime
of the monitor; pool numbers are read live from the pool whenever they are
requested.

Example:
    >>> monitor = DatabaseMonitor(engine, slow_query_threshold_ms=500)
    >>> monitor.setup_query_logging()
    >>> monitor.get_metrics().to_dict()["queries"]
    {'total': 0, 'failed': 0, 'slow': 0}
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import event
from sqlalchemy.engine import Engine

from shop_spine.core.time import utc_now
from shop_spine.observability.logging import get_logger
from shop_spine.observability.metrics import (
    db_connection_failures_counter,
    db_connections_gauge,
    db_queries_counter,
    db_query_duration_histogram,
    db_slow_queries_counter,
)

logger = get_logger(__name__)

_START_TIMES_KEY = "shop_spine_query_start"


@dataclass(frozen=True)
class PoolStatus:
    """Live pool occupancy."""

    total: int
    idle: int
    active: int

    def to_dict(self) -> dict[str, int]:
        return {"total": self.total, "idle": self.idle, "active": self.active}


@dataclass(frozen=True)
class MetricsSnapshot:
    """Point-in-time copy of the monitor counters and pool status."""

    queries_total: int
    queries_failed: int
    queries_slow: int
    connections_active: int
    connections_idle: int
    connections_failed: int
    pool: PoolStatus
    timestamp: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "queries": {
                "total": self.queries_total,
                "failed": self.queries_failed,
                "slow": self.queries_slow,
            },
            "connections": {
                "active": self.connections_active,
                "idle": self.connections_idle,
                "failed": self.connections_failed,
            },
            "pool": self.pool.to_dict(),
            "timestamp": self.timestamp.isoformat(),
        }


class DatabaseMonitor:
    """Counts, times and logs queries executed through one engine."""

    def __init__(self, engine: Engine, *, slow_query_threshold_ms: float = 1000.0):
        self._engine = engine
        self.slow_query_threshold_ms = slow_query_threshold_ms
        self._lock = threading.Lock()
        self._installed = False

        self._queries_total = 0
        self._queries_failed = 0
        self._queries_slow = 0
        self._connections_failed = 0

    # ------------------------------------------------------------------ #
    # Hook installation
    # ------------------------------------------------------------------ #

    def setup_query_logging(self) -> None:
        """Install the cursor hooks on the engine (idempotent)."""
        if self._installed:
            return
        event.listen(self._engine, "before_cursor_execute", self._before_cursor_execute)
        event.listen(self._engine, "after_cursor_execute", self._after_cursor_execute)
        event.listen(self._engine, "handle_error", self._handle_error)
        self._installed = True

    def remove_query_logging(self) -> None:
        """Detach the hooks installed by :meth:`setup_query_logging`."""
        if not self._installed:
            return
        event.remove(self._engine, "before_cursor_execute", self._before_cursor_execute)
        event.remove(self._engine, "after_cursor_execute", self._after_cursor_execute)
        event.remove(self._engine, "handle_error", self._handle_error)
        self._installed = False

    @property
    def installed(self) -> bool:
        return self._installed

    def _before_cursor_execute(self, conn, cursor, statement, parameters, context, executemany):
        conn.info.setdefault(_START_TIMES_KEY, []).append(time.perf_counter())

    def _after_cursor_execute(self, conn, cursor, statement, parameters, context, executemany):
        starts = conn.info.get(_START_TIMES_KEY)
        # Statements already in flight when the hooks were installed
        elapsed_ms = (time.perf_counter() - starts.pop()) * 1000.0 if starts else 0.0
        self.record_query(statement, elapsed_ms)

    def _handle_error(self, exception_context) -> None:
        conn = exception_context.connection
        if conn is not None:
            starts = conn.info.get(_START_TIMES_KEY)
            if starts:
                starts.pop()
        if exception_context.statement is not None:
            self.record_failure(exception_context.statement)
        if exception_context.is_disconnect:
            self.record_connection_failure()

    # ------------------------------------------------------------------ #
    # Recording
    # ------------------------------------------------------------------ #

    def record_query(self, statement: str, elapsed_ms: float) -> None:
        """Count one executed statement and flag it when slow."""
        slow = elapsed_ms > self.slow_query_threshold_ms
        with self._lock:
            self._queries_total += 1
            if slow:
                self._queries_slow += 1

        db_queries_counter.labels(outcome="ok").inc()
        db_query_duration_histogram.observe(elapsed_ms / 1000.0)
        if slow:
            db_slow_queries_counter.inc()
            logger.warning(
                "slow_query",
                elapsed_ms=round(elapsed_ms, 2),
                threshold_ms=self.slow_query_threshold_ms,
                statement=statement,
            )

    def record_failure(self, statement: str) -> None:
        """Count a statement that raised."""
        with self._lock:
            self._queries_total += 1
            self._queries_failed += 1
        db_queries_counter.labels(outcome="error").inc()
        logger.debug("query_failed", statement=statement)

    def record_connection_failure(self) -> None:
        with self._lock:
            self._connections_failed += 1
        db_connection_failures_counter.inc()

    # ------------------------------------------------------------------ #
    # Reading
    # ------------------------------------------------------------------ #

    def get_pool_status(self) -> PoolStatus:
        """Read pool occupancy at call time.

        Pools without checkout accounting (in-memory SQLite, ``NullPool``)
        report zeros.
        """
        pool = self._engine.pool
        checkedin = getattr(pool, "checkedin", None)
        checkedout = getattr(pool, "checkedout", None)
        if not (callable(checkedin) and callable(checkedout)):
            status = PoolStatus(total=0, idle=0, active=0)
        else:
            idle = checkedin()
            total = idle + checkedout()
            status = PoolStatus(total=total, idle=idle, active=total - idle)

        db_connections_gauge.labels(state="idle").set(status.idle)
        db_connections_gauge.labels(state="active").set(status.active)
        return status

    def get_metrics(self) -> MetricsSnapshot:
        """Snapshot counters and pool status together."""
        with self._lock:
            pool = self.get_pool_status()
            return MetricsSnapshot(
                queries_total=self._queries_total,
                queries_failed=self._queries_failed,
                queries_slow=self._queries_slow,
                connections_active=pool.active,
                connections_idle=pool.idle,
                connections_failed=self._connections_failed,
                pool=pool,
                timestamp=utc_now(),
            )
