"""Tests for shop_spine.db.monitor - query counting, slow queries, pool status."""

import pytest
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from structlog.testing import capture_logs

from shop_spine.db.engine import create_shop_engine
from shop_spine.db.monitor import DatabaseMonitor, PoolStatus


@pytest.fixture
def monitor(engine):
    monitor = DatabaseMonitor(engine, slow_query_threshold_ms=1000.0)
    monitor.setup_query_logging()
    yield monitor
    monitor.remove_query_logging()


class TestRecording:
    def test_fresh_monitor_is_empty(self, engine):
        snapshot = DatabaseMonitor(engine).get_metrics()
        assert snapshot.queries_total == 0
        assert snapshot.queries_failed == 0
        assert snapshot.queries_slow == 0
        assert snapshot.connections_failed == 0

    def test_slow_query_is_flagged_and_logged(self, engine):
        monitor = DatabaseMonitor(engine, slow_query_threshold_ms=1000.0)
        with capture_logs() as logs:
            monitor.record_query("SELECT pg_sleep(2)", 1500.0)

        snapshot = monitor.get_metrics()
        assert snapshot.queries_total == 1
        assert snapshot.queries_slow == 1
        [entry] = [e for e in logs if e["event"] == "slow_query"]
        assert entry["log_level"] == "warning"
        assert entry["elapsed_ms"] == 1500.0
        assert entry["threshold_ms"] == 1000.0
        assert entry["statement"] == "SELECT pg_sleep(2)"

    def test_threshold_is_strict(self, engine):
        monitor = DatabaseMonitor(engine, slow_query_threshold_ms=1000.0)
        with capture_logs() as logs:
            monitor.record_query("SELECT 1", 1000.0)
        assert monitor.get_metrics().queries_slow == 0
        assert not [e for e in logs if e["event"] == "slow_query"]

    def test_failure_counts_in_total(self, engine):
        monitor = DatabaseMonitor(engine)
        monitor.record_failure("SELECT nope")
        snapshot = monitor.get_metrics()
        assert snapshot.queries_total == 1
        assert snapshot.queries_failed == 1


class TestHooks:
    def test_executed_queries_are_counted(self, engine, monitor):
        before = monitor.get_metrics().queries_total
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
            conn.execute(text("SELECT 2"))
        assert monitor.get_metrics().queries_total >= before + 2

    def test_failed_queries_are_counted(self, engine, monitor):
        with engine.connect() as conn:
            with pytest.raises(OperationalError):
                conn.execute(text("SELECT * FROM no_such_table"))
        assert monitor.get_metrics().queries_failed == 1

    def test_setup_is_idempotent(self, engine, monitor):
        def counted() -> int:
            before = monitor.get_metrics().queries_total
            with engine.connect() as conn:
                conn.exec_driver_sql("SELECT 1")
            return monitor.get_metrics().queries_total - before

        once = counted()
        monitor.setup_query_logging()
        assert counted() == once

    def test_removed_hooks_stop_counting(self, engine, monitor):
        monitor.remove_query_logging()
        assert not monitor.installed
        before = monitor.get_metrics().queries_total
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        assert monitor.get_metrics().queries_total == before


class TestPoolStatus:
    def test_pool_reflects_checkouts(self, engine, monitor):
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
            status = monitor.get_pool_status()
            assert status.active == 1
            assert status.total == status.idle + status.active

        status = monitor.get_pool_status()
        assert status.active == 0
        assert status.idle >= 1

    def test_memory_database_reports_zeros(self):
        memory_engine = create_shop_engine("sqlite://")
        try:
            assert DatabaseMonitor(memory_engine).get_pool_status() == PoolStatus(0, 0, 0)
        finally:
            memory_engine.dispose()

    def test_snapshot_to_dict(self, engine, monitor):
        data = monitor.get_metrics().to_dict()
        assert set(data) == {"queries", "connections", "pool", "timestamp"}
        assert set(data["queries"]) == {"total", "failed", "slow"}
        assert set(data["connections"]) == {"active", "idle", "failed"}


class TestSlowQueryHook:
    def test_executed_statement_over_threshold_is_logged(self, engine):
        monitor = DatabaseMonitor(engine, slow_query_threshold_ms=0)
        monitor.setup_query_logging()
        try:
            with capture_logs() as logs:
                with engine.connect() as conn:
                    conn.execute(text("SELECT 42"))
        finally:
            monitor.remove_query_logging()

        assert monitor.get_metrics().queries_slow >= 1
        slow = [e for e in logs if e["event"] == "slow_query"]
        assert any(e["statement"] == "SELECT 42" for e in slow)
        assert all(e["threshold_ms"] == 0 and e["log_level"] == "warning" for e in slow)

    def test_fast_statement_under_threshold_is_not_logged(self, engine):
        monitor = DatabaseMonitor(engine, slow_query_threshold_ms=60_000)
        monitor.setup_query_logging()
        try:
            with capture_logs() as logs:
                with engine.connect() as conn:
                    conn.execute(text("SELECT 42"))
        finally:
            monitor.remove_query_logging()

        assert monitor.get_metrics().queries_slow == 0
        assert not [e for e in logs if e["event"] == "slow_query"]
