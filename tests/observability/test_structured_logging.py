"""Tests for shop_spine.observability.logging - context binding."""

from unittest.mock import patch

import pytest
from structlog.contextvars import get_contextvars

from shop_spine.observability.logging import bind_context, clear_context, log_context


@pytest.fixture(autouse=True)
def clean_context():
    clear_context()
    yield
    clear_context()


class TestLogContext:
    def test_binds_inside_block_only(self):
        with log_context(operation="maintenance", backend="sqlite"):
            assert get_contextvars() == {"operation": "maintenance", "backend": "sqlite"}
        assert get_contextvars() == {}

    def test_restores_outer_bindings(self):
        bind_context(command="maintain")
        with log_context(command="inner", step="vacuum"):
            assert get_contextvars() == {"command": "inner", "step": "vacuum"}
        assert get_contextvars() == {"command": "maintain"}

    def test_restores_after_error(self):
        with pytest.raises(RuntimeError):
            with log_context(operation="create_order"):
                raise RuntimeError("boom")
        assert get_contextvars() == {}


class TestServiceContext:
    def test_order_events_carry_operation(self, orders, laptop, order_payload):
        seen = []
        with patch("shop_spine.services.orders.logger") as logger:
            logger.info.side_effect = lambda event, **kw: seen.append((event, get_contextvars()))
            orders.create_order(order_payload((laptop, 1)))

        assert seen == [("order_created", {"operation": "create_order", "lines": 1})]
        assert get_contextvars() == {}

    def test_maintenance_events_carry_operation(self, engine):
        from shop_spine.maintenance import run_maintenance

        seen = []
        with patch("shop_spine.maintenance.logger") as logger:
            logger.info.side_effect = lambda event, **kw: seen.append((event, get_contextvars()))
            run_maintenance(engine, do_vacuum=False, do_reindex=False)

        assert ("maintenance_completed", {"operation": "maintenance", "backend": "sqlite"}) in seen
        assert get_contextvars() == {}
