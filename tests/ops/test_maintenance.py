"""Tests for shop_spine.maintenance."""

from datetime import timedelta
from unittest.mock import patch

import pytest
from sqlalchemy import select

from shop_spine.core.time import utc_now_naive
from shop_spine.maintenance import cleanup_soft_deleted, reindex, run_maintenance, vacuum
from shop_spine.models import Product, soft_delete


def _age_deletion(session_factory, product_id, days: int) -> None:
    with session_factory() as session, session.begin():
        product = session.get(Product, product_id)
        soft_delete(product, now=utc_now_naive() - timedelta(days=days))


def _names(session_factory) -> list[str]:
    with session_factory() as session:
        return sorted(session.scalars(select(Product.name)).all())


class TestCleanupSoftDeleted:
    def test_purges_only_old_deletions(self, engine, session_factory, catalog, laptop, mouse):
        _age_deletion(session_factory, laptop.id, days=120)
        _age_deletion(session_factory, mouse.id, days=10)

        purged = cleanup_soft_deleted(engine, older_than_days=90)

        assert purged == {"products": 1}
        assert _names(session_factory) == ["Wireless Mouse"]

    def test_keeps_live_rows(self, engine, session_factory, laptop):
        assert cleanup_soft_deleted(engine, older_than_days=0) == {"products": 0}
        assert _names(session_factory) == ["Laptop Pro 14"]

    def test_keeps_products_referenced_by_orders(self, engine, session_factory, orders, laptop, order_payload):
        orders.create_order(order_payload((laptop, 1)))
        _age_deletion(session_factory, laptop.id, days=365)

        assert cleanup_soft_deleted(engine, older_than_days=30) == {"products": 0}
        assert _names(session_factory) == ["Laptop Pro 14"]

    def test_rejects_negative_age(self, engine):
        with pytest.raises(ValueError):
            cleanup_soft_deleted(engine, older_than_days=-1)


class TestVacuumAndReindex:
    def test_vacuum_sqlite(self, engine, laptop):
        vacuum(engine)

    def test_reindex_covers_every_table(self, engine):
        assert sorted(reindex(engine)) == ["order_items", "orders", "products"]


class TestRunMaintenance:
    def test_runs_all_steps(self, engine, session_factory, laptop):
        _age_deletion(session_factory, laptop.id, days=100)
        report = run_maintenance(engine, older_than_days=90)

        assert report.purged == {"products": 1}
        assert report.vacuumed is True
        assert len(report.reindexed) == 3
        assert report.to_dict()["elapsed_ms"] >= 0

    def test_steps_can_be_skipped(self, engine):
        report = run_maintenance(engine, do_vacuum=False, do_reindex=False)
        assert report.vacuumed is False
        assert report.reindexed == []

    def test_failure_is_reraised(self, engine):
        with patch("shop_spine.maintenance.vacuum", side_effect=RuntimeError("disk full")):
            with pytest.raises(RuntimeError, match="disk full"):
                run_maintenance(engine)
