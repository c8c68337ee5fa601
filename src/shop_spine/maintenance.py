"""
Database maintenance: purge old soft-deleted rows, vacuum, reindex.

All steps take an :class:`~sqlalchemy.engine.Engine` and work on both
PostgreSQL and SQLite.  ``run_maintenance`` runs them in that order and
returns a :class:`MaintenanceReport`.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import MetaData, delete, exists
from sqlalchemy.engine import Engine

from shop_spine.core.time import ago
from shop_spine.db.engine import WRITE_LOCK_OPTIONS
from shop_spine.models import ShopBase, SoftDeleteMixin
from shop_spine.observability.logging import get_logger, log_context

logger = get_logger(__name__)


@dataclass
class MaintenanceReport:
    purged: dict[str, int] = field(default_factory=dict)
    vacuumed: bool = False
    reindexed: list[str] = field(default_factory=list)
    elapsed_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "purged": dict(self.purged),
            "vacuumed": self.vacuumed,
            "reindexed": list(self.reindexed),
            "elapsed_ms": round(self.elapsed_ms, 2),
        }


def _soft_deletable_models() -> list[type[SoftDeleteMixin]]:
    return [
        mapper.class_
        for mapper in ShopBase.registry.mappers
        if issubclass(mapper.class_, SoftDeleteMixin)
    ]


def cleanup_soft_deleted(engine: Engine, older_than_days: int = 90) -> dict[str, int]:
    """Hard-delete rows soft-deleted more than *older_than_days* ago.

    Rows still referenced by a foreign key elsewhere (a product that
    appears on an order) are kept.

    Returns:
        Deleted row count per table.
    """
    if older_than_days < 0:
        raise ValueError(f"older_than_days must be >= 0, got {older_than_days}")

    cutoff = ago(days=older_than_days)
    metadata: MetaData = ShopBase.metadata
    purged: dict[str, int] = {}

    with engine.connect().execution_options(**WRITE_LOCK_OPTIONS) as conn, conn.begin():
        for model in _soft_deletable_models():
            table = model.__table__
            stmt = delete(table).where(table.c.deleted_at.is_not(None), table.c.deleted_at < cutoff)
            for other in metadata.sorted_tables:
                for fk in other.foreign_keys:
                    if fk.column.table is table:
                        stmt = stmt.where(~exists().where(fk.parent == fk.column))
            purged[table.name] = conn.execute(stmt).rowcount

    logger.info("soft_deleted_purged", older_than_days=older_than_days, purged=purged)
    return purged


def vacuum(engine: Engine) -> None:
    """Reclaim space and refresh planner statistics.

    ``VACUUM`` cannot run inside a transaction on either backend.
    """
    if engine.dialect.name == "postgresql":
        with engine.connect() as conn:
            conn.execution_options(isolation_level="AUTOCOMMIT").exec_driver_sql("VACUUM ANALYZE")
    else:
        # The SQLite driver connection runs in autocommit mode (see db.engine)
        raw = engine.raw_connection()
        try:
            cursor = raw.cursor()
            cursor.execute("VACUUM")
            cursor.close()
        finally:
            raw.close()
    logger.info("database_vacuumed", backend=engine.dialect.name)


def reindex(engine: Engine) -> list[str]:
    """Rebuild the indexes of every mapped table."""
    preparer = engine.dialect.identifier_preparer
    keyword = "REINDEX TABLE" if engine.dialect.name == "postgresql" else "REINDEX"
    tables = [table.name for table in ShopBase.metadata.sorted_tables]

    with engine.connect().execution_options(**WRITE_LOCK_OPTIONS) as conn, conn.begin():
        for name in tables:
            conn.exec_driver_sql(f"{keyword} {preparer.quote(name)}")

    logger.info("database_reindexed", tables=tables)
    return tables


def run_maintenance(
    engine: Engine,
    *,
    older_than_days: int = 90,
    do_vacuum: bool = True,
    do_reindex: bool = True,
) -> MaintenanceReport:
    """Run the maintenance steps; a failing step is logged and re-raised."""
    start = time.perf_counter()
    report = MaintenanceReport()
    step = "cleanup"
    with log_context(operation="maintenance", backend=engine.dialect.name):
        try:
            report.purged = cleanup_soft_deleted(engine, older_than_days)
            if do_vacuum:
                step = "vacuum"
                vacuum(engine)
                report.vacuumed = True
            if do_reindex:
                step = "reindex"
                report.reindexed = reindex(engine)
        except Exception as e:
            logger.exception("maintenance_failed", step=step, error=str(e))
            raise
        report.elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info("maintenance_completed", **report.to_dict())
    return report
