"""Declarative base, mixins and type-map for all Shop Spine ORM models.

Uses SQLAlchemy 2.0 ``DeclarativeBase`` with a ``type_annotation_map``
that maps Python built-in types to portable SA column types.

Mixins
------
* **TimestampMixin** — ``created_at`` / ``updated_at``.  No defaults and no
  ``onupdate``: the services stamp them through
  :mod:`shop_spine.models.lifecycle`, so a forgotten step fails loudly on
  the NOT NULL constraint instead of being filled in behind the caller.
* **SoftDeleteMixin** — nullable ``deleted_at``.  Queries never filter it
  implicitly; callers add :func:`~shop_spine.models.lifecycle.not_deleted`.
"""

from __future__ import annotations

import datetime
import decimal
import uuid

from sqlalchemy import JSON, DateTime, Integer, MetaData, Numeric, String, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Constraint names are predictable so integrity errors can be traced back
# to their columns (see shop_spine.db.classifier).
NAMING_CONVENTION = {
    "ix": "ix_%(table_name)s_%(column_0_name)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

# JSONB on PostgreSQL, JSON text elsewhere
JSONDocument = JSON().with_variant(JSONB(), "postgresql")


class ShopBase(DeclarativeBase):
    """Shared declarative base for every Shop Spine table.

    * ``str``   → ``String(255)``
    * ``int``   → ``Integer``
    * ``decimal.Decimal`` → ``Numeric(10, 2)``
    * ``datetime.datetime`` → ``DateTime`` (naive UTC)
    * ``uuid.UUID`` → ``Uuid``

    JSON columns name ``JSONDocument`` explicitly.
    """

    metadata = MetaData(naming_convention=NAMING_CONVENTION)

    type_annotation_map = {
        str: String(255),
        int: Integer,
        decimal.Decimal: Numeric(10, 2),
        datetime.datetime: DateTime,
        uuid.UUID: Uuid,
    }


class UUIDPrimaryKeyMixin:
    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)


class TimestampMixin:
    """``created_at`` and ``updated_at``, stamped by explicit lifecycle steps."""

    created_at: Mapped[datetime.datetime] = mapped_column(nullable=False)
    updated_at: Mapped[datetime.datetime] = mapped_column(nullable=False)


class SoftDeleteMixin:
    """Marks rows deleted with a timestamp instead of removing them."""

    deleted_at: Mapped[datetime.datetime | None] = mapped_column(DateTime, nullable=True, index=True)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None
