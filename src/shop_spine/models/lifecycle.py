"""Explicit lifecycle steps for timestamped and soft-deletable models.

Services call these right before adding or changing an instance; nothing
here is registered as an ORM event.
"""

from __future__ import annotations

import datetime
from typing import TypeVar

from sqlalchemy import ColumnElement

from shop_spine.core.time import utc_now_naive
from shop_spine.models.base import SoftDeleteMixin, TimestampMixin

T = TypeVar("T", bound=TimestampMixin)
S = TypeVar("S", bound=SoftDeleteMixin)


def on_create(instance: T, *, now: datetime.datetime | None = None) -> T:
    """Stamp ``created_at`` and ``updated_at`` on a new instance."""
    now = now or utc_now_naive()
    instance.created_at = now
    instance.updated_at = now
    return instance


def on_update(instance: T, *, now: datetime.datetime | None = None) -> T:
    """Refresh ``updated_at`` on a changed instance."""
    instance.updated_at = now or utc_now_naive()
    return instance


def soft_delete(instance: S, *, now: datetime.datetime | None = None) -> S:
    now = now or utc_now_naive()
    instance.deleted_at = now
    if isinstance(instance, TimestampMixin):
        on_update(instance, now=now)
    return instance


def restore(instance: S, *, now: datetime.datetime | None = None) -> S:
    instance.deleted_at = None
    if isinstance(instance, TimestampMixin):
        on_update(instance, now=now)
    return instance


def not_deleted(model: type[SoftDeleteMixin]) -> ColumnElement[bool]:
    """Filter clause excluding soft-deleted rows of *model*."""
    return model.deleted_at.is_(None)
