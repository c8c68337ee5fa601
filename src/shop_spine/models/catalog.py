"""Product catalog table."""

from __future__ import annotations

import decimal
from enum import Enum
from typing import TYPE_CHECKING, Any

from sqlalchemy import CheckConstraint, Text
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shop_spine.models.base import (
    JSONDocument,
    ShopBase,
    SoftDeleteMixin,
    TimestampMixin,
    UUIDPrimaryKeyMixin,
)

if TYPE_CHECKING:
    from shop_spine.models.orders import OrderItem


class ProductStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    DISCONTINUED = "discontinued"


class Product(UUIDPrimaryKeyMixin, TimestampMixin, SoftDeleteMixin, ShopBase):
    """A sellable product.  ``stock`` never goes below zero."""

    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint("price >= 0", name="price_non_negative"),
        CheckConstraint("stock >= 0", name="stock_non_negative"),
    )

    name: Mapped[str] = mapped_column(unique=True)
    description: Mapped[str] = mapped_column(Text)
    price: Mapped[decimal.Decimal] = mapped_column(index=True)
    stock: Mapped[int] = mapped_column(default=0)
    category: Mapped[str] = mapped_column(index=True)
    brand: Mapped[str] = mapped_column(index=True)
    specifications: Mapped[dict[str, Any]] = mapped_column(JSONDocument, default=dict)
    tags: Mapped[list[str]] = mapped_column(JSONDocument, default=list)
    status: Mapped[ProductStatus] = mapped_column(
        SAEnum(
            ProductStatus,
            name="product_status",
            native_enum=False,
            values_callable=lambda e: [m.value for m in e],
        ),
        default=ProductStatus.ACTIVE,
        index=True,
    )

    order_items: Mapped[list[OrderItem]] = relationship(back_populates="product")

    def summary(self) -> dict[str, Any]:
        """Fields exposed next to an order line."""
        return {
            "id": str(self.id),
            "name": self.name,
            "price": str(self.price),
            "category": self.category,
        }

    def __repr__(self) -> str:
        return f"Product(id={self.id!s}, name={self.name!r}, stock={self.stock})"
