"""Order and order line tables."""

from __future__ import annotations

import datetime
import decimal
import uuid
from enum import Enum
from typing import Any

from sqlalchemy import CheckConstraint, ForeignKey, Text, UniqueConstraint
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shop_spine.models.base import JSONDocument, ShopBase, TimestampMixin, UUIDPrimaryKeyMixin
from shop_spine.models.catalog import Product


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentMethod(str, Enum):
    CREDIT_CARD = "creditCard"
    DEBIT_CARD = "debitCard"
    PAYPAL = "paypal"
    BANK_TRANSFER = "bankTransfer"


def _enum_column(enum_cls: type[Enum], name: str) -> SAEnum:
    return SAEnum(
        enum_cls,
        name=name,
        native_enum=False,
        values_callable=lambda e: [m.value for m in e],
    )


class Order(UUIDPrimaryKeyMixin, TimestampMixin, ShopBase):
    __tablename__ = "orders"
    __table_args__ = (CheckConstraint("total_amount >= 0", name="total_non_negative"),)

    order_number: Mapped[str] = mapped_column(unique=True)
    status: Mapped[OrderStatus] = mapped_column(
        _enum_column(OrderStatus, "order_status"), default=OrderStatus.PENDING, index=True
    )
    total_amount: Mapped[decimal.Decimal]
    shipping_address: Mapped[dict[str, Any]] = mapped_column(JSONDocument)
    customer_details: Mapped[dict[str, Any]] = mapped_column(JSONDocument)
    order_date: Mapped[datetime.datetime] = mapped_column(index=True)
    delivery_date: Mapped[datetime.datetime | None]
    payment_status: Mapped[PaymentStatus] = mapped_column(
        _enum_column(PaymentStatus, "payment_status"), default=PaymentStatus.PENDING
    )
    payment_method: Mapped[PaymentMethod] = mapped_column(_enum_column(PaymentMethod, "payment_method"))
    notes: Mapped[str | None] = mapped_column(Text)

    items: Mapped[list[OrderItem]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def to_dict(self, *, include_items: bool = True) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": str(self.id),
            "order_number": self.order_number,
            "status": self.status.value,
            "total_amount": str(self.total_amount),
            "shipping_address": self.shipping_address,
            "customer_details": self.customer_details,
            "order_date": self.order_date.isoformat(),
            "delivery_date": self.delivery_date.isoformat() if self.delivery_date else None,
            "payment_status": self.payment_status.value,
            "payment_method": self.payment_method.value,
            "notes": self.notes,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data

    def __repr__(self) -> str:
        return f"Order(order_number={self.order_number!r}, status={self.status.value})"


class OrderItem(UUIDPrimaryKeyMixin, TimestampMixin, ShopBase):
    __tablename__ = "order_items"
    __table_args__ = (
        UniqueConstraint("order_id", "product_id", name="uq_order_items_order_product"),
        CheckConstraint("quantity >= 1", name="quantity_positive"),
        CheckConstraint("unit_price >= 0", name="unit_price_non_negative"),
        CheckConstraint("total_price >= 0", name="total_price_non_negative"),
        CheckConstraint("discount >= 0", name="discount_non_negative"),
    )

    order_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), index=True)
    product_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("products.id"), index=True)
    quantity: Mapped[int]
    unit_price: Mapped[decimal.Decimal]
    total_price: Mapped[decimal.Decimal]
    discount: Mapped[decimal.Decimal] = mapped_column(default=decimal.Decimal("0"))

    order: Mapped[Order] = relationship(back_populates="items")
    product: Mapped[Product] = relationship(back_populates="order_items")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "product_id": str(self.product_id),
            "quantity": self.quantity,
            "unit_price": str(self.unit_price),
            "total_price": str(self.total_price),
            "discount": str(self.discount),
            "product": self.product.summary(),
        }
