"""Order placement and order read paths.

``OrderService.create_order`` is the one multi-entity write: stock checks,
stock decrements, the order row and its lines all commit together or not
at all.  Product rows are read with ``SELECT ... FOR UPDATE`` inside the
transaction so two orders for the same product serialize; on SQLite the
write transaction starts with ``BEGIN IMMEDIATE`` for the same effect.
"""

from __future__ import annotations

import datetime
import decimal
import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload, sessionmaker

from shop_spine.core.errors import (
    FieldError,
    InsufficientStock,
    InvalidQuantity,
    MissingFields,
    NotFoundError,
    OrderRejected,
    ProductNotFound,
    ValidationError,
)
from shop_spine.core.time import utc_now_naive
from shop_spine.db.engine import write_session
from shop_spine.models import (
    Order,
    OrderItem,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    Product,
    not_deleted,
    on_create,
    on_update,
)
from shop_spine.observability.logging import get_logger, log_context
from shop_spine.observability.metrics import orders_created_counter, orders_rejected_counter

logger = get_logger(__name__)


@dataclass(frozen=True)
class OrderLine:
    product_id: Any
    quantity: Any


@dataclass(frozen=True)
class OrderRequest:
    """Input of :meth:`OrderService.create_order`."""

    items: Sequence[OrderLine] = field(default_factory=tuple)
    shipping_address: Mapping[str, Any] | None = None
    customer_details: Mapping[str, Any] | None = None
    payment_method: PaymentMethod | str | None = None
    notes: str | None = None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> OrderRequest:
        items = tuple(
            OrderLine(product_id=item.get("product_id"), quantity=item.get("quantity"))
            for item in payload.get("items") or ()
        )
        return cls(
            items=items,
            shipping_address=payload.get("shipping_address"),
            customer_details=payload.get("customer_details"),
            payment_method=payload.get("payment_method"),
            notes=payload.get("notes"),
        )

    def missing_fields(self) -> list[str]:
        missing = []
        if not self.items:
            missing.append("items")
        if not self.shipping_address:
            missing.append("shipping_address")
        if not self.customer_details:
            missing.append("customer_details")
        if not self.payment_method:
            missing.append("payment_method")
        return missing


@dataclass(frozen=True)
class _ValidLine:
    product_id: uuid.UUID
    quantity: int


def generate_order_number(now: datetime.datetime) -> str:
    return f"ORD-{now:%Y%m%d%H%M%S}-{uuid.uuid4().hex[:8].upper()}"


def _validate(request: OrderRequest) -> tuple[list[_ValidLine], PaymentMethod]:
    missing = request.missing_fields()
    if missing:
        raise MissingFields(missing)

    try:
        payment_method = PaymentMethod(request.payment_method)
    except ValueError:
        raise ValidationError(
            f"Invalid payment method: {request.payment_method}",
            errors=[FieldError("payment_method", "Unsupported payment method")],
        ) from None

    lines = []
    for line in request.items:
        if line.product_id is None or line.quantity is None:
            raise MissingFields([name for name in ("product_id", "quantity") if getattr(line, name) is None])
        if not isinstance(line.quantity, int) or isinstance(line.quantity, bool) or line.quantity < 1:
            raise InvalidQuantity(line.product_id, line.quantity)
        try:
            product_id = line.product_id if isinstance(line.product_id, uuid.UUID) else uuid.UUID(str(line.product_id))
        except ValueError:
            # An id that cannot be a UUID cannot name a product
            raise ProductNotFound(line.product_id) from None
        lines.append(_ValidLine(product_id=product_id, quantity=line.quantity))

    seen: set[uuid.UUID] = set()
    for valid in lines:
        if valid.product_id in seen:
            raise ValidationError(
                f"Duplicate product in order: {valid.product_id}",
                errors=[FieldError("items", "Each product may appear only once")],
            )
        seen.add(valid.product_id)
    return lines, payment_method


class OrderService:
    """Order writes and reads over one session factory."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    # ------------------------------------------------------------------ #
    # Placement
    # ------------------------------------------------------------------ #

    def create_order(self, request: OrderRequest | Mapping[str, Any]) -> Order:
        """Place an order atomically and return it re-read with its items.

        Raises:
            MissingFields: items, shipping address, customer details or
                payment method absent
            ProductNotFound: an item names a missing or soft-deleted product
            InsufficientStock: a product has less stock than requested
        """
        if not isinstance(request, OrderRequest):
            request = OrderRequest.from_dict(request)
        with log_context(operation="create_order", lines=len(request.items)):
            try:
                lines, payment_method = _validate(request)
                with write_session(self._session_factory) as session:
                    order = self._place(session, request, lines, payment_method)
            except OrderRejected as e:
                orders_rejected_counter.labels(reason=type(e).__name__).inc()
                logger.warning("order_rejected", reason=type(e).__name__, error=e.message, **e.context)
                raise

            orders_created_counter.inc()
            logger.info(
                "order_created",
                order_id=str(order.id),
                order_number=order.order_number,
                total_amount=str(order.total_amount),
            )
        return self.get_order(order.id)

    def _place(
        self,
        session: Session,
        request: OrderRequest,
        lines: list[_ValidLine],
        payment_method: PaymentMethod,
    ) -> Order:
        now = utc_now_naive()
        total_amount = decimal.Decimal("0")
        items: list[OrderItem] = []

        # Items stay transient until session.add(order) cascades them in
        with session.no_autoflush:
            for line in lines:
                product = session.scalar(
                    select(Product)
                    .where(Product.id == line.product_id, not_deleted(Product))
                    .with_for_update()
                )
                if product is None:
                    raise ProductNotFound(line.product_id)
                if product.stock < line.quantity:
                    raise InsufficientStock(product.name, available=product.stock, requested=line.quantity)

                unit_price = product.price
                line_total = unit_price * line.quantity
                total_amount += line_total

                # Relative decrement: UPDATE products SET stock = stock - :q
                product.stock = Product.stock - line.quantity
                on_update(product, now=now)

                item = OrderItem(
                    product=product,
                    quantity=line.quantity,
                    unit_price=unit_price,
                    total_price=line_total,
                    discount=decimal.Decimal("0"),
                )
                items.append(on_create(item, now=now))

        order = Order(
            order_number=generate_order_number(now),
            status=OrderStatus.PENDING,
            total_amount=total_amount,
            shipping_address=dict(request.shipping_address),
            customer_details=dict(request.customer_details),
            payment_method=payment_method,
            payment_status=PaymentStatus.PENDING,
            order_date=now,
            notes=request.notes,
            items=items,
        )
        on_create(order, now=now)
        session.add(order)
        session.flush()
        return order

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #

    @staticmethod
    def _with_items():
        return selectinload(Order.items).selectinload(OrderItem.product)

    def get_order(self, order_id: uuid.UUID) -> Order:
        """Load one order with its items and their products."""
        with self._session_factory() as session:
            order = session.scalar(select(Order).where(Order.id == order_id).options(self._with_items()))
            if order is None:
                raise NotFoundError("Order", order_id)
            return order

    def search_orders(self, *, city: str | None = None) -> list[Order]:
        """Orders, newest first, optionally shipped to *city*."""
        stmt = select(Order).options(self._with_items()).order_by(Order.order_date.desc())
        if city:
            stmt = stmt.where(Order.shipping_address["city"].as_string() == city)
        with self._session_factory() as session:
            return list(session.scalars(stmt).all())

    def order_stats(
        self,
        *,
        start: datetime.datetime | None = None,
        end: datetime.datetime | None = None,
        city: str | None = None,
    ) -> list[dict[str, Any]]:
        """Per-day order count and revenue."""
        day = func.date(Order.order_date)
        stmt = (
            select(
                day.label("date"),
                func.count(Order.id).label("order_count"),
                func.sum(Order.total_amount).label("total_revenue"),
            )
            .group_by(day)
            .order_by(day)
        )
        if start is not None:
            stmt = stmt.where(Order.order_date >= start)
        if end is not None:
            stmt = stmt.where(Order.order_date <= end)
        if city:
            stmt = stmt.where(Order.shipping_address["city"].as_string() == city)

        with self._session_factory() as session:
            return [
                {
                    "date": str(row.date),
                    "order_count": row.order_count,
                    "total_revenue": decimal.Decimal(row.total_revenue or 0),
                }
                for row in session.execute(stmt)
            ]

    def sales_analysis(self, *, limit: int = 10) -> list[dict[str, Any]]:
        """Best-selling products by quantity, with revenue."""
        total_quantity = func.sum(OrderItem.quantity)
        stmt = (
            select(
                OrderItem.product_id,
                total_quantity.label("total_quantity"),
                func.sum(OrderItem.total_price).label("total_revenue"),
                func.avg(OrderItem.discount).label("average_discount"),
                Product.name,
                Product.category,
                Product.brand,
            )
            .join(Product, OrderItem.product_id == Product.id)
            .group_by(OrderItem.product_id, Product.name, Product.category, Product.brand)
            .order_by(total_quantity.desc())
            .limit(limit)
        )
        with self._session_factory() as session:
            return [
                {
                    "product_id": str(row.product_id),
                    "total_quantity": int(row.total_quantity),
                    "total_revenue": decimal.Decimal(row.total_revenue or 0),
                    "average_discount": decimal.Decimal(str(row.average_discount or 0)),
                    "product": {"name": row.name, "category": row.category, "brand": row.brand},
                }
                for row in session.execute(stmt)
            ]
