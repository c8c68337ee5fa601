"""ORM models.  Importing this package registers every table on ``ShopBase.metadata``."""

from shop_spine.models.base import ShopBase, SoftDeleteMixin, TimestampMixin
from shop_spine.models.catalog import Product, ProductStatus
from shop_spine.models.lifecycle import not_deleted, on_create, on_update, restore, soft_delete
from shop_spine.models.orders import Order, OrderItem, OrderStatus, PaymentMethod, PaymentStatus

__all__ = [
    "ShopBase",
    "TimestampMixin",
    "SoftDeleteMixin",
    "Product",
    "ProductStatus",
    "Order",
    "OrderItem",
    "OrderStatus",
    "PaymentMethod",
    "PaymentStatus",
    "on_create",
    "on_update",
    "soft_delete",
    "restore",
    "not_deleted",
]
