"""Domain services built on the database layer."""

from shop_spine.services.catalog import ProductCatalog
from shop_spine.services.orders import OrderLine, OrderRequest, OrderService, generate_order_number

__all__ = [
    "ProductCatalog",
    "OrderService",
    "OrderRequest",
    "OrderLine",
    "generate_order_number",
]
