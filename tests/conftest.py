"""
Shared pytest fixtures and configuration for shop-spine tests.

This module provides:
- A file-backed SQLite engine per test with every table created
- Session factory and service fixtures bound to that engine
- Sample products, shipping address and customer details

SQLite files (not ``:memory:``) are used so that pooled connections opened
from different threads see the same database.
"""

import os
import sys
from pathlib import Path
from typing import Generator

import pytest
import structlog

# Ensure shop_spine package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

os.environ.setdefault("LOG_LEVEL", "WARNING")

from shop_spine.db.engine import create_shop_engine, shop_session_factory
from shop_spine.models import Product, ShopBase
from shop_spine.services import OrderService, ProductCatalog

# Route structlog through stdlib logging (captured by pytest) without
# caching loggers, so structlog.testing.capture_logs keeps working.
structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=False,
)


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
def db_url(tmp_path: Path) -> str:
    return f"sqlite:///{tmp_path / 'shop.db'}"


@pytest.fixture
def engine(db_url: str):
    engine = create_shop_engine(db_url)
    ShopBase.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return shop_session_factory(engine)


@pytest.fixture
def session(session_factory) -> Generator:
    with session_factory() as session:
        yield session


# =============================================================================
# Service Fixtures
# =============================================================================


@pytest.fixture
def catalog(session_factory) -> ProductCatalog:
    return ProductCatalog(session_factory)


@pytest.fixture
def orders(session_factory) -> OrderService:
    return OrderService(session_factory)


# =============================================================================
# Sample Data
# =============================================================================


@pytest.fixture
def laptop(catalog: ProductCatalog) -> Product:
    return catalog.add_product(
        name="Laptop Pro 14",
        description="14 inch laptop",
        price="1299.99",
        category="electronics",
        brand="Acme",
        stock=5,
        specifications={"ram": "16GB", "cpu": "8 cores"},
        tags=["laptop", "portable"],
    )


@pytest.fixture
def mouse(catalog: ProductCatalog) -> Product:
    return catalog.add_product(
        name="Wireless Mouse",
        description="Two-button wireless mouse",
        price="25.50",
        category="accessories",
        brand="Acme",
        stock=10,
    )


@pytest.fixture
def shipping_address() -> dict:
    return {"street": "1 Main St", "city": "Springfield", "zip": "12345", "country": "US"}


@pytest.fixture
def customer_details() -> dict:
    return {"name": "Ada Lovelace", "email": "ada@example.com", "phone": "555-0100"}


@pytest.fixture
def order_payload(shipping_address, customer_details):
    """Build a ``create_order`` payload from ``(product, quantity)`` pairs."""

    def _build(*lines, city: str | None = None) -> dict:
        address = dict(shipping_address)
        if city:
            address["city"] = city
        return {
            "items": [{"product_id": product.id, "quantity": qty} for product, qty in lines],
            "shipping_address": address,
            "customer_details": customer_details,
            "payment_method": "creditCard",
        }

    return _build
