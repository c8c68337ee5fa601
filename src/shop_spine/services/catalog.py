"""Product catalog: writes with explicit lifecycle steps, secure listings."""

from __future__ import annotations

import datetime
import decimal
import uuid
from collections.abc import Mapping
from typing import Any

from sqlalchemy import ColumnElement, and_, or_, select
from sqlalchemy.orm import Session, sessionmaker

from shop_spine.core.errors import FieldError, NotFoundError, ValidationError
from shop_spine.db.engine import write_session
from shop_spine.db.pagination import PaginationResult, find_with_pagination
from shop_spine.db.query_builder import create_secure_query
from shop_spine.models import Product, ProductStatus, not_deleted, on_create, on_update, restore, soft_delete
from shop_spine.observability.logging import get_logger

logger = get_logger(__name__)

UPDATABLE_FIELDS = frozenset(
    {"name", "description", "price", "stock", "category", "brand", "specifications", "tags", "status"}
)
DIMENSIONS = ("length", "width", "height")


def _number(field: str, value: Any) -> float:
    try:
        if isinstance(value, bool):
            raise TypeError(field)
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError(
            f"Invalid number for {field}", errors=[FieldError(field, "Must be a number")]
        ) from None


def term_filter(term: str) -> ColumnElement[bool]:
    """Case-insensitive substring match on name or description.

    ``%`` and ``_`` in *term* match literally.
    """
    return or_(
        Product.name.icontains(term, autoescape=True),
        Product.description.icontains(term, autoescape=True),
    )


def specification_filters(
    *,
    min_weight: Any = None,
    max_weight: Any = None,
    color: str | None = None,
    min_dimensions: Mapping[str, Any] | None = None,
) -> list[ColumnElement[bool]]:
    """Conditions on the ``specifications`` document.

    Every value is bound; JSON paths are built by the dialect
    (``->``/``#>>`` on PostgreSQL, ``JSON_EXTRACT`` on SQLite).  Products
    lacking a key never match a condition on it.
    """
    specs = Product.specifications
    conditions: list[ColumnElement[bool]] = []
    if min_weight is not None:
        conditions.append(specs["weight"].as_float() >= _number("min_weight", min_weight))
    if max_weight is not None:
        conditions.append(specs["weight"].as_float() <= _number("max_weight", max_weight))
    if color is not None:
        conditions.append(specs["color"].as_string() == color)
    if min_dimensions:
        unknown = sorted(set(min_dimensions) - set(DIMENSIONS))
        if unknown:
            raise ValidationError(
                "Unknown dimensions",
                errors=[FieldError(f"min_dimensions.{name}", "Unknown dimension") for name in unknown],
            )
        for name, value in min_dimensions.items():
            if value is None:
                continue
            bound = _number(f"min_dimensions.{name}", value)
            conditions.append(specs[("dimensions", name)].as_float() >= bound)
    return conditions


class ProductCatalog:
    """Catalog operations over one session factory."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def add_product(
        self,
        *,
        name: str,
        description: str,
        price: decimal.Decimal | str | int,
        category: str,
        brand: str,
        stock: int = 0,
        specifications: dict[str, Any] | None = None,
        tags: list[str] | None = None,
        status: ProductStatus = ProductStatus.ACTIVE,
        now: datetime.datetime | None = None,
    ) -> Product:
        product = Product(
            name=name,
            description=description,
            price=decimal.Decimal(str(price)),
            stock=stock,
            category=category,
            brand=brand,
            specifications=specifications or {},
            tags=tags or [],
            status=ProductStatus(status),
        )
        on_create(product, now=now)
        with write_session(self._session_factory) as session:
            session.add(product)
        logger.info("product_created", product_id=str(product.id), name=name)
        return product

    def _load(self, session: Session, product_id: uuid.UUID, *, include_deleted: bool) -> Product:
        stmt = select(Product).where(Product.id == product_id)
        if not include_deleted:
            stmt = stmt.where(not_deleted(Product))
        product = session.scalar(stmt)
        if product is None:
            raise NotFoundError("Product", product_id)
        return product

    def get_product(self, product_id: uuid.UUID, *, include_deleted: bool = False) -> Product:
        with self._session_factory() as session:
            return self._load(session, product_id, include_deleted=include_deleted)

    def update_product(self, product_id: uuid.UUID, **changes: Any) -> Product:
        unknown = sorted(set(changes) - UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError(
                "Unknown product fields",
                errors=[FieldError(name, "Unknown field") for name in unknown],
            )
        with write_session(self._session_factory) as session:
            product = self._load(session, product_id, include_deleted=False)
            for key, value in changes.items():
                if key == "price":
                    value = decimal.Decimal(str(value))
                elif key == "status":
                    value = ProductStatus(value)
                setattr(product, key, value)
            on_update(product)
        return product

    def soft_delete(self, product_id: uuid.UUID) -> Product:
        with write_session(self._session_factory) as session:
            product = soft_delete(self._load(session, product_id, include_deleted=False))
        logger.info("product_soft_deleted", product_id=str(product_id))
        return product

    def restore(self, product_id: uuid.UUID) -> Product:
        with write_session(self._session_factory) as session:
            product = restore(self._load(session, product_id, include_deleted=True))
        logger.info("product_restored", product_id=str(product_id))
        return product

    def list_products(
        self,
        *,
        filters: Mapping[str, Any] | None = None,
        order_by: str | None = None,
        page: int = 1,
        page_size: int = 20,
        search: str | None = None,
        include_deleted: bool = False,
    ) -> PaginationResult:
        """List products from untrusted filter/sort input.

        ``search`` matches name or description, case-insensitively.
        """
        query = create_secure_query(
            Product,
            {"filters": filters, "order_by": order_by, "page": page, "page_size": page_size},
        )
        conditions = [query["where"]] if query.get("where") is not None else []
        if search:
            conditions.append(term_filter(search))
        if not include_deleted:
            conditions.append(not_deleted(Product))
        if conditions:
            query["where"] = and_(*conditions)
        return find_with_pagination(self._session_factory, Product, **query)

    def search_products(
        self,
        *,
        term: str | None = None,
        min_weight: float | None = None,
        max_weight: float | None = None,
        color: str | None = None,
        min_dimensions: Mapping[str, float] | None = None,
    ) -> list[Product]:
        """Search live products by text and by ``specifications`` fields.

        Args:
            term: Substring of the name or description, any case.
            min_weight, max_weight: Inclusive bounds on ``specifications.weight``.
            color: Exact ``specifications.color``.
            min_dimensions: Lower bounds on ``specifications.dimensions``,
                keyed by ``length``, ``width`` and ``height``.

        Returns:
            Matching products, newest first. No criteria returns every live product.

        Raises:
            ValidationError: a bound is not a number or a dimension is unknown.
        """
        conditions = specification_filters(
            min_weight=min_weight,
            max_weight=max_weight,
            color=color,
            min_dimensions=min_dimensions,
        )
        if term:
            conditions.append(term_filter(term))

        stmt = select(Product).where(not_deleted(Product), *conditions).order_by(Product.created_at.desc())
        with self._session_factory() as session:
            products = list(session.scalars(stmt).all())
        logger.debug("products_searched", criteria=len(conditions), found=len(products))
        return products
