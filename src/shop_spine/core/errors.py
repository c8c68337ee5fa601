"""
Structured error types for Shop Spine.

Every failure the data layer raises on purpose is a ``ShopSpineError``
subclass carrying:

- **Category:** What kind of error (database, validation, order, ...)
- **Status code:** The HTTP-style status class the caller should surface
- **Retryable / retry_after:** Whether and when the operation may be retried
- **Field errors:** ``[{field, message}]`` pairs for validation failures
- **Cause:** Chained underlying exception for root cause analysis

Architecture:
    ::

        ShopSpineError
        ├── TransientError (retryable)
        │   └── DatabaseConnectionError (503)
        │       └── ConnectionExhausted
        ├── HealthCheckFailed (503)
        ├── ValidationError (400)
        │   ├── MissingFields
        │   ├── InvalidQuantity
        │   └── InvalidQueryError
        │       ├── InvalidOperator
        │       ├── InvalidFilterField
        │       ├── InvalidOrderField
        │       ├── InvalidOrderDirection
        │       └── InvalidPagination
        ├── OrderRejected (400)
        │   ├── ProductNotFound
        │   └── InsufficientStock
        └── NotFoundError (404)

Messages of these errors are written by this package and are safe to show
to callers. Raw driver exceptions never are; see
:mod:`shop_spine.db.classifier`.

Usage:
    from shop_spine.core.errors import InsufficientStock

    if product.stock < quantity:
        raise InsufficientStock(product.name, available=product.stock, requested=quantity)
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    DATABASE = "DATABASE"  # Connection pool, authentication, health
    VALIDATION = "VALIDATION"  # Bad input, constraint violations
    QUERY = "QUERY"  # Rejected dynamic query input
    ORDER = "ORDER"  # Order placement rejected
    NOT_FOUND = "NOT_FOUND"
    INTERNAL = "INTERNAL"  # Bugs, unexpected state


@dataclass(frozen=True)
class FieldError:
    """A single field-level problem."""

    field: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"field": self.field, "message": self.message}


class ShopSpineError(Exception):
    """Base exception for all Shop Spine errors.

    Subclasses set ``default_category``, ``default_retryable`` and
    ``status_code`` class attributes to provide defaults for their domain.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False
    status_code: int = 500

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        retry_after: int | None = None,
        errors: list[FieldError] | None = None,
        cause: Exception | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.retry_after = retry_after
        self.errors = list(errors or [])
        self.cause = cause
        self.context = dict(context or {})

        if cause is not None:
            self.__cause__ = cause

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for logging."""
        result: dict[str, Any] = {
            "error_type": type(self).__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
            "status_code": self.status_code,
        }
        if self.retry_after is not None:
            result["retry_after"] = self.retry_after
        if self.errors:
            result["errors"] = [e.to_dict() for e in self.errors]
        if self.context:
            result["context"] = self.context
        if self.cause is not None:
            result["cause"] = f"{type(self.cause).__name__}: {self.cause}"
        return result

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONNECTION ERRORS
# =============================================================================


class TransientError(ShopSpineError):
    """Temporary failure; the same call may succeed later."""

    default_category = ErrorCategory.DATABASE
    default_retryable = True
    status_code = 503


class DatabaseConnectionError(TransientError):
    """The database could not be reached or authenticated against."""

    DEFAULT_RETRY_AFTER = 30

    def __init__(self, message: str = "Database connection error", **kwargs: Any):
        kwargs.setdefault("retry_after", self.DEFAULT_RETRY_AFTER)
        super().__init__(message, **kwargs)


class ConnectionExhausted(DatabaseConnectionError):
    """Every connect attempt failed; fatal to startup."""

    def __init__(self, attempts: int, *, cause: Exception | None = None):
        super().__init__(
            f"Failed to connect to database after {attempts} attempts",
            cause=cause,
            context={"attempts": attempts},
        )
        self.attempts = attempts


class HealthCheckFailed(ShopSpineError):
    """The liveness probe did not round-trip."""

    default_category = ErrorCategory.DATABASE
    status_code = 503

    def __init__(self, message: str = "Database health check failed", **kwargs: Any):
        super().__init__(message, **kwargs)


# =============================================================================
# VALIDATION ERRORS
# =============================================================================


class ValidationError(ShopSpineError):
    """Input failed validation; never retryable."""

    default_category = ErrorCategory.VALIDATION
    status_code = 400


class MissingFields(ValidationError):
    """Required order fields are absent or empty."""

    def __init__(self, fields: list[str]):
        super().__init__(
            "Missing required fields",
            errors=[FieldError(name, "Is required") for name in fields],
        )
        self.fields = list(fields)


class InvalidQuantity(ValidationError):
    """A requested quantity is not a positive integer."""

    def __init__(self, product_id: Any, quantity: Any):
        super().__init__(
            f"Quantity must be at least 1 for product {product_id}",
            errors=[FieldError("quantity", "Must be at least 1")],
            context={"product_id": str(product_id), "quantity": quantity},
        )


class InvalidQueryError(ValidationError):
    """Dynamic query input rejected before reaching the database."""

    default_category = ErrorCategory.QUERY


class InvalidOperator(InvalidQueryError):
    def __init__(self, operator: str):
        super().__init__(
            f"Invalid operator: {operator}",
            errors=[FieldError("operator", f"Unsupported operator {operator!r}")],
        )
        self.operator = operator


class InvalidFilterField(InvalidQueryError):
    def __init__(self, field: str):
        super().__init__(
            f"Invalid filter field: {field}",
            errors=[FieldError(field, "Unknown field")],
        )
        self.field = field


class InvalidOrderField(InvalidQueryError):
    def __init__(self, field: str):
        super().__init__(
            f"Invalid order field: {field}",
            errors=[FieldError("order_by", f"Cannot order by {field!r}")],
        )
        self.field = field


class InvalidOrderDirection(InvalidQueryError):
    def __init__(self, direction: str):
        super().__init__(
            f"Invalid order direction: {direction}",
            errors=[FieldError("order_by", "Direction must be ASC or DESC")],
        )
        self.direction = direction


class InvalidPagination(InvalidQueryError):
    def __init__(self, field: str, value: Any):
        super().__init__(
            f"Invalid {field}: {value}",
            errors=[FieldError(field, "Must be an integer of at least 1")],
        )


# =============================================================================
# ORDER ERRORS
# =============================================================================


class OrderRejected(ShopSpineError):
    """Order placement refused; the transaction was rolled back."""

    default_category = ErrorCategory.ORDER
    status_code = 400


class ProductNotFound(OrderRejected):
    def __init__(self, product_id: Any):
        super().__init__(
            f"Product not found: {product_id}",
            errors=[FieldError("product_id", "Product not found")],
            context={"product_id": str(product_id)},
        )
        self.product_id = product_id


class InsufficientStock(OrderRejected):
    def __init__(self, product_name: str, *, available: int, requested: int):
        super().__init__(
            f"Insufficient stock for product: {product_name}",
            errors=[FieldError("quantity", f"Only {available} left in stock")],
            context={"available": available, "requested": requested},
        )
        self.product_name = product_name
        self.available = available
        self.requested = requested


# =============================================================================
# LOOKUPS
# =============================================================================


class NotFoundError(ShopSpineError):
    """A catalog or order lookup found nothing."""

    default_category = ErrorCategory.NOT_FOUND
    status_code = 404

    def __init__(self, entity: str, identifier: Any):
        super().__init__(f"{entity} not found", context={"id": str(identifier)})
        self.entity = entity
        self.identifier = identifier
