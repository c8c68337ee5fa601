"""Tests for shop_spine.core.errors module."""

import pytest

from shop_spine.core.errors import (
    ConnectionExhausted,
    DatabaseConnectionError,
    ErrorCategory,
    FieldError,
    HealthCheckFailed,
    InsufficientStock,
    InvalidOperator,
    InvalidQueryError,
    MissingFields,
    NotFoundError,
    OrderRejected,
    ProductNotFound,
    ShopSpineError,
    TransientError,
    ValidationError,
)


class TestShopSpineError:
    def test_defaults(self):
        err = ShopSpineError("boom")
        assert err.message == "boom"
        assert err.category == ErrorCategory.INTERNAL
        assert err.retryable is False
        assert err.status_code == 500
        assert err.errors == []

    def test_cause_is_chained(self):
        cause = RuntimeError("low level")
        err = ShopSpineError("wrapped", cause=cause)
        assert err.__cause__ is cause
        assert "RuntimeError: low level" in err.to_dict()["cause"]

    def test_to_dict_includes_field_errors(self):
        err = ValidationError("bad", errors=[FieldError("name", "Is required")])
        data = err.to_dict()
        assert data["status_code"] == 400
        assert data["errors"] == [{"field": "name", "message": "Is required"}]


class TestConnectionErrors:
    def test_connection_error_is_transient(self):
        err = DatabaseConnectionError()
        assert isinstance(err, TransientError)
        assert err.retryable is True
        assert err.status_code == 503
        assert err.category == ErrorCategory.DATABASE

    def test_exhausted_records_attempts(self):
        cause = OSError("refused")
        err = ConnectionExhausted(5, cause=cause)
        assert isinstance(err, DatabaseConnectionError)
        assert err.attempts == 5
        assert err.__cause__ is cause

    def test_health_check_failed_is_503(self):
        assert HealthCheckFailed().status_code == 503


class TestOrderErrors:
    def test_product_not_found_message(self):
        err = ProductNotFound("abc")
        assert isinstance(err, OrderRejected)
        assert err.message == "Product not found: abc"
        assert err.status_code == 400

    def test_insufficient_stock_message(self):
        err = InsufficientStock("Laptop", available=2, requested=3)
        assert err.message == "Insufficient stock for product: Laptop"
        assert err.context == {"available": 2, "requested": 3}

    def test_missing_fields_lists_each_field(self):
        err = MissingFields(["items", "payment_method"])
        assert err.fields == ["items", "payment_method"]
        assert [e.field for e in err.errors] == ["items", "payment_method"]
        assert {e.message for e in err.errors} == {"Is required"}


class TestQueryErrors:
    def test_invalid_operator_is_validation_error(self):
        err = InvalidOperator("between")
        assert isinstance(err, InvalidQueryError)
        assert isinstance(err, ValidationError)
        assert err.message == "Invalid operator: between"
        assert err.category == ErrorCategory.QUERY

    def test_not_found_is_404(self):
        err = NotFoundError("Order", "42")
        assert err.status_code == 404
        assert err.message == "Order not found"


@pytest.mark.parametrize(
    "error_cls",
    [MissingFields, ProductNotFound, InvalidOperator],
)
def test_client_errors_are_not_retryable(error_cls):
    err = error_cls(["x"]) if error_cls is MissingFields else error_cls("x")
    assert err.retryable is False
