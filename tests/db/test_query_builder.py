"""Tests for shop_spine.db.query_builder - allow-listed filters and ordering."""

import pytest
from sqlalchemy import select
from sqlalchemy.sql.elements import True_

from shop_spine.core.errors import (
    InvalidFilterField,
    InvalidOperator,
    InvalidOrderDirection,
    InvalidOrderField,
)
from shop_spine.db.query_builder import (
    Condition,
    FilterOperator,
    build_where_clause,
    create_secure_query,
    sanitize_order,
)
from shop_spine.models import Product


def _sql(clause) -> str:
    return str(select(Product.id).where(clause).compile())


class TestBuildWhereClause:
    def test_scalar_is_equality(self):
        sql = _sql(build_where_clause(Product, {"category": "electronics"}))
        assert "products.category = :category_1" in sql

    def test_none_is_null_check(self):
        sql = _sql(build_where_clause(Product, {"deleted_at": None}))
        assert "products.deleted_at IS NULL" in sql

    @pytest.mark.parametrize(
        "operator,fragment",
        [
            ("eq", "products.price = :price_1"),
            ("gt", "products.price > :price_1"),
            ("lt", "products.price < :price_1"),
            ("like", "products.price LIKE :price_1"),
        ],
    )
    def test_supported_operators(self, operator, fragment):
        assert fragment in _sql(build_where_clause(Product, {"price": {operator: 10}}))

    def test_several_operators_are_anded(self):
        sql = _sql(build_where_clause(Product, {"price": {"gt": 10, "lt": 50}}))
        assert "products.price > :price_1 AND products.price < :price_2" in sql

    def test_condition_object(self):
        clause = build_where_clause(Product, {"name": Condition(FilterOperator.LIKE, "%Pro%")})
        assert "products.name LIKE :name_1" in _sql(clause)

    def test_values_are_bound_not_inlined(self):
        payload = "'; DROP TABLE products; --"
        clause = build_where_clause(Product, {"name": payload})
        compiled = select(Product.id).where(clause).compile()
        assert payload not in str(compiled)
        assert payload in compiled.params.values()

    def test_empty_filters_match_everything(self):
        assert isinstance(build_where_clause(Product, {}), True_)

    def test_unknown_operator_rejected(self):
        with pytest.raises(InvalidOperator) as exc_info:
            build_where_clause(Product, {"price": {"between": [1, 2]}})
        assert exc_info.value.message == "Invalid operator: between"

    def test_operator_injection_rejected(self):
        with pytest.raises(InvalidOperator):
            build_where_clause(Product, {"price": {"> 0 OR 1=1 --": 1}})

    def test_empty_condition_mapping_rejected(self):
        with pytest.raises(InvalidOperator):
            build_where_clause(Product, {"price": {}})

    @pytest.mark.parametrize("field", ["nope", "name; DROP TABLE products", "order_items"])
    def test_unknown_field_rejected(self, field):
        with pytest.raises(InvalidFilterField):
            build_where_clause(Product, {field: 1})


class TestSanitizeOrder:
    @pytest.mark.parametrize(
        "order_by,expected",
        [
            ("createdAt DESC", [("created_at", "DESC")]),
            ("updatedAt asc", [("updated_at", "ASC")]),
            ("id", [("id", "ASC")]),
            ("created_at desc", [("created_at", "DESC")]),
        ],
    )
    def test_valid(self, order_by, expected):
        assert sanitize_order(order_by) == expected

    @pytest.mark.parametrize("order_by", ["price DESC", "name", "", "createdAt DESC extra"])
    def test_invalid_field(self, order_by):
        with pytest.raises(InvalidOrderField):
            sanitize_order(order_by)

    @pytest.mark.parametrize("order_by", ["createdAt SIDEWAYS", "id DESC;DROP"])
    def test_invalid_direction(self, order_by):
        with pytest.raises(InvalidOrderDirection):
            sanitize_order(order_by)


class TestCreateSecureQuery:
    def test_translates_filters_and_order(self):
        query = create_secure_query(
            Product,
            {"filters": {"price": {"lt": 100}}, "order_by": "createdAt desc", "page": 2},
        )
        assert query["order"] == [("created_at", "DESC")]
        assert query["page"] == 2
        assert "filters" not in query
        assert "order_by" not in query
        assert "products.price < :price_1" in _sql(query["where"])

    def test_passes_other_options_through(self):
        query = create_secure_query(Product, {"page_size": 5, "options": ()})
        assert query == {"page_size": 5, "options": ()}

    def test_rejects_before_building(self):
        with pytest.raises(InvalidOperator):
            create_secure_query(Product, {"filters": {"price": {"gte": 1}}})
