"""Scope coverage and reference normalization."""

import uuid
from types import SimpleNamespace

import pytest

from furnilink.core.errors import InvalidScopeError
from furnilink.services.scope_evaluator import (
    ProductRef,
    covers,
    normalize_category_ref,
    normalize_product_ref,
    normalize_scope,
    validate_scope,
)


PRODUCT_ID = uuid.uuid4()


def edge(scope, categories=(), products=()):
    return SimpleNamespace(scope=scope, categories=list(categories), products=list(products))


def product(category="sofa", product_id=PRODUCT_ID):
    return ProductRef(product_id=str(product_id), category=category)


class TestCategoryReferences:

    def test_plain_string(self):
        assert normalize_category_ref(" sofa ") == "sofa"

    def test_embedded_object_with_id(self):
        assert normalize_category_ref({"id": "sofa", "name": "Sofas"}) == "sofa"

    def test_legacy_underscore_id(self):
        assert normalize_category_ref({"_id": "sofa"}) == "sofa"

    def test_orm_like_object(self):
        assert normalize_category_ref(SimpleNamespace(id="sofa")) == "sofa"

    def test_uuid(self):
        category_id = uuid.uuid4()
        assert normalize_category_ref(category_id) == str(category_id)

    def test_none_is_absent(self):
        assert normalize_category_ref(None) is None

    def test_object_without_id_is_invalid(self):
        with pytest.raises(InvalidScopeError):
            normalize_category_ref({"name": "Sofas"})

    def test_unsupported_type_is_invalid(self):
        with pytest.raises(InvalidScopeError):
            normalize_category_ref(42)


class TestScopeNames:

    def test_case_insensitive(self):
        assert normalize_scope("category") == "CATEGORY"

    def test_legacy_alias(self):
        assert normalize_scope("specific") == "PRODUCTS"

    def test_unknown_scope(self):
        with pytest.raises(InvalidScopeError):
            normalize_scope("EVERYTHING")


class TestValidateScope:

    def test_all_drops_lists(self):
        assert validate_scope("all", ["sofa"], [PRODUCT_ID]) == ("ALL", [], [])

    def test_category_requires_categories(self):
        with pytest.raises(InvalidScopeError):
            validate_scope("CATEGORY", [], [PRODUCT_ID])

    def test_products_requires_products(self):
        with pytest.raises(InvalidScopeError):
            validate_scope("PRODUCTS", ["sofa"], [])

    def test_mixed_keeps_both_and_dedupes(self):
        scope, categories, products = validate_scope(
            "MIXED", ["sofa", {"id": "sofa"}], [str(PRODUCT_ID).upper()]
        )
        assert scope == "MIXED"
        assert categories == ["sofa"]
        assert products == [normalize_product_ref(PRODUCT_ID)]


class TestCovers:

    def test_all_covers_everything(self):
        assert covers(edge("ALL"), product(category=None))

    def test_category_scope(self):
        scoped = edge("CATEGORY", categories=[{"_id": "sofa"}])
        assert covers(scoped, product("sofa"))
        assert not covers(scoped, product("table"))

    def test_category_scope_without_product_category(self):
        assert not covers(edge("CATEGORY", categories=["sofa"]), product(category=None))

    def test_product_scope(self):
        scoped = edge("PRODUCTS", products=[str(PRODUCT_ID)])
        assert covers(scoped, product())
        assert not covers(scoped, product(product_id=uuid.uuid4()))

    def test_product_scope_ignores_category(self):
        scoped = edge("PRODUCTS", categories=["sofa"], products=[str(uuid.uuid4())])
        assert not covers(scoped, product("sofa"))

    def test_mixed_scope_is_either(self):
        scoped = edge("MIXED", categories=["bed"], products=[str(PRODUCT_ID)])
        assert covers(scoped, product("sofa"))
        assert covers(scoped, ProductRef(product_id=str(uuid.uuid4()), category="bed"))
        assert not covers(scoped, ProductRef(product_id=str(uuid.uuid4()), category="sofa"))

    def test_legacy_scope_name_on_stored_edge(self):
        assert covers(edge("specific", products=[str(PRODUCT_ID)]), product())
