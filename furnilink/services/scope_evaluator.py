"""
Scope Evaluator

Decides whether an authorization edge's scope covers a product.

Category references show up in three shapes depending on who wrote
them: a bare id string, an embedded object ({"id": ...} or the legacy
{"_id": ...}) or an ORM-like object with an ``id`` attribute. All of them
are normalized to the id string before comparison.
"""
import uuid
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Tuple

from furnilink.core.errors import InvalidScopeError
from furnilink.models.authorization import AuthorizationScope


# Older clients send these names
SCOPE_ALIASES = {
    "SPECIFIC": AuthorizationScope.PRODUCTS.value,
    "PRODUCT": AuthorizationScope.PRODUCTS.value,
}


def normalize_category_ref(ref: Any) -> Optional[str]:
    """
    Reduce a category reference to its id string.

    Returns None for an absent reference, raises InvalidScopeError for a
    reference that has no usable id.
    """
    if ref is None:
        return None
    if isinstance(ref, uuid.UUID):
        return str(ref)
    if isinstance(ref, str):
        return ref.strip() or None
    if isinstance(ref, dict):
        inner = ref.get("id") if ref.get("id") is not None else ref.get("_id")
        if inner is None or isinstance(inner, (dict, list)):
            raise InvalidScopeError("Category reference has no id", {"reference": str(ref)})
        return normalize_category_ref(inner)
    if hasattr(ref, "id"):
        return normalize_category_ref(getattr(ref, "id"))
    raise InvalidScopeError(
        "Unsupported category reference",
        {"reference": repr(ref), "type": type(ref).__name__},
    )


def normalize_product_ref(ref: Any) -> Optional[str]:
    """Product ids are UUIDs; compare them in canonical lower-case form."""
    if ref is None:
        return None
    if isinstance(ref, dict):
        ref = ref.get("id") if ref.get("id") is not None else ref.get("_id")
    elif not isinstance(ref, (str, uuid.UUID)) and hasattr(ref, "id"):
        ref = ref.id
    if ref is None or isinstance(ref, (dict, list)):
        raise InvalidScopeError("Product reference has no id")
    value = str(ref).strip().lower()
    return value or None


@dataclass(frozen=True)
class ProductRef:
    """The parts of a catalog product the resolver needs."""
    product_id: str
    manufacturer_id: Optional[uuid.UUID] = None
    category: Any = None

    @property
    def category_id(self) -> Optional[str]:
        return normalize_category_ref(self.category)

    @classmethod
    def from_product(cls, product) -> "ProductRef":
        return cls(
            product_id=normalize_product_ref(product.id),
            manufacturer_id=product.manufacturer_id,
            category=product.category_id,
        )


def normalize_scope(scope: Any) -> str:
    """Upper-case a scope value and map legacy aliases."""
    if isinstance(scope, AuthorizationScope):
        return scope.value
    if not isinstance(scope, str) or not scope.strip():
        raise InvalidScopeError("Scope is required", {"scope": scope})
    value = scope.strip().upper()
    value = SCOPE_ALIASES.get(value, value)
    if value not in {s.value for s in AuthorizationScope}:
        raise InvalidScopeError(f"Unknown scope '{scope}'", {"scope": scope})
    return value


def validate_scope(
    scope: Any,
    categories: Optional[Iterable[Any]] = None,
    products: Optional[Iterable[Any]] = None,
) -> Tuple[str, List[str], List[str]]:
    """
    Normalize a scope definition before it is stored.

    Lists are only kept when the scope uses them; CATEGORY needs at least
    one category, PRODUCTS at least one product, MIXED at least one of
    either.
    """
    scope_value = normalize_scope(scope)
    category_ids = _dedupe(normalize_category_ref(c) for c in (categories or []))
    product_ids = _dedupe(normalize_product_ref(p) for p in (products or []))

    if scope_value == AuthorizationScope.ALL.value:
        return scope_value, [], []
    if scope_value == AuthorizationScope.CATEGORY.value:
        if not category_ids:
            raise InvalidScopeError("Category scope requires at least one category")
        return scope_value, category_ids, []
    if scope_value == AuthorizationScope.PRODUCTS.value:
        if not product_ids:
            raise InvalidScopeError("Products scope requires at least one product")
        return scope_value, [], product_ids
    if not category_ids and not product_ids:
        raise InvalidScopeError("Mixed scope requires categories or products")
    return scope_value, category_ids, product_ids


def covers(edge, product: ProductRef) -> bool:
    """
    True when the edge's scope includes the product.

    A product outside the scope is not an error; the edge simply does not
    apply to it.
    """
    scope = normalize_scope(edge.scope)
    if scope == AuthorizationScope.ALL.value:
        return True

    in_categories = False
    in_products = False
    if scope in (AuthorizationScope.CATEGORY.value, AuthorizationScope.MIXED.value):
        category_id = product.category_id
        if category_id is not None:
            allowed = {normalize_category_ref(c) for c in (edge.categories or [])}
            in_categories = category_id in allowed
    if scope in (AuthorizationScope.PRODUCTS.value, AuthorizationScope.MIXED.value):
        product_id = normalize_product_ref(product.product_id)
        allowed = {normalize_product_ref(p) for p in (edge.products or [])}
        in_products = product_id in allowed

    if scope == AuthorizationScope.CATEGORY.value:
        return in_categories
    if scope == AuthorizationScope.PRODUCTS.value:
        return in_products
    return in_categories or in_products


def _dedupe(values: Iterable[Optional[str]]) -> List[str]:
    seen = []
    for value in values:
        if value and value not in seen:
            seen.append(value)
    return seen
