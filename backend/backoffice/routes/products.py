# Overview: Flask API routes for catalog operations (products and categories); parses input and returns JSON responses.

# backend/backoffice/routes/products.py
"""
Catalog routes.

Products carry a unique SKU and an optional category; a product without a
category reports as "Uncategorized" everywhere (order lines, category
performance).
"""
from flask import Blueprint, request

from ..models import Category, Product
from ..services import catalog_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
    ValidationError,
)

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"sku", "name", "description", "price", "category_id"},
    required_on_create={"sku", "name"},
)

CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields={"name"},
    required_on_create={"name"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")
categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")


# =============================================================================
# PRODUCTS
# =============================================================================

@products_bp.get("")
def list_products():
    """
    List products with optional filters and pagination.

    Query params:
    - category_id: int (optional)
    - q: str (optional) - substring of name or SKU
    - page: int (optional) - page number (1-indexed). If omitted, returns all items.
    - per_page: int (optional) - items per page (default 20, max 100)
    """
    return catalog_service.list_products(
        category_id=request.args.get("category_id", type=int),
        search=request.args.get("q"),
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )


@products_bp.post("")
def create_product():
    payload = request.get_json(silent=True)
    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    product = catalog_service.create_product(patch=patch)
    return product.to_dict(), 201


@products_bp.get("/<int:product_id>")
def get_product(product_id: int):
    return catalog_service.get_product(product_id).to_dict()


@products_bp.put("/<int:product_id>")
def update_product(product_id: int):
    payload = request.get_json(silent=True)
    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    return catalog_service.update_product(product_id, patch).to_dict()


@products_bp.delete("/<int:product_id>")
def delete_product(product_id: int):
    return {"deleted": catalog_service.delete_product(product_id)}


# =============================================================================
# CATEGORIES
# =============================================================================

@categories_bp.get("")
def list_categories():
    categories = catalog_service.list_categories()
    return {"items": [c.to_dict() for c in categories], "count": len(categories)}


@categories_bp.post("")
def create_category():
    payload = request.get_json(silent=True)
    try:
        patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=False)
    except ValidationError as e:
        return {"error": str(e)}, 400

    return catalog_service.create_category(patch=patch).to_dict(), 201


@categories_bp.put("/<int:category_id>")
def update_category(category_id: int):
    payload = request.get_json(silent=True)
    try:
        patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=True)
    except ValidationError as e:
        return {"error": str(e)}, 400

    return catalog_service.update_category(category_id, patch).to_dict()


@categories_bp.delete("/<int:category_id>")
def delete_category(category_id: int):
    return {"deleted": catalog_service.delete_category(category_id)}
