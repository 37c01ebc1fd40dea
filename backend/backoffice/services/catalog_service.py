# Overview: Service-layer operations for categories and products (catalog master data).

from __future__ import annotations

from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..models import Category, OrderLine, Product, ReturnLine, StockLedgerEntry
from ..validation import ConflictError, NotFoundError
from .pagination import paginate

PRODUCT_MUTABLE_FIELDS = {"sku", "name", "description", "price", "category_id"}


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


# =============================================================================
# CATEGORIES
# =============================================================================

def get_category(category_id: int) -> Category:
    category = db.session.get(Category, category_id)
    if category is None:
        raise NotFoundError(f"Category {category_id} not found")
    return category


def list_categories() -> list[Category]:
    return db.session.query(Category).order_by(Category.name.asc(), Category.id.asc()).all()


def _ensure_category_name_free(name: str, *, exclude_id: int | None = None) -> None:
    query = db.session.query(Category).filter(Category.name == name)
    if exclude_id is not None:
        query = query.filter(Category.id != exclude_id)
    if query.first() is not None:
        raise ConflictError(f"Category {name!r} already exists")


def create_category(*, patch: dict) -> Category:
    _ensure_category_name_free(patch["name"])
    category = Category(name=patch["name"])
    db.session.add(category)
    db.session.commit()
    return category


def update_category(category_id: int, patch: dict) -> Category:
    category = get_category(category_id)
    if "name" in patch:
        _ensure_category_name_free(patch["name"], exclude_id=category_id)
        category.name = patch["name"]
    db.session.commit()
    return category


def delete_category(category_id: int) -> dict:
    """Delete a category; its products fall back to Uncategorized."""
    category = get_category(category_id)
    snapshot = category.to_dict()
    detached = (
        db.session.query(Product)
        .filter(Product.category_id == category_id)
        .update({Product.category_id: None}, synchronize_session="fetch")
    )
    db.session.delete(category)
    db.session.commit()
    current_app.logger.info("Category %s deleted, %s product(s) now uncategorized", category_id, detached)
    return snapshot


# =============================================================================
# PRODUCTS
# =============================================================================

def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found")
    return product


def list_products(
    *,
    category_id: int | None = None,
    search: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Product listing with optional filters and pagination.

    Returns:
        Dict with 'items', 'count', and pagination metadata if paginated.
    """
    query = db.session.query(Product)
    if category_id is not None:
        query = query.filter(Product.category_id == category_id)
    if search:
        term = f"%{search.strip()}%"
        query = query.filter(or_(Product.name.ilike(term), Product.sku.ilike(term)))
    query = query.order_by(Product.name.asc(), Product.id.asc())
    return paginate(query, page=page, per_page=per_page, serialize=lambda p: p.to_dict())


def _ensure_sku_free(sku: str, *, exclude_id: int | None = None) -> None:
    query = db.session.query(Product).filter(Product.sku == sku)
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    if query.first() is not None:
        raise ConflictError("SKU already exists.")


def create_product(*, patch: dict) -> Product:
    """
    Create a product from a validated patch dict.

    Raises:
        NotFoundError: category_id does not exist
        ConflictError: SKU already exists
    """
    _ensure_sku_free(patch["sku"])
    if patch.get("category_id") is not None:
        get_category(patch["category_id"])

    p = Product()
    apply_product_patch(p, patch)
    db.session.add(p)
    db.session.commit()
    current_app.logger.info("Product created sku=%s name=%s", p.sku, p.name)
    return p


def update_product(product_id: int, patch: dict) -> Product:
    p = get_product(product_id)
    if "sku" in patch:
        _ensure_sku_free(patch["sku"], exclude_id=product_id)
    if patch.get("category_id") is not None:
        get_category(patch["category_id"])
    apply_product_patch(p, patch)
    db.session.commit()
    return p


def delete_product(product_id: int) -> dict:
    """Hard delete, refused while ledger entries or sale/return lines reference the product."""
    p = get_product(product_id)
    for model, label in (
        (StockLedgerEntry, "inventory entries"),
        (OrderLine, "order lines"),
        (ReturnLine, "return lines"),
    ):
        count = db.session.query(model).filter(model.product_id == product_id).count()
        if count:
            raise ConflictError(f"Product {product_id} is referenced by {count} {label}")
    snapshot = p.to_dict()
    db.session.delete(p)
    db.session.commit()
    return snapshot
