# Overview: Service-layer operations for the stock ledger; encapsulates business logic and database work.

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from flask import current_app
from sqlalchemy import func
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..models import OrderLine, Product, StockLedgerEntry
from ..records import LedgerRecord
from ..validation import ConflictError, NotFoundError, ValidationError
from .concurrency import lock_for_update, run_with_retry
from .cost_basis import weighted_average_cost
from .identifier_service import STOCK_ENTRY_PREFIX, new_identifier
"""
Stock ledger invariants (authoritative)

Quantities:
- An entry is created with available_quantity == purchased_quantity.
- available_quantity never goes below 0 and never exceeds purchased_quantity.
- consumed = purchased - available is what sales took out of the entry.

Reconciliation (editing a purchase record):
- delta = new_purchased - old_purchased; new_available = old_available + delta.
  Consumed stock is preserved. A correction that would drive available below
  0 is rejected rather than clamped.

Sales and returns:
- Completing an order debits available stock oldest entry first.
- Accepting a return credits stock newest entry first, only up to each entry's
  consumed quantity, so a product can never get back more than was sold.

Concurrency:
- Writes lock the row (honored outside SQLite) and carry a version counter.
  Callers may pass expected_version; a mismatch, or a concurrent write seen at
  flush time, is a ConflictError. Last-write-wins is never silent.
"""


def _ensure_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found")
    return product


def _get_entry(entry_id: str, *, lock: bool = False) -> StockLedgerEntry:
    query = db.session.query(StockLedgerEntry).filter_by(id=entry_id)
    if lock:
        query = lock_for_update(query)
    entry = query.first()
    if entry is None:
        raise NotFoundError(f"Inventory entry {entry_id} not found")
    return entry


def _validate_quantity_and_price(purchased_quantity: int, purchase_price: Decimal) -> None:
    if purchased_quantity is None or purchased_quantity < 0:
        raise ValidationError("purchased_quantity must be >= 0")
    if purchase_price is None or purchase_price < 0:
        raise ValidationError("purchase_price must be >= 0")


def create_entry(
    *,
    product_id: int,
    purchased_quantity: int,
    purchase_price: Decimal,
    description: str | None = None,
    created_at: datetime | None = None,
) -> StockLedgerEntry:
    """Record a stock intake. All purchased units start out available."""
    _validate_quantity_and_price(purchased_quantity, purchase_price)

    def _op():
        _ensure_product(product_id)
        entry = StockLedgerEntry(
            id=new_identifier(STOCK_ENTRY_PREFIX),
            product_id=product_id,
            purchased_quantity=purchased_quantity,
            available_quantity=purchased_quantity,
            purchase_price=purchase_price,
            description=description,
        )
        if created_at is not None:
            entry.created_at = created_at
        db.session.add(entry)
        db.session.commit()
        current_app.logger.info(
            "Stock received: entry=%s product=%s qty=%s", entry.id, product_id, purchased_quantity
        )
        return entry

    return run_with_retry(_op)


def reconcile_quantity(
    entry_id: str,
    *,
    purchased_quantity: int,
    purchase_price: Decimal,
    product_id: int,
    description: str | None = None,
    expected_version: int | None = None,
) -> StockLedgerEntry:
    """
    Replace the purchase figures of an existing entry.

    Available stock moves by the same delta as purchased stock, so units
    already sold stay sold: P=50, A=42 edited to P'=60 gives A'=52.
    """
    _validate_quantity_and_price(purchased_quantity, purchase_price)

    def _op():
        entry = _get_entry(entry_id, lock=True)
        if expected_version is not None and entry.version_id != expected_version:
            db.session.rollback()
            raise ConflictError(
                f"Inventory entry {entry_id} was modified (version {entry.version_id}, expected {expected_version})"
            )
        if product_id != entry.product_id:
            _ensure_product(product_id)

        delta = purchased_quantity - entry.purchased_quantity
        updated_available = entry.available_quantity + delta
        if updated_available < 0:
            raise ValidationError(
                f"Cannot set purchased_quantity to {purchased_quantity}: "
                f"{entry.consumed_quantity} units were already sold from this entry"
            )

        entry.purchase_price = purchase_price
        entry.product_id = product_id
        entry.purchased_quantity = purchased_quantity
        entry.available_quantity = updated_available
        if description is not None:
            entry.description = description

        try:
            db.session.commit()
        except StaleDataError:
            db.session.rollback()
            current_app.logger.warning("Stale write rejected for inventory entry %s", entry_id)
            raise ConflictError(f"Inventory entry {entry_id} was modified concurrently; reload and retry")
        return entry

    return run_with_retry(_op)


def get_entry(entry_id: str) -> StockLedgerEntry:
    return _get_entry(entry_id)


def list_entries(*, product_id: int | None = None, limit: int | None = None) -> list[StockLedgerEntry]:
    query = db.session.query(StockLedgerEntry)
    if product_id is not None:
        query = query.filter(StockLedgerEntry.product_id == product_id)
    query = query.order_by(StockLedgerEntry.created_at.desc(), StockLedgerEntry.id.asc())
    if limit is not None:
        query = query.limit(limit)
    return query.all()


def ledger_snapshot(*, product_id: int | None = None) -> list[LedgerRecord]:
    return [entry.to_record() for entry in list_entries(product_id=product_id)]


def delete_entry(entry_id: str) -> None:
    """
    Hard delete, refused while an order line still points at the entry or any
    of its units have been sold. A sale may draw from several entries but only
    the first one is recorded on the line.
    """
    entry = _get_entry(entry_id)
    if entry.consumed_quantity > 0:
        raise ConflictError(
            f"Inventory entry {entry_id} has {entry.consumed_quantity} sold unit(s) and cannot be deleted"
        )
    referenced = db.session.query(OrderLine).filter_by(inventory_id=entry_id).count()
    if referenced:
        raise ConflictError(f"Inventory entry {entry_id} is referenced by {referenced} order line(s)")
    db.session.delete(entry)
    db.session.commit()


def sold_quantity(product_id: int) -> int:
    """Units sold out of the ledger and not yet returned: sum(purchased - available)."""
    total = db.session.query(
        func.coalesce(
            func.sum(StockLedgerEntry.purchased_quantity - StockLedgerEntry.available_quantity),
            0,
        )
    ).filter(StockLedgerEntry.product_id == product_id).scalar()
    return int(total or 0)


def available_quantity(product_id: int) -> int:
    total = db.session.query(
        func.coalesce(func.sum(StockLedgerEntry.available_quantity), 0)
    ).filter(StockLedgerEntry.product_id == product_id).scalar()
    return int(total or 0)


def debit_stock(product_id: int, quantity: int) -> str:
    """
    Take `quantity` units out of a product's entries, oldest first.

    Does not commit; the caller owns the transaction. Returns the id of the
    first entry debited.
    """
    if quantity <= 0:
        raise ValidationError("quantity must be > 0")

    entries = lock_for_update(
        db.session.query(StockLedgerEntry).filter(
            StockLedgerEntry.product_id == product_id,
            StockLedgerEntry.available_quantity > 0,
        ).order_by(StockLedgerEntry.created_at.asc(), StockLedgerEntry.id.asc())
    ).all()

    on_hand = sum(e.available_quantity for e in entries)
    if on_hand < quantity:
        raise ValidationError(
            f"Insufficient stock for product {product_id}: {on_hand} available, {quantity} requested"
        )

    remaining = quantity
    first_id = entries[0].id
    for entry in entries:
        take = min(entry.available_quantity, remaining)
        entry.available_quantity -= take
        remaining -= take
        if remaining == 0:
            break

    db.session.flush()
    current_app.logger.info("Stock debited: product=%s qty=%s", product_id, quantity)
    return first_id


def on_return_accepted(product_id: int, quantity: int) -> None:
    """
    Credit returned units back to the ledger, newest entry first, never past an
    entry's purchased quantity. Does not commit.
    """
    if quantity <= 0:
        raise ValidationError("quantity must be > 0")

    entries = lock_for_update(
        db.session.query(StockLedgerEntry).filter(
            StockLedgerEntry.product_id == product_id,
            StockLedgerEntry.available_quantity < StockLedgerEntry.purchased_quantity,
        ).order_by(StockLedgerEntry.created_at.desc(), StockLedgerEntry.id.desc())
    ).all()

    capacity = sum(e.consumed_quantity for e in entries)
    if capacity < quantity:
        raise ValidationError(
            f"Cannot return {quantity} units of product {product_id}: only {capacity} sold"
        )

    remaining = quantity
    for entry in entries:
        give = min(entry.consumed_quantity, remaining)
        entry.available_quantity += give
        remaining -= give
        if remaining == 0:
            break

    db.session.flush()
    current_app.logger.info("Stock credited from return: product=%s qty=%s", product_id, quantity)


def get_stock_summary(product_id: int) -> dict:
    _ensure_product(product_id)
    records = ledger_snapshot(product_id=product_id)
    wac = weighted_average_cost(product_id, records)
    available = sum(r.available_quantity for r in records)
    purchased = sum(r.purchased_quantity for r in records)
    return {
        "product_id": product_id,
        "entries": len(records),
        "purchased_quantity": purchased,
        "available_quantity": available,
        "sold_quantity": purchased - available,
        "weighted_average_cost": wac,
        "stock_value": wac * available,
    }


def stock_levels(*, threshold: int) -> list[dict]:
    """
    Per-product availability classified the way the inventory tab does:
    out_of_stock (0), low (<= threshold), in_stock.
    """
    rows = db.session.query(
        Product.id,
        Product.sku,
        Product.name,
        func.coalesce(func.sum(StockLedgerEntry.available_quantity), 0).label("available"),
    ).outerjoin(
        StockLedgerEntry, StockLedgerEntry.product_id == Product.id
    ).group_by(Product.id, Product.sku, Product.name).order_by(Product.name.asc()).all()

    levels = []
    for row in rows:
        available = int(row.available or 0)
        if available == 0:
            status = "out_of_stock"
        elif available <= threshold:
            status = "low"
        else:
            status = "in_stock"
        levels.append(
            {
                "product_id": row.id,
                "sku": row.sku,
                "name": row.name,
                "available_quantity": available,
                "status": status,
            }
        )
    return levels
