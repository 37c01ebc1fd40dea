# backend/backoffice/routes/inventory.py
"""
Inventory (stock ledger) routes.

Each entry is one purchase of a product. Editing an entry reconciles it:
available stock moves by the same amount as purchased stock, so units already
sold stay sold.

Concurrency:
- GET returns version_id; PUT may send it back as expected_version. A stale
  version is rejected with 409 instead of silently overwriting.

Time semantics:
- API accepts ISO-8601 datetimes with Z/offsets; backend normalizes to UTC-naive internally.
"""
from decimal import Decimal

from flask import Blueprint, current_app, request

from ..models import StockLedgerEntry
from ..money import money_str
from ..services import stock_ledger_service
from ..validation import (
    ModelValidationPolicy,
    coerce_int,
    validate_payload,
    ValidationError,
    enforce_rules_stock_entry,
)


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")

# WAC is reported with more precision than money
WAC_PLACES = Decimal("0.0001")

STOCK_ENTRY_POLICY = ModelValidationPolicy(
    writable_fields={"product_id", "purchased_quantity", "purchase_price", "description", "created_at"},
    required_on_create={"product_id", "purchased_quantity", "purchase_price"},
)

STOCK_RECONCILE_POLICY = ModelValidationPolicy(
    writable_fields={"product_id", "purchased_quantity", "purchase_price", "description"},
    required_on_create={"product_id", "purchased_quantity", "purchase_price"},
)


@inventory_bp.post("")
def create_entry_route():
    """
    Record a stock intake.

    Request body:
    {
        "product_id": 1,
        "purchased_quantity": 50,
        "purchase_price": "12.50",
        "description": "Supplier invoice 4411",  (optional)
        "created_at": "2024-03-01T09:00:00Z"  (optional)
    }
    """
    payload = request.get_json(silent=True)
    try:
        patch = validate_payload(
            model=StockLedgerEntry,
            payload=payload,
            policy=STOCK_ENTRY_POLICY,
            partial=False,
        )
        enforce_rules_stock_entry(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    entry = stock_ledger_service.create_entry(
        product_id=patch["product_id"],
        purchased_quantity=patch["purchased_quantity"],
        purchase_price=patch["purchase_price"],
        description=patch.get("description"),
        created_at=patch.get("created_at"),
    )
    return entry.to_dict(), 201


@inventory_bp.get("")
def list_entries_route():
    product_id = request.args.get("product_id", type=int)
    limit = request.args.get("limit", type=int)
    entries = stock_ledger_service.list_entries(product_id=product_id, limit=limit)
    return {"items": [e.to_dict() for e in entries], "count": len(entries)}


@inventory_bp.get("/low-stock")
def low_stock_route():
    """
    Products at or below the low-stock threshold.

    Query params:
    - threshold: int (optional) - defaults to LOW_STOCK_THRESHOLD
    """
    threshold = request.args.get("threshold", type=int)
    if threshold is None:
        threshold = current_app.config["LOW_STOCK_THRESHOLD"]
    if threshold < 0:
        return {"error": "threshold must be >= 0"}, 400

    levels = stock_ledger_service.stock_levels(threshold=threshold)
    counts = {"in_stock": 0, "low": 0, "out_of_stock": 0}
    for row in levels:
        counts[row["status"]] += 1
    return {
        "threshold": threshold,
        "counts": counts,
        "items": [row for row in levels if row["status"] != "in_stock"],
    }


@inventory_bp.get("/<int:product_id>/summary")
def stock_summary_route(product_id: int):
    """Available units, weighted-average cost and stock value for one product."""
    summary = stock_ledger_service.get_stock_summary(product_id)
    return {
        **summary,
        "weighted_average_cost": format(summary["weighted_average_cost"].quantize(WAC_PLACES), "f"),
        "stock_value": money_str(summary["stock_value"]),
    }


@inventory_bp.get("/<entry_id>")
def get_entry_route(entry_id: str):
    return stock_ledger_service.get_entry(entry_id).to_dict()


@inventory_bp.put("/<entry_id>")
def reconcile_entry_route(entry_id: str):
    """
    Reconcile an entry with corrected purchase figures.

    Request body:
    {
        "product_id": 1,
        "purchased_quantity": 60,
        "purchase_price": "12.50",
        "description": "...",  (optional)
        "expected_version": 3  (optional)
    }
    """
    payload = dict(request.get_json(silent=True) or {})
    try:
        raw_version = payload.pop("expected_version", None)
        expected_version = coerce_int("expected_version", raw_version) if raw_version is not None else None
        patch = validate_payload(
            model=StockLedgerEntry,
            payload=payload,
            policy=STOCK_RECONCILE_POLICY,
            partial=False,
        )
        enforce_rules_stock_entry(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    entry = stock_ledger_service.reconcile_quantity(
        entry_id,
        purchased_quantity=patch["purchased_quantity"],
        purchase_price=patch["purchase_price"],
        product_id=patch["product_id"],
        description=patch.get("description"),
        expected_version=expected_version,
    )
    return entry.to_dict()


@inventory_bp.delete("/<entry_id>")
def delete_entry_route(entry_id: str):
    stock_ledger_service.delete_entry(entry_id)
    return {"deleted": entry_id}
