# Overview: Flask API routes for orders operations; parses input and returns JSON responses.

# backend/backoffice/routes/orders.py
"""
Order API Routes

DESIGN:
- Create an order with its product lines in one request
- Orders are Pending or Completed; completing debits stock
- After creation only description and status can change
- Delete is a hard delete and does not restore stock
"""

from flask import Blueprint, current_app, request

from ..models import Order
from ..money import ZERO
from ..records import ORDER_STATUS_PENDING, ORDER_STATUSES
from ..services import order_service
from ..time_utils import parse_iso_datetime
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    validate_lines,
    NotFoundError,
    ValidationError,
    enforce_rules_order,
)


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")

ORDER_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"description", "discount", "amount_received", "status", "created_at"},
    required_on_create=set(),
)

ORDER_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields=set(order_service.MUTABLE_FIELDS),
    required_on_create=set(),
)


def _parse_range_args() -> tuple:
    try:
        start = parse_iso_datetime(request.args.get("start"))
        end = parse_iso_datetime(request.args.get("end"))
    except ValueError:
        raise ValidationError("start and end must be ISO-8601 datetimes")
    return start, end


# =============================================================================
# ORDER CREATION
# =============================================================================

@orders_bp.post("")
def create_order_route():
    """
    Create an order.

    Request body:
    {
        "products": [
            {"product_id": 1, "quantity": 2, "sell_price": "100.00"}
        ],
        "discount": "10.00",  (optional, default: 0)
        "amount_received": "190.00",  (optional, default: 0)
        "status": "Pending",  (optional, Pending or Completed)
        "description": "Walk-in customer"  (optional)
    }

    Returns:
        201: Order created
        400: Invalid input or insufficient stock
        404: Unknown product
    """
    payload = dict(request.get_json(silent=True) or {})
    try:
        lines = validate_lines(payload.pop("products", None))
        patch = validate_payload(
            model=Order,
            payload=payload,
            policy=ORDER_CREATE_POLICY,
            partial=False,
        )
        enforce_rules_order(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        order = order_service.create_order(
            lines=lines,
            discount=patch.get("discount") or ZERO,
            amount_received=patch.get("amount_received") or ZERO,
            status=patch.get("status") or ORDER_STATUS_PENDING,
            description=patch.get("description"),
            created_at=patch.get("created_at"),
        )
        return order.to_dict(), 201
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ValidationError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to create order")
        return {"error": "Failed to create order"}, 500


# =============================================================================
# ORDER QUERIES
# =============================================================================

@orders_bp.get("")
def list_orders_route():
    """
    Query params:
    - status: Pending | Completed (optional)
    - start, end: ISO-8601 datetimes (optional, inclusive)
    - limit: int (optional)
    """
    status = request.args.get("status")
    if status and status not in ORDER_STATUSES:
        return {"error": f"status must be one of: {', '.join(ORDER_STATUSES)}"}, 400
    start, end = _parse_range_args()
    orders = order_service.list_orders(
        status=status,
        start=start,
        end=end,
        limit=request.args.get("limit", type=int),
    )
    return {"items": [o.to_dict(include_lines=False) for o in orders], "count": len(orders)}


@orders_bp.get("/<int:order_id>")
def get_order_route(order_id: int):
    """Order with lines and its valuation against the current cost basis."""
    order = order_service.get_order(order_id)
    return {
        **order.to_dict(),
        "valuation": order_service.get_order_valuation(order_id).to_dict(),
    }


# =============================================================================
# ORDER UPDATE / DELETE
# =============================================================================

@orders_bp.put("/<int:order_id>")
def update_order_route(order_id: int):
    """
    Request body (any of):
    {
        "description": "...",
        "status": "Completed"
    }
    """
    payload = request.get_json(silent=True)
    try:
        patch = validate_payload(
            model=Order,
            payload=payload,
            policy=ORDER_UPDATE_POLICY,
            partial=True,
        )
        enforce_rules_order(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        return order_service.update_order(order_id, patch).to_dict()
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ValidationError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to update order")
        return {"error": "Failed to update order"}, 500


@orders_bp.delete("/<int:order_id>")
def delete_order_route(order_id: int):
    return {"deleted": order_service.delete_order(order_id)}
