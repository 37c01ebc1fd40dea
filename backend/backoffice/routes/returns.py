# Overview: Flask API routes for returns operations; parses input and returns JSON responses.

# backend/backoffice/routes/returns.py
"""
Return Processing API Routes

DESIGN:
- A return is accepted on creation: lines are checked against what was sold
  and stock is credited in the same transaction
- Lines may reference the order they reverse (order_id)
- return_amount records the cash handed back when it differs from the lines
"""

from flask import Blueprint, current_app, request

from ..models import ReturnOrder
from ..money import money_str
from ..services import return_service
from ..time_utils import parse_iso_datetime
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    validate_lines,
    NotFoundError,
    ValidationError,
)


returns_bp = Blueprint("returns", __name__, url_prefix="/api/returns")

RETURN_POLICY = ModelValidationPolicy(
    writable_fields={"description", "return_amount", "created_at"},
    required_on_create=set(),
)


# =============================================================================
# RETURN CREATION
# =============================================================================

@returns_bp.post("")
def create_return_route():
    """
    Create (and accept) a return.

    Request body:
    {
        "products": [
            {"product_id": 1, "quantity": 1, "sell_price": "1000.00", "order_id": 12}
        ],
        "description": "Damaged box",  (optional)
        "return_amount": "900.00"  (optional, default: sum of lines)
    }

    Returns:
        201: Return recorded, stock credited
        400: Invalid input or quantity exceeds what was sold
        404: Unknown product or order line
    """
    payload = dict(request.get_json(silent=True) or {})
    try:
        lines = validate_lines(payload.pop("products", None), extra_fields=frozenset({"order_id"}))
        patch = validate_payload(
            model=ReturnOrder,
            payload=payload,
            policy=RETURN_POLICY,
            partial=False,
        )
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        return_doc = return_service.create_return(
            lines=lines,
            description=patch.get("description"),
            return_amount_override=patch.get("return_amount"),
            created_at=patch.get("created_at"),
        )
        return return_doc.to_dict(), 201
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ValidationError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to create return")
        return {"error": "Failed to create return"}, 500


# =============================================================================
# RETURN QUERIES / DELETE
# =============================================================================

@returns_bp.get("")
def list_returns_route():
    try:
        start = parse_iso_datetime(request.args.get("start"))
        end = parse_iso_datetime(request.args.get("end"))
    except ValueError:
        return {"error": "start and end must be ISO-8601 datetimes"}, 400

    returns = return_service.list_returns(
        start=start,
        end=end,
        limit=request.args.get("limit", type=int),
    )
    return {"items": [r.to_dict() for r in returns], "count": len(returns)}


@returns_bp.get("/<int:return_id>")
def get_return_route(return_id: int):
    return_doc = return_service.get_return(return_id)
    summary = return_service.get_return_summary(return_id)
    return {
        **return_doc.to_dict(),
        "units": summary["units"],
        "lines_total": money_str(summary["lines_total"]),
    }


@returns_bp.delete("/<int:return_id>")
def delete_return_route(return_id: int):
    try:
        return {"deleted": return_service.delete_return(return_id)}
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except Exception:
        current_app.logger.exception("Failed to delete return")
        return {"error": "Failed to delete return"}, 500
