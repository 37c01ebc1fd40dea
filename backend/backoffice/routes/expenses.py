# Overview: Flask API routes for expenses; parses input and returns JSON responses.

from flask import Blueprint, request

from ..models import Expense
from ..services import expense_service
from ..time_utils import parse_iso_datetime
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    ValidationError,
    enforce_rules_expense,
)


expenses_bp = Blueprint("expenses", __name__, url_prefix="/api/expenses")

EXPENSE_POLICY = ModelValidationPolicy(
    writable_fields={"amount", "reason", "description", "created_at"},
    required_on_create={"amount"},
)


@expenses_bp.post("")
def create_expense_route():
    payload = request.get_json(silent=True)
    try:
        patch = validate_payload(model=Expense, payload=payload, policy=EXPENSE_POLICY, partial=False)
        enforce_rules_expense(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    expense = expense_service.create_expense(
        amount=patch["amount"],
        reason=patch.get("reason"),
        description=patch.get("description"),
        created_at=patch.get("created_at"),
    )
    return expense.to_dict(), 201


@expenses_bp.get("")
def list_expenses_route():
    """
    Query params:
    - start, end: ISO-8601 datetimes (optional, inclusive)
    - q: substring of the reason (optional)
    - limit: int (optional)
    """
    try:
        start = parse_iso_datetime(request.args.get("start"))
        end = parse_iso_datetime(request.args.get("end"))
    except ValueError:
        return {"error": "start and end must be ISO-8601 datetimes"}, 400

    expenses = expense_service.list_expenses(
        start=start,
        end=end,
        search=request.args.get("q"),
        limit=request.args.get("limit", type=int),
    )
    return {"items": [e.to_dict() for e in expenses], "count": len(expenses)}


@expenses_bp.get("/<expense_id>")
def get_expense_route(expense_id: str):
    return expense_service.get_expense(expense_id).to_dict()


@expenses_bp.put("/<expense_id>")
def update_expense_route(expense_id: str):
    payload = request.get_json(silent=True)
    try:
        patch = validate_payload(model=Expense, payload=payload, policy=EXPENSE_POLICY, partial=True)
        enforce_rules_expense(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    return expense_service.update_expense(expense_id, patch).to_dict()


@expenses_bp.delete("/<expense_id>")
def delete_expense_route(expense_id: str):
    return {"deleted": expense_service.delete_expense(expense_id)}
