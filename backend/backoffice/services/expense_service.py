# Overview: Service-layer operations for expenses; a flat ledger of outflows.

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from ..extensions import db
from ..models import Expense
from ..records import ExpenseRecord
from ..validation import NotFoundError, ValidationError
from .identifier_service import EXPENSE_PREFIX, new_identifier


def create_expense(
    *,
    amount: Decimal,
    reason: str | None = None,
    description: str | None = None,
    created_at: datetime | None = None,
) -> Expense:
    if amount is None or amount < 0:
        raise ValidationError("amount must be >= 0")

    expense = Expense(
        id=new_identifier(EXPENSE_PREFIX),
        amount=amount,
        reason=reason,
        description=description,
    )
    if created_at is not None:
        expense.created_at = created_at
    db.session.add(expense)
    db.session.commit()
    return expense


def get_expense(expense_id: str) -> Expense:
    expense = db.session.get(Expense, expense_id)
    if expense is None:
        raise NotFoundError(f"Expense {expense_id} not found")
    return expense


def list_expenses(
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    search: str | None = None,
    limit: int | None = None,
) -> list[Expense]:
    query = db.session.query(Expense)
    if start is not None:
        query = query.filter(Expense.created_at >= start)
    if end is not None:
        query = query.filter(Expense.created_at <= end)
    if search:
        query = query.filter(Expense.reason.ilike(f"%{search.strip()}%"))
    query = query.order_by(Expense.created_at.desc(), Expense.id.asc())
    if limit is not None:
        query = query.limit(limit)
    return query.all()


def expense_snapshot(*, start: datetime | None = None, end: datetime | None = None) -> list[ExpenseRecord]:
    return [expense.to_record() for expense in list_expenses(start=start, end=end)]


def update_expense(expense_id: str, patch: dict) -> Expense:
    expense = get_expense(expense_id)
    if "amount" in patch and (patch["amount"] is None or patch["amount"] < 0):
        raise ValidationError("amount must be >= 0")
    for key in ("amount", "reason", "description"):
        if key in patch:
            setattr(expense, key, patch[key])
    db.session.commit()
    return expense


def delete_expense(expense_id: str) -> dict:
    expense = get_expense(expense_id)
    snapshot = expense.to_dict()
    db.session.delete(expense)
    db.session.commit()
    return snapshot
