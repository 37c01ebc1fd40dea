from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..money import money_str
from ..records import ExpenseRecord
from ..time_utils import to_utc_z, utcnow


class Expense(db.Model):
    """Flat ledger of outflows (rent, utilities, wages...)."""
    __tablename__ = "expenses"

    # "exp-<uuid hex>"
    id = db.Column(db.String(64), primary_key=True)

    amount = db.Column(db.Numeric(12, 2), nullable=False)
    reason = db.Column(db.String(120), nullable=True)
    description = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    def to_record(self) -> ExpenseRecord:
        return ExpenseRecord(
            id=self.id,
            amount=Decimal(self.amount),
            created_at=self.created_at,
            reason=self.reason,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "amount": money_str(self.amount),
            "reason": self.reason,
            "description": self.description,
            "created_at": to_utc_z(self.created_at),
        }
