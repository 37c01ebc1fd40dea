from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..money import money_str
from ..records import ReturnLineRecord, ReturnRecord
from ..time_utils import to_utc_z, utcnow


class ReturnOrder(db.Model):
    """
    Return document. Accepted on creation: stock is credited for every line in
    the same DB transaction that inserts the document.
    """
    __tablename__ = "return_orders"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    description = db.Column(db.String(255), nullable=True)

    # Cash actually handed back; NULL means "sum of the lines"
    return_amount = db.Column(db.Numeric(12, 2), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    lines = db.relationship(
        "ReturnLine",
        backref="return_order",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="ReturnLine.id",
    )

    def to_record(self) -> ReturnRecord:
        return ReturnRecord(
            id=self.id,
            created_at=self.created_at,
            lines=tuple(line.to_record() for line in self.lines),
            return_amount=Decimal(self.return_amount) if self.return_amount is not None else None,
        )

    def to_dict(self) -> dict:
        from ..services.return_service import return_amount

        return {
            "id": self.id,
            "description": self.description,
            "return_amount": money_str(return_amount(self.to_record())),
            "created_at": to_utc_z(self.created_at),
            "lines": [line.to_dict() for line in self.lines],
        }


class ReturnLine(db.Model):
    __tablename__ = "return_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    return_id = db.Column(db.Integer, db.ForeignKey("return_orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    # Optional link to the sale being reversed
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="SET NULL"), nullable=True, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    # Refund unit price
    sell_price = db.Column(db.Numeric(12, 2), nullable=False)

    product = db.relationship("Product")

    def to_record(self) -> ReturnLineRecord:
        return ReturnLineRecord(
            product_id=self.product_id,
            quantity=self.quantity,
            sell_price=Decimal(self.sell_price),
            order_id=self.order_id,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "return_id": self.return_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product is not None else None,
            "order_id": self.order_id,
            "quantity": self.quantity,
            "sell_price": money_str(self.sell_price),
            "line_total": money_str(Decimal(self.sell_price) * self.quantity),
        }
