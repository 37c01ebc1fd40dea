from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..money import money_str
from ..records import OrderLineRecord, OrderRecord, ORDER_STATUS_PENDING
from ..time_utils import to_utc_z, utcnow


class Order(db.Model):
    """
    Sale document.

    Lifecycle: Pending -> Completed (terminal). Discount and amount received are
    fixed at creation; only description and status change afterwards.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    description = db.Column(db.String(255), nullable=True)

    discount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    amount_received = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default=ORDER_STATUS_PENDING, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    lines = db.relationship(
        "OrderLine",
        backref="order",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="OrderLine.product_id",
    )

    def __repr__(self) -> str:
        return f"<Order id={self.id} status={self.status} lines={len(self.lines)}>"

    def to_record(self) -> OrderRecord:
        return OrderRecord(
            id=self.id,
            created_at=self.created_at,
            discount=Decimal(self.discount or 0),
            amount_received=Decimal(self.amount_received or 0),
            status=self.status,
            lines=tuple(line.to_record() for line in self.lines),
        )

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "description": self.description,
            "discount": money_str(self.discount),
            "amount_received": money_str(self.amount_received),
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at),
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class OrderLine(db.Model):
    """One product on an order; (order_id, product_id) is the key."""
    __tablename__ = "order_lines"

    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), primary_key=True)

    # First ledger entry debited when the order was fulfilled
    inventory_id = db.Column(db.String(64), db.ForeignKey("stock_ledger_entries.id"), nullable=True, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    sell_price = db.Column(db.Numeric(12, 2), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    product = db.relationship("Product")

    def to_record(self) -> OrderLineRecord:
        return OrderLineRecord(
            product_id=self.product_id,
            quantity=self.quantity,
            sell_price=Decimal(self.sell_price),
            category_name=self.product.category_name,
            inventory_id=self.inventory_id,
        )

    def to_dict(self) -> dict:
        return {
            "order_id": self.order_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product is not None else None,
            "inventory_id": self.inventory_id,
            "quantity": self.quantity,
            "sell_price": money_str(self.sell_price),
            "line_total": money_str(Decimal(self.sell_price) * self.quantity),
        }
