from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..money import money_str
from ..records import LedgerRecord
from ..time_utils import to_utc_z, utcnow


class StockLedgerEntry(db.Model):
    """
    One stock intake for a product: how much was purchased, how much of it is
    still available to sell, and at what unit price.

    available_quantity starts equal to purchased_quantity and moves with sales
    (debit) and accepted returns (credit). Editing the purchase itself goes
    through reconcile_quantity, which shifts available by the same delta.

    version_id is SQLAlchemy's optimistic version counter: a flush against a
    row someone else already bumped raises StaleDataError.
    """
    __tablename__ = "stock_ledger_entries"
    __table_args__ = (
        db.Index("ix_stock_ledger_product_created", "product_id", "created_at"),
        db.CheckConstraint("purchased_quantity >= 0", name="ck_stock_ledger_purchased_nonneg"),
        db.CheckConstraint("available_quantity >= 0", name="ck_stock_ledger_available_nonneg"),
    )

    # "inv-<uuid hex>"
    id = db.Column(db.String(64), primary_key=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    purchased_quantity = db.Column(db.Integer, nullable=False)
    available_quantity = db.Column(db.Integer, nullable=False)
    purchase_price = db.Column(db.Numeric(12, 2), nullable=False)

    description = db.Column(db.String(255), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    product = db.relationship("Product", backref=db.backref("stock_entries", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return (
            f"<StockLedgerEntry id={self.id} product_id={self.product_id} "
            f"purchased={self.purchased_quantity} available={self.available_quantity}>"
        )

    @property
    def consumed_quantity(self) -> int:
        return self.purchased_quantity - self.available_quantity

    def to_record(self) -> LedgerRecord:
        return LedgerRecord(
            id=self.id,
            product_id=self.product_id,
            purchased_quantity=self.purchased_quantity,
            available_quantity=self.available_quantity,
            purchase_price=Decimal(self.purchase_price),
            created_at=self.created_at,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product is not None else None,
            "purchased_quantity": self.purchased_quantity,
            "available_quantity": self.available_quantity,
            "purchase_price": money_str(self.purchase_price),
            "description": self.description,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
