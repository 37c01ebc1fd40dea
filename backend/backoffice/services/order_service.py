"""
Order Accounting Service

Orders are sale documents with a two-state lifecycle:

    Pending -> Completed (terminal)

DESIGN PRINCIPLES:
- Lines are fixed at creation; (order, product) is the line key
- Discount applies once at order level, never spread over lines, so line
  margins stay independent of promotional pricing
- Completing an order debits available stock (oldest ledger entry first)
- After creation only description and status may change
- Deleting an order is a hard delete and does NOT restore stock

VALUATION:
    revenue   = sum(sell_price * quantity)
    net_sales = revenue - discount
    cost      = sum(WAC[product] * quantity)
    profit    = net_sales - cost
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Mapping

from flask import current_app
from sqlalchemy.orm import selectinload

from ..extensions import db
from ..models import Order, OrderLine, Product
from ..money import ZERO, money_str
from ..records import ORDER_STATUS_COMPLETED, ORDER_STATUS_PENDING, ORDER_STATUSES, OrderRecord
from ..time_utils import utcnow
from ..validation import NotFoundError, ValidationError, validate_lines
from . import stock_ledger_service
from .concurrency import run_with_retry
from .cost_basis import wac_by_product as compute_wac_by_product


MUTABLE_FIELDS = frozenset({"description", "status"})


@dataclass(frozen=True)
class OrderValuation:
    revenue: Decimal
    discount: Decimal
    net_sales: Decimal
    cost: Decimal
    profit: Decimal

    def to_dict(self) -> dict:
        return {
            "revenue": money_str(self.revenue),
            "discount": money_str(self.discount),
            "net_sales": money_str(self.net_sales),
            "cost": money_str(self.cost),
            "profit": money_str(self.profit),
        }


# =============================================================================
# VALUATION (pure)
# =============================================================================

def order_revenue(order: OrderRecord) -> Decimal:
    return sum((line.sell_price * line.quantity for line in order.lines), ZERO)


def net_sales_and_profit(order: OrderRecord, wac_by_product: Mapping[int, Decimal]) -> OrderValuation:
    """
    Value one order against a WAC table. Products missing from the table cost
    0, so their whole line revenue is profit.
    """
    revenue = order_revenue(order)
    net_sales = revenue - order.discount
    cost = sum(
        (wac_by_product.get(line.product_id, ZERO) * line.quantity for line in order.lines),
        ZERO,
    )
    return OrderValuation(
        revenue=revenue,
        discount=order.discount,
        net_sales=net_sales,
        cost=cost,
        profit=net_sales - cost,
    )


# =============================================================================
# ORDER CREATION
# =============================================================================

def _fulfil(order: Order) -> None:
    """Debit stock for every line and stamp completion. Caller commits."""
    for line in order.lines:
        line.inventory_id = stock_ledger_service.debit_stock(line.product_id, line.quantity)
    order.completed_at = utcnow()


def create_order(
    *,
    lines: Iterable[dict],
    discount: Decimal = ZERO,
    amount_received: Decimal = ZERO,
    status: str = ORDER_STATUS_PENDING,
    description: str | None = None,
    created_at: datetime | None = None,
) -> Order:
    """
    Create an order with its lines.

    Args:
        lines: validated dicts with product_id, quantity, sell_price
        discount: order-level discount, 0 <= discount <= revenue
        amount_received: cash taken from the customer
        status: Pending, or Completed to fulfil immediately

    Raises:
        ValidationError: bad status/discount, or insufficient stock on completion
        NotFoundError: a line references an unknown product
    """
    lines = validate_lines(list(lines))
    if status not in ORDER_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(ORDER_STATUSES)}")
    if discount < 0:
        raise ValidationError("discount must be >= 0")
    if amount_received < 0:
        raise ValidationError("amount_received must be >= 0")

    revenue = sum((line["sell_price"] * line["quantity"] for line in lines), ZERO)
    if discount > revenue:
        raise ValidationError(f"discount {discount} exceeds order total {revenue}")

    def _op():
        order = Order(
            description=description,
            discount=discount,
            amount_received=amount_received,
            status=status,
        )
        if created_at is not None:
            order.created_at = created_at

        for line in lines:
            if db.session.get(Product, line["product_id"]) is None:
                raise NotFoundError(f"Product {line['product_id']} not found")
            order.lines.append(
                OrderLine(
                    product_id=line["product_id"],
                    quantity=line["quantity"],
                    sell_price=line["sell_price"],
                )
            )

        db.session.add(order)
        db.session.flush()

        if status == ORDER_STATUS_COMPLETED:
            _fulfil(order)

        db.session.commit()
        current_app.logger.info("Order %s created with status %s", order.id, order.status)
        return order

    try:
        return run_with_retry(_op)
    except (ValidationError, NotFoundError):
        db.session.rollback()
        raise


# =============================================================================
# ORDER QUERIES
# =============================================================================

def get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError(f"Order {order_id} not found")
    return order


def list_orders(
    *,
    status: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int | None = None,
) -> list[Order]:
    query = db.session.query(Order).options(
        selectinload(Order.lines).selectinload(OrderLine.product).selectinload(Product.category)
    )
    if status:
        query = query.filter(Order.status == status)
    if start is not None:
        query = query.filter(Order.created_at >= start)
    if end is not None:
        query = query.filter(Order.created_at <= end)
    query = query.order_by(Order.created_at.desc(), Order.id.desc())
    if limit is not None:
        query = query.limit(limit)
    return query.all()


def order_snapshot(*, start: datetime | None = None, end: datetime | None = None) -> list[OrderRecord]:
    return [order.to_record() for order in list_orders(start=start, end=end)]


def get_order_valuation(order_id: int) -> OrderValuation:
    """Value a persisted order against the current ledger."""
    order = get_order(order_id)
    record = order.to_record()
    product_ids = {line.product_id for line in record.lines}
    entries = [
        entry
        for pid in product_ids
        for entry in stock_ledger_service.ledger_snapshot(product_id=pid)
    ]
    return net_sales_and_profit(record, compute_wac_by_product(entries))


# =============================================================================
# ORDER UPDATE / DELETE
# =============================================================================

def update_order(order_id: int, fields: dict) -> Order:
    """
    Update description and/or status.

    Discount and amount_received are frozen after creation; any other field is
    a ValidationError. Completed is terminal.
    """
    illegal = sorted(set(fields) - MUTABLE_FIELDS)
    if illegal:
        raise ValidationError(f"Field not allowed: {', '.join(illegal)}")

    def _op():
        order = get_order(order_id)

        if "description" in fields:
            order.description = fields["description"]

        new_status = fields.get("status")
        if new_status is not None and new_status != order.status:
            if new_status not in ORDER_STATUSES:
                raise ValidationError(f"status must be one of: {', '.join(ORDER_STATUSES)}")
            if order.status == ORDER_STATUS_COMPLETED:
                raise ValidationError(f"Order {order_id} is already Completed")
            order.status = new_status
            _fulfil(order)
            current_app.logger.info("Order %s completed", order_id)

        db.session.commit()
        return order

    try:
        return run_with_retry(_op)
    except (ValidationError, NotFoundError):
        db.session.rollback()
        raise


def delete_order(order_id: int) -> dict:
    """
    Hard delete; lines cascade. Stock already debited is not restored.

    Returns the serialized order as it was before deletion.
    """
    order = get_order(order_id)
    snapshot = order.to_dict()
    db.session.delete(order)
    db.session.commit()
    current_app.logger.info("Order %s deleted", order_id)
    return snapshot
