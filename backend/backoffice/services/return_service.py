"""
Return Processing Service

WHY: A return gives money back and puts goods back on the shelf. Both sides
must agree: the refund is what the lines say (unless the cashier recorded a
different cash amount), and stock comes back only for units that were sold.

DESIGN PRINCIPLES:
- Lines carry their own refund unit price (sell_price) and quantity
- A line may reference the order it reverses; then the bound is that order
  line's quantity minus what was already returned against it
- Without an order reference the bound is the product's sold quantity,
  sum(purchased - available) across its ledger entries
- Accepted returns credit stock through stock_ledger_service.on_return_accepted
  in the same DB transaction that records the return

REFUND:
    return_amount = sum(sell_price * quantity)   (or the explicit override)
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Iterable

from flask import current_app
from sqlalchemy import func
from sqlalchemy.orm import selectinload

from ..extensions import db
from ..models import OrderLine, Product, ReturnLine, ReturnOrder
from ..money import ZERO
from ..records import ORDER_STATUS_COMPLETED, ReturnRecord
from ..validation import NotFoundError, ValidationError, validate_lines
from . import stock_ledger_service
from .concurrency import run_with_retry


# =============================================================================
# REFUND VALUATION (pure)
# =============================================================================

def lines_total(record: ReturnRecord) -> Decimal:
    return sum((line.sell_price * line.quantity for line in record.lines), ZERO)


def return_amount(record: ReturnRecord) -> Decimal:
    """Refund total: the recorded cash amount if any, else the line sum."""
    if record.return_amount is not None:
        return record.return_amount
    return lines_total(record)


# =============================================================================
# RETURN CREATION
# =============================================================================

def _returned_against_order(order_id: int, product_id: int) -> int:
    total = db.session.query(
        func.coalesce(func.sum(ReturnLine.quantity), 0)
    ).filter(
        ReturnLine.order_id == order_id,
        ReturnLine.product_id == product_id,
    ).scalar()
    return int(total or 0)


def _check_returnable(line: dict) -> None:
    """
    Raises:
        NotFoundError: unknown product, or order line not found
        ValidationError: quantity exceeds what can still be returned
    """
    product_id = line["product_id"]
    quantity = line["quantity"]
    order_id = line.get("order_id")

    if db.session.get(Product, product_id) is None:
        raise NotFoundError(f"Product {product_id} not found")

    if order_id is not None:
        order_line = db.session.get(OrderLine, (order_id, product_id))
        if order_line is None:
            raise NotFoundError(f"Order {order_id} has no line for product {product_id}")
        if order_line.order.status != ORDER_STATUS_COMPLETED:
            raise ValidationError(
                f"Order {order_id} is {order_line.order.status}; only Completed orders can be returned against"
            )
        already = _returned_against_order(order_id, product_id)
        remaining = order_line.quantity - already
        if quantity > remaining:
            raise ValidationError(
                f"Cannot return {quantity} units of product {product_id}. "
                f"Order {order_id} quantity: {order_line.quantity}, already returned: {already}, "
                f"available: {remaining}"
            )
        return

    sold = stock_ledger_service.sold_quantity(product_id)
    if quantity > sold:
        raise ValidationError(
            f"Cannot return {quantity} units of product {product_id}: only {sold} sold"
        )


def create_return(
    *,
    lines: Iterable[dict],
    description: str | None = None,
    return_amount_override: Decimal | None = None,
    created_at: datetime | None = None,
) -> ReturnOrder:
    """
    Record a return and put its units back into stock.

    Args:
        lines: validated dicts with product_id, quantity, sell_price, optional order_id
        description: free text (reason given by the customer)
        return_amount_override: cash actually handed back, if it differs from the line sum
        created_at: business time; defaults to now

    Raises:
        ValidationError: empty lines, negative override, over-return
        NotFoundError: unknown product or order line
    """
    lines = validate_lines(list(lines), extra_fields=frozenset({"order_id"}))
    if return_amount_override is not None and return_amount_override < 0:
        raise ValidationError("return_amount must be >= 0")

    def _op():
        for line in lines:
            _check_returnable(line)

        return_doc = ReturnOrder(description=description, return_amount=return_amount_override)
        if created_at is not None:
            return_doc.created_at = created_at
        for line in lines:
            return_doc.lines.append(
                ReturnLine(
                    product_id=line["product_id"],
                    order_id=line.get("order_id"),
                    quantity=line["quantity"],
                    sell_price=line["sell_price"],
                )
            )
        db.session.add(return_doc)
        db.session.flush()

        for line in lines:
            stock_ledger_service.on_return_accepted(line["product_id"], line["quantity"])

        db.session.commit()
        current_app.logger.info("Return %s accepted with %s line(s)", return_doc.id, len(lines))
        return return_doc

    try:
        return run_with_retry(_op)
    except (ValidationError, NotFoundError):
        db.session.rollback()
        raise


# =============================================================================
# RETURN QUERIES / DELETE
# =============================================================================

def get_return(return_id: int) -> ReturnOrder:
    return_doc = db.session.get(ReturnOrder, return_id)
    if return_doc is None:
        raise NotFoundError(f"Return {return_id} not found")
    return return_doc


def list_returns(
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int | None = None,
) -> list[ReturnOrder]:
    query = db.session.query(ReturnOrder).options(
        selectinload(ReturnOrder.lines).selectinload(ReturnLine.product)
    )
    if start is not None:
        query = query.filter(ReturnOrder.created_at >= start)
    if end is not None:
        query = query.filter(ReturnOrder.created_at <= end)
    query = query.order_by(ReturnOrder.created_at.desc(), ReturnOrder.id.desc())
    if limit is not None:
        query = query.limit(limit)
    return query.all()


def return_snapshot(*, start: datetime | None = None, end: datetime | None = None) -> list[ReturnRecord]:
    return [return_doc.to_record() for return_doc in list_returns(start=start, end=end)]


def get_return_summary(return_id: int) -> dict:
    record = get_return(return_id).to_record()
    return {
        "return_id": record.id,
        "line_count": len(record.lines),
        "units": sum(line.quantity for line in record.lines),
        "lines_total": lines_total(record),
        "return_amount": return_amount(record),
    }


def delete_return(return_id: int) -> dict:
    """Hard delete; lines cascade. Credited stock stays credited."""
    return_doc = get_return(return_id)
    snapshot = return_doc.to_dict()
    db.session.delete(return_doc)
    db.session.commit()
    current_app.logger.info("Return %s deleted", return_id)
    return snapshot
