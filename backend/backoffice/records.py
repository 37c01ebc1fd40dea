"""
Typed, immutable snapshots of persisted rows.

Pure computations (cost basis, order valuation, period aggregation) operate on
these records instead of ORM instances, so a report is a function of the
snapshot it was handed and nothing else.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal


UNCATEGORIZED = "Uncategorized"

ORDER_STATUS_PENDING = "Pending"
ORDER_STATUS_COMPLETED = "Completed"
ORDER_STATUSES = (ORDER_STATUS_PENDING, ORDER_STATUS_COMPLETED)


@dataclass(frozen=True)
class LedgerRecord:
    id: str
    product_id: int
    purchased_quantity: int
    available_quantity: int
    purchase_price: Decimal
    created_at: datetime | None = None


@dataclass(frozen=True)
class OrderLineRecord:
    product_id: int
    quantity: int
    sell_price: Decimal
    category_name: str = UNCATEGORIZED
    inventory_id: str | None = None


@dataclass(frozen=True)
class OrderRecord:
    id: int
    created_at: datetime
    discount: Decimal = Decimal("0")
    amount_received: Decimal = Decimal("0")
    status: str = ORDER_STATUS_COMPLETED
    lines: tuple[OrderLineRecord, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ReturnLineRecord:
    product_id: int
    quantity: int
    sell_price: Decimal
    order_id: int | None = None


@dataclass(frozen=True)
class ReturnRecord:
    id: int
    created_at: datetime
    lines: tuple[ReturnLineRecord, ...] = field(default_factory=tuple)
    # Cash actually handed back; None means "sum of the lines"
    return_amount: Decimal | None = None


@dataclass(frozen=True)
class ExpenseRecord:
    id: str
    amount: Decimal
    created_at: datetime
    reason: str | None = None
