# Overview: Weighted-average cost (WAC) per product from stock ledger snapshots.

from __future__ import annotations

from decimal import Decimal
from typing import Iterable

from ..money import ZERO
from ..records import LedgerRecord
"""
Cost basis invariants (authoritative)

- WAC is computed from ledger entries with purchased_quantity > 0 only:
    sum(purchased_quantity * purchase_price) / sum(purchased_quantity)
- Purchased (not available) quantity is the weight: stock already sold still
  contributed to what the goods cost.
- A product with no qualifying entries has WAC 0, so a sale of unstocked goods
  reports its full revenue as profit.
- Pure functions over a snapshot; nothing is cached, recompute per request.
"""


def weighted_average_cost(product_id: int, entries: Iterable[LedgerRecord]) -> Decimal:
    total_units = 0
    total_cost = ZERO
    for entry in entries:
        if entry.product_id != product_id or entry.purchased_quantity <= 0:
            continue
        total_units += entry.purchased_quantity
        total_cost += entry.purchase_price * entry.purchased_quantity

    if total_units <= 0:
        return ZERO
    return total_cost / total_units


def wac_by_product(entries: Iterable[LedgerRecord]) -> dict[int, Decimal]:
    """WAC for every product that appears in `entries`, in one pass."""
    totals: dict[int, tuple[int, Decimal]] = {}
    for entry in entries:
        if entry.purchased_quantity <= 0:
            continue
        units, cost = totals.get(entry.product_id, (0, ZERO))
        totals[entry.product_id] = (
            units + entry.purchased_quantity,
            cost + entry.purchase_price * entry.purchased_quantity,
        )
    return {pid: cost / units for pid, (units, cost) in totals.items() if units > 0}
