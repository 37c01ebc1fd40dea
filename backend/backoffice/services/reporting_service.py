# Overview: Service-layer operations for reporting; period aggregation over order/return/expense snapshots.

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from typing import Iterable, Mapping

from ..money import ZERO, money_str, safe_ratio
from ..records import (
    ORDER_STATUS_COMPLETED,
    ExpenseRecord,
    OrderRecord,
    ReturnRecord,
)
from ..time_utils import (
    add_months,
    iter_days,
    iter_months,
    month_end,
    month_start,
    parse_iso_date,
    to_utc_z,
    utcnow,
)
from ..validation import ValidationError
from . import expense_service, order_service, return_service, stock_ledger_service
from .cost_basis import wac_by_product as compute_wac_by_product
from .order_service import net_sales_and_profit
from .return_service import return_amount
"""
Period aggregation rules (authoritative)

- A report is a pure function of the snapshot it is handed (orders, returns,
  expenses, WAC table). Fetching happens once, in period_report/dashboard_summary.
- Only Completed orders count unless include_pending=True.
- gross_sales is the sum of order net sales (revenue - discount).
- Returns reverse sales by their refund amount and reverse profit by
  refund - WAC * quantity.
- net_revenue = gross_sales - total_returns - total_expenses.
- Rates and averages with a zero denominator are 0, never an error.
- Series cover every bucket of the window, zero-filled.
"""

BUCKETINGS = ("day", "month", "year")
WINDOWS = ("today", "this-month", "last-month", "this-year")


class ReportError(ValidationError):
    """Raised when report parameters are invalid."""
    pass


@dataclass(frozen=True)
class Window:
    """Inclusive calendar-date range."""
    start: date
    end: date
    label: str = "custom"

    def contains(self, ts: datetime) -> bool:
        return self.start <= ts.date() <= self.end

    def bounds(self) -> tuple[datetime, datetime]:
        return datetime.combine(self.start, time.min), datetime.combine(self.end, time.max)


@dataclass(frozen=True)
class PeriodTotals:
    transactions: int = 0
    gross_sales: Decimal = ZERO
    cost: Decimal = ZERO
    gross_profit: Decimal = ZERO
    total_returns: Decimal = ZERO
    returns_profit: Decimal = ZERO
    total_expenses: Decimal = ZERO

    @property
    def net_sales(self) -> Decimal:
        return self.gross_sales - self.total_returns

    @property
    def net_profit(self) -> Decimal:
        return self.gross_profit - self.returns_profit - self.total_expenses

    @property
    def net_revenue(self) -> Decimal:
        return self.gross_sales - self.total_returns - self.total_expenses

    @property
    def return_rate(self) -> Decimal:
        return safe_ratio(self.total_returns, self.gross_sales)

    def to_dict(self) -> dict:
        return {
            "transactions": self.transactions,
            "gross_sales": money_str(self.gross_sales),
            "cost": money_str(self.cost),
            "gross_profit": money_str(self.gross_profit),
            "total_returns": money_str(self.total_returns),
            "returns_profit": money_str(self.returns_profit),
            "total_expenses": money_str(self.total_expenses),
            "net_sales": money_str(self.net_sales),
            "net_profit": money_str(self.net_profit),
            "net_revenue": money_str(self.net_revenue),
            "return_rate": format(self.return_rate.quantize(Decimal("0.0001")), "f"),
        }


@dataclass(frozen=True)
class SeriesPoint:
    period: str
    totals: PeriodTotals

    def to_dict(self) -> dict:
        return {"period": self.period, **self.totals.to_dict()}


@dataclass(frozen=True)
class CategoryPerformance:
    category: str
    units: int
    revenue: Decimal
    profit: Decimal

    def to_dict(self) -> dict:
        return {
            "category": self.category,
            "units": self.units,
            "revenue": money_str(self.revenue),
            "profit": money_str(self.profit),
        }


@dataclass(frozen=True)
class PeriodSummary:
    window: Window
    bucketing: str
    totals: PeriodTotals
    series: tuple[SeriesPoint, ...] = field(default_factory=tuple)
    category_performance: tuple[CategoryPerformance, ...] = field(default_factory=tuple)
    average_transaction: Decimal = ZERO

    def to_dict(self) -> dict:
        return {
            "window": {
                "label": self.window.label,
                "from": self.window.start.isoformat(),
                "to": self.window.end.isoformat(),
            },
            "bucketing": self.bucketing,
            "totals": self.totals.to_dict(),
            "series": [point.to_dict() for point in self.series],
            "category_performance": [row.to_dict() for row in self.category_performance],
            "average_transaction": money_str(self.average_transaction),
        }


# =============================================================================
# WINDOWS AND BUCKETS
# =============================================================================

def resolve_window(
    window: str | None = None,
    *,
    date_from: str | date | None = None,
    date_to: str | date | None = None,
    today: date | None = None,
) -> Window:
    """
    Turn a named window or an explicit from/to pair into a Window.

    Explicit dates win over the name. Both dates are required together and
    from must not be after to.
    """
    today = today or utcnow().date()

    if date_from is not None or date_to is not None:
        if date_from is None or date_to is None:
            raise ReportError("from and to must be given together")
        try:
            start = date_from if isinstance(date_from, date) else parse_iso_date(date_from)
            end = date_to if isinstance(date_to, date) else parse_iso_date(date_to)
        except ValueError:
            raise ReportError("from and to must be ISO-8601 dates (YYYY-MM-DD)")
        if start is None or end is None:
            raise ReportError("from and to must be ISO-8601 dates (YYYY-MM-DD)")
        if start > end:
            raise ReportError("from must be on or before to")
        return Window(start=start, end=end)

    name = window or "this-month"
    if name == "today":
        return Window(start=today, end=today, label=name)
    if name == "this-month":
        return Window(start=month_start(today), end=month_end(today), label=name)
    if name == "last-month":
        first = add_months(today, -1)
        return Window(start=first, end=month_end(first), label=name)
    if name == "this-year":
        return Window(start=date(today.year, 1, 1), end=date(today.year, 12, 31), label=name)
    raise ReportError(f"window must be one of: {', '.join(WINDOWS)}")


def bucket_window(reference: date, bucketing: str) -> Window:
    """The day, month or year containing `reference`."""
    if bucketing == "day":
        return Window(start=reference, end=reference, label="day")
    if bucketing == "month":
        return Window(start=month_start(reference), end=month_end(reference), label="month")
    if bucketing == "year":
        return Window(start=date(reference.year, 1, 1), end=date(reference.year, 12, 31), label="year")
    raise ReportError(f"bucketing must be one of: {', '.join(BUCKETINGS)}")


def _bucket_key(d: date, bucketing: str) -> str:
    if bucketing == "day":
        return d.isoformat()
    if bucketing == "month":
        return d.strftime("%Y-%m")
    return str(d.year)


def _bucket_keys(window: Window, bucketing: str) -> list[str]:
    if bucketing == "day":
        return [_bucket_key(d, "day") for d in iter_days(window.start, window.end)]
    if bucketing == "month":
        return [_bucket_key(d, "month") for d in iter_months(window.start, window.end)]
    return [str(year) for year in range(window.start.year, window.end.year + 1)]


# =============================================================================
# AGGREGATION (pure)
# =============================================================================

class _Accumulator:
    def __init__(self) -> None:
        self.transactions = 0
        self.gross_sales = ZERO
        self.cost = ZERO
        self.gross_profit = ZERO
        self.total_returns = ZERO
        self.returns_profit = ZERO
        self.total_expenses = ZERO

    def freeze(self) -> PeriodTotals:
        return PeriodTotals(
            transactions=self.transactions,
            gross_sales=self.gross_sales,
            cost=self.cost,
            gross_profit=self.gross_profit,
            total_returns=self.total_returns,
            returns_profit=self.returns_profit,
            total_expenses=self.total_expenses,
        )


def counted_orders(orders: Iterable[OrderRecord], *, include_pending: bool = False) -> list[OrderRecord]:
    if include_pending:
        return list(orders)
    return [order for order in orders if order.status == ORDER_STATUS_COMPLETED]


def return_profit(record: ReturnRecord, wac_by_product: Mapping[int, Decimal]) -> Decimal:
    """Profit reversed by a return: refund minus the cost of the units coming back."""
    cost = sum(
        (wac_by_product.get(line.product_id, ZERO) * line.quantity for line in record.lines),
        ZERO,
    )
    return return_amount(record) - cost


def aggregate(
    orders: Iterable[OrderRecord],
    returns: Iterable[ReturnRecord],
    expenses: Iterable[ExpenseRecord],
    *,
    bucketing: str = "day",
    window: Window | None = None,
    reference: date | None = None,
    wac_by_product: Mapping[int, Decimal] | None = None,
    include_pending: bool = False,
) -> PeriodSummary:
    """
    Aggregate a snapshot over a window.

    Args:
        bucketing: series granularity, day/month/year
        window: inclusive date range; when omitted, the bucket of `reference`
            (defaults to today) is used, e.g. the current month for "month"
        wac_by_product: cost basis table; missing products cost 0

    Returns:
        PeriodSummary with totals, a zero-filled series, category performance
        (revenue descending) and the average transaction.
    """
    if bucketing not in BUCKETINGS:
        raise ReportError(f"bucketing must be one of: {', '.join(BUCKETINGS)}")
    if window is None:
        window = bucket_window(reference or utcnow().date(), bucketing)
    wac = wac_by_product or {}

    total = _Accumulator()
    buckets = {key: _Accumulator() for key in _bucket_keys(window, bucketing)}
    categories: dict[str, list] = {}

    for order in counted_orders(orders, include_pending=include_pending):
        if not window.contains(order.created_at):
            continue
        valuation = net_sales_and_profit(order, wac)
        bucket = buckets[_bucket_key(order.created_at.date(), bucketing)]
        for acc in (total, bucket):
            acc.transactions += 1
            acc.gross_sales += valuation.net_sales
            acc.cost += valuation.cost
            acc.gross_profit += valuation.profit

        for line in order.lines:
            revenue = line.sell_price * line.quantity
            row = categories.setdefault(line.category_name, [0, ZERO, ZERO])
            row[0] += line.quantity
            row[1] += revenue
            row[2] += revenue - wac.get(line.product_id, ZERO) * line.quantity

    for record in returns:
        if not window.contains(record.created_at):
            continue
        refund = return_amount(record)
        reversed_profit = return_profit(record, wac)
        bucket = buckets[_bucket_key(record.created_at.date(), bucketing)]
        for acc in (total, bucket):
            acc.total_returns += refund
            acc.returns_profit += reversed_profit

    for expense in expenses:
        if not window.contains(expense.created_at):
            continue
        bucket = buckets[_bucket_key(expense.created_at.date(), bucketing)]
        for acc in (total, bucket):
            acc.total_expenses += expense.amount

    series = tuple(SeriesPoint(period=key, totals=acc.freeze()) for key, acc in buckets.items())
    totals = total.freeze()

    performance = sorted(
        (
            CategoryPerformance(category=name, units=units, revenue=revenue, profit=profit)
            for name, (units, revenue, profit) in categories.items()
            if revenue != 0
        ),
        key=lambda row: (-row.revenue, row.category),
    )

    selling_buckets = sum(1 for point in series if point.totals.gross_sales != 0)
    average = totals.net_revenue / max(1, selling_buckets)

    return PeriodSummary(
        window=window,
        bucketing=bucketing,
        totals=totals,
        series=series,
        category_performance=tuple(performance),
        average_transaction=average,
    )


def dashboard(
    orders: Iterable[OrderRecord],
    returns: Iterable[ReturnRecord],
    expenses: Iterable[ExpenseRecord],
    *,
    now: datetime,
    wac_by_product: Mapping[int, Decimal] | None = None,
    include_pending: bool = False,
) -> dict:
    """
    Today / this month / this year totals, plus the month's daily average
    transaction and the year's monthly sales-vs-profit series.
    """
    orders, returns, expenses = list(orders), list(returns), list(expenses)
    today = now.date()

    def _run(bucketing: str, window: Window) -> PeriodSummary:
        return aggregate(
            orders,
            returns,
            expenses,
            bucketing=bucketing,
            window=window,
            wac_by_product=wac_by_product,
            include_pending=include_pending,
        )

    day = _run("day", bucket_window(today, "day"))
    month = _run("day", bucket_window(today, "month"))
    year = _run("month", bucket_window(today, "year"))

    return {
        "as_of": to_utc_z(now),
        "today": day.totals.to_dict(),
        "this_month": {
            **month.totals.to_dict(),
            "average_transaction": money_str(month.average_transaction),
        },
        "this_year": year.totals.to_dict(),
        "monthly": [
            {
                "period": point.period,
                "sales": money_str(point.totals.gross_sales),
                "profit": money_str(point.totals.gross_profit),
            }
            for point in year.series
        ],
    }


# =============================================================================
# DB-BACKED REPORTS
# =============================================================================

def _fetch_snapshot(start: datetime, end: datetime):
    orders = order_service.order_snapshot(start=start, end=end)
    returns = return_service.return_snapshot(start=start, end=end)
    expenses = expense_service.expense_snapshot(start=start, end=end)
    wac = compute_wac_by_product(stock_ledger_service.ledger_snapshot())
    return orders, returns, expenses, wac


def period_report(
    *,
    window: str | None = None,
    date_from: str | None = None,
    date_to: str | None = None,
    bucketing: str = "day",
    include_pending: bool = False,
    today: date | None = None,
) -> dict:
    if bucketing not in BUCKETINGS:
        raise ReportError(f"bucketing must be one of: {', '.join(BUCKETINGS)}")
    resolved = resolve_window(window, date_from=date_from, date_to=date_to, today=today)
    start, end = resolved.bounds()
    orders, returns, expenses, wac = _fetch_snapshot(start, end)
    summary = aggregate(
        orders,
        returns,
        expenses,
        bucketing=bucketing,
        window=resolved,
        wac_by_product=wac,
        include_pending=include_pending,
    )
    return summary.to_dict()


def dashboard_summary(*, now: datetime | None = None, include_pending: bool = False) -> dict:
    now = now or utcnow()
    year = bucket_window(now.date(), "year")
    start, end = year.bounds()
    orders, returns, expenses, wac = _fetch_snapshot(start, end)
    return dashboard(
        orders,
        returns,
        expenses,
        now=now,
        wac_by_product=wac,
        include_pending=include_pending,
    )
