# Overview: Pytest coverage for period aggregation, windows and the dashboard.

"""
Reporting Service Tests

Aggregation is pure over snapshot records, so most tests build records by
hand; the last class exercises the DB-backed report end to end.
"""

from datetime import date, datetime
from decimal import Decimal

import pytest

from backoffice.records import (
    ExpenseRecord,
    OrderLineRecord,
    OrderRecord,
    ReturnLineRecord,
    ReturnRecord,
)
from backoffice.services import reporting_service
from backoffice.services.reporting_service import ReportError, Window, aggregate, resolve_window


def order(order_id, when, qty, price, product_id=1, discount="0", status="Completed", category="Beverages"):
    return OrderRecord(
        id=order_id,
        created_at=when,
        discount=Decimal(discount),
        status=status,
        lines=(
            OrderLineRecord(
                product_id=product_id,
                quantity=qty,
                sell_price=Decimal(price),
                category_name=category,
            ),
        ),
    )


def refund(return_id, when, qty, price, product_id=1, override=None):
    return ReturnRecord(
        id=return_id,
        created_at=when,
        lines=(ReturnLineRecord(product_id=product_id, quantity=qty, sell_price=Decimal(price)),),
        return_amount=Decimal(override) if override is not None else None,
    )


def expense(expense_id, when, amount):
    return ExpenseRecord(id=expense_id, amount=Decimal(amount), created_at=when)


MARCH_1_3 = Window(start=date(2024, 3, 1), end=date(2024, 3, 3))


class TestResolveWindow:
    def test_this_month(self):
        w = resolve_window("this-month", today=date(2024, 2, 14))
        assert (w.start, w.end) == (date(2024, 2, 1), date(2024, 2, 29))

    def test_last_month_across_year_boundary(self):
        w = resolve_window("last-month", today=date(2024, 1, 10))
        assert (w.start, w.end) == (date(2023, 12, 1), date(2023, 12, 31))

    def test_this_year(self):
        w = resolve_window("this-year", today=date(2024, 6, 1))
        assert (w.start, w.end) == (date(2024, 1, 1), date(2024, 12, 31))

    def test_explicit_range_wins(self):
        w = resolve_window("this-year", date_from="2024-03-01", date_to="2024-03-03", today=date(2024, 6, 1))
        assert w == MARCH_1_3

    def test_from_after_to_rejected(self):
        with pytest.raises(ReportError):
            resolve_window(date_from="2024-03-04", date_to="2024-03-03")

    def test_half_open_range_rejected(self):
        with pytest.raises(ReportError):
            resolve_window(date_from="2024-03-04")

    def test_unknown_window_rejected(self):
        with pytest.raises(ReportError):
            resolve_window("next-week")

    def test_bad_date_rejected(self):
        with pytest.raises(ReportError):
            resolve_window(date_from="2024-13-01", date_to="2024-13-02")


class TestAggregate:
    def test_totals_and_net_revenue(self):
        orders = [order(1, datetime(2024, 3, 1, 9), 2, "100", discount="10")]
        returns = [refund(1, datetime(2024, 3, 2, 9), 1, "100")]
        expenses = [expense("exp-1", datetime(2024, 3, 3, 9), "30")]

        summary = aggregate(orders, returns, expenses, window=MARCH_1_3, wac_by_product={1: Decimal("60")})
        t = summary.totals

        assert t.transactions == 1
        assert t.gross_sales == Decimal("190")
        assert t.cost == Decimal("120")
        assert t.gross_profit == Decimal("70")
        assert t.total_returns == Decimal("100")
        assert t.returns_profit == Decimal("40")
        assert t.total_expenses == Decimal("30")
        assert t.net_sales == Decimal("90")
        assert t.net_revenue == Decimal("60")
        assert t.net_profit == Decimal("0")

    def test_return_rate_is_zero_without_sales(self):
        returns = [refund(1, datetime(2024, 3, 1), 1, "50")]
        summary = aggregate([], returns, [], window=MARCH_1_3)
        assert summary.totals.gross_sales == Decimal("0")
        assert summary.totals.return_rate == Decimal("0")

    def test_return_rate(self):
        orders = [order(1, datetime(2024, 3, 1), 4, "50")]
        returns = [refund(1, datetime(2024, 3, 1), 1, "50")]
        summary = aggregate(orders, returns, [], window=MARCH_1_3)
        assert summary.totals.return_rate == Decimal("0.25")

    def test_daily_series_is_gap_free(self):
        """Activity on day 1 and 3 -> three rows, day 2 all zero."""
        orders = [
            order(1, datetime(2024, 3, 1, 10), 1, "10"),
            order(2, datetime(2024, 3, 3, 18), 1, "20"),
        ]
        summary = aggregate(orders, [], [], bucketing="day", window=MARCH_1_3)

        assert [p.period for p in summary.series] == ["2024-03-01", "2024-03-02", "2024-03-03"]
        assert [p.totals.gross_sales for p in summary.series] == [Decimal("10"), Decimal("0"), Decimal("20")]
        assert summary.series[1].totals.transactions == 0

    def test_monthly_series(self):
        window = Window(start=date(2024, 1, 1), end=date(2024, 12, 31))
        orders = [order(1, datetime(2024, 2, 10), 1, "10"), order(2, datetime(2024, 11, 1), 1, "5")]
        summary = aggregate(orders, [], [], bucketing="month", window=window)

        assert len(summary.series) == 12
        by_period = {p.period: p.totals.gross_sales for p in summary.series}
        assert by_period["2024-02"] == Decimal("10")
        assert by_period["2024-11"] == Decimal("5")
        assert by_period["2024-06"] == Decimal("0")

    def test_outside_window_is_ignored(self):
        orders = [order(1, datetime(2024, 2, 29, 23, 59), 1, "10"), order(2, datetime(2024, 3, 4), 1, "10")]
        summary = aggregate(orders, [], [], window=MARCH_1_3)
        assert summary.totals.transactions == 0

    def test_window_end_day_is_inclusive(self):
        orders = [order(1, datetime(2024, 3, 3, 23, 59, 59), 1, "10")]
        summary = aggregate(orders, [], [], window=MARCH_1_3)
        assert summary.totals.gross_sales == Decimal("10")

    def test_pending_orders_excluded_by_default(self):
        orders = [
            order(1, datetime(2024, 3, 1), 1, "10"),
            order(2, datetime(2024, 3, 1), 1, "99", status="Pending"),
        ]
        assert aggregate(orders, [], [], window=MARCH_1_3).totals.gross_sales == Decimal("10")
        assert aggregate(orders, [], [], window=MARCH_1_3, include_pending=True).totals.gross_sales == Decimal("109")

    def test_reference_bucket_when_no_window(self):
        orders = [order(1, datetime(2024, 3, 15), 1, "10"), order(2, datetime(2024, 4, 1), 1, "10")]
        summary = aggregate(orders, [], [], bucketing="month", reference=date(2024, 3, 2))
        assert summary.window == Window(start=date(2024, 3, 1), end=date(2024, 3, 31), label="month")
        assert summary.totals.transactions == 1

    def test_category_performance_sorted_by_revenue(self):
        orders = [
            order(1, datetime(2024, 3, 1), 1, "10", product_id=1, category="Snacks"),
            order(2, datetime(2024, 3, 1), 3, "10", product_id=2, category="Beverages"),
            order(3, datetime(2024, 3, 2), 1, "5", product_id=3, category="Uncategorized"),
            order(4, datetime(2024, 3, 2), 2, "0", product_id=4, category="Freebies"),
        ]
        summary = aggregate(orders, [], [], window=MARCH_1_3)

        assert [(row.category, row.revenue) for row in summary.category_performance] == [
            ("Beverages", Decimal("30")),
            ("Snacks", Decimal("10")),
            ("Uncategorized", Decimal("5")),
        ]

    def test_average_transaction_over_selling_days(self):
        orders = [
            order(1, datetime(2024, 3, 1), 1, "10"),
            order(2, datetime(2024, 3, 3), 1, "30"),
        ]
        summary = aggregate(orders, [], [], window=MARCH_1_3)
        assert summary.average_transaction == Decimal("20")

    def test_average_transaction_without_sales(self):
        summary = aggregate([], [], [expense("exp-1", datetime(2024, 3, 1), "12")], window=MARCH_1_3)
        assert summary.average_transaction == Decimal("-12")

    def test_aggregation_is_idempotent(self):
        orders = [order(1, datetime(2024, 3, 1), 2, "100", discount="5")]
        returns = [refund(1, datetime(2024, 3, 2), 1, "100", override="90")]
        expenses = [expense("exp-1", datetime(2024, 3, 3), "7.50")]
        wac = {1: Decimal("33.33")}

        first = aggregate(orders, returns, expenses, window=MARCH_1_3, wac_by_product=wac)
        second = aggregate(orders, returns, expenses, window=MARCH_1_3, wac_by_product=wac)

        assert first == second
        assert first.to_dict() == second.to_dict()

    def test_unknown_bucketing_rejected(self):
        with pytest.raises(ReportError):
            aggregate([], [], [], bucketing="week", window=MARCH_1_3)

    def test_to_dict_shape(self):
        summary = aggregate([order(1, datetime(2024, 3, 1), 1, "10")], [], [], window=MARCH_1_3)
        data = summary.to_dict()

        assert data["window"] == {"label": "custom", "from": "2024-03-01", "to": "2024-03-03"}
        assert data["totals"]["gross_sales"] == "10.00"
        assert data["totals"]["return_rate"] == "0.0000"
        assert len(data["series"]) == 3


class TestDashboard:
    def test_today_month_year_buckets(self):
        now = datetime(2024, 3, 15, 12, 0)
        orders = [
            order(1, datetime(2024, 3, 15, 9), 1, "10"),
            order(2, datetime(2024, 3, 2, 9), 1, "20"),
            order(3, datetime(2024, 1, 20, 9), 1, "40"),
            order(4, datetime(2023, 12, 31, 9), 1, "80"),
        ]
        returns = [refund(1, datetime(2024, 3, 15, 10), 1, "10")]

        board = reporting_service.dashboard(orders, returns, [], now=now)

        assert board["today"]["gross_sales"] == "10.00"
        assert board["today"]["net_sales"] == "0.00"
        assert board["this_month"]["gross_sales"] == "30.00"
        assert board["this_month"]["transactions"] == 2
        assert board["this_month"]["average_transaction"] == "10.00"
        assert board["this_year"]["gross_sales"] == "70.00"
        assert [m["period"] for m in board["monthly"]][:3] == ["2024-01", "2024-02", "2024-03"]
        assert board["monthly"][0]["sales"] == "40.00"


class TestPeriodReport:
    def test_report_from_database(self, db_session, product, receive, sell, give_back):
        receive(product, 10, "60", created_at=datetime(2024, 2, 1))
        sell(product, 2, "100", discount="10", created_at=datetime(2024, 3, 1, 10))
        sell(product, 1, "100", status="Pending", created_at=datetime(2024, 3, 2, 10))
        give_back(product, 1, "100", created_at=datetime(2024, 3, 3, 10))

        report = reporting_service.period_report(date_from="2024-03-01", date_to="2024-03-03")

        assert report["totals"]["transactions"] == 1
        assert report["totals"]["gross_sales"] == "190.00"
        assert report["totals"]["gross_profit"] == "70.00"
        assert report["totals"]["total_returns"] == "100.00"
        assert report["category_performance"][0]["category"] == "Beverages"
        assert [row["period"] for row in report["series"]] == ["2024-03-01", "2024-03-02", "2024-03-03"]
