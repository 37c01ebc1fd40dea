# Overview: Pytest coverage for the Flask CLI command groups.

import json


class TestCli:
    def test_low_stock_lists_out_of_stock(self, app, db_session, make_product, receive):
        empty = make_product("EMPTY-1", "Empty shelf")
        full = make_product("FULL-1", "Full shelf")
        receive(full, 100, "1")

        result = app.test_cli_runner().invoke(args=["inventory", "low-stock", "--threshold", "5"])

        assert result.exit_code == 0
        assert empty.sku in result.output
        assert full.sku not in result.output

    def test_report_summary_prints_json(self, app, db_session):
        result = app.test_cli_runner().invoke(
            args=["reports", "summary", "--from", "2024-03-01", "--to", "2024-03-02"]
        )

        assert result.exit_code == 0
        report = json.loads(result.output)
        assert [row["period"] for row in report["series"]] == ["2024-03-01", "2024-03-02"]

    def test_report_summary_rejects_reversed_range(self, app, db_session):
        result = app.test_cli_runner().invoke(
            args=["reports", "summary", "--from", "2024-03-02", "--to", "2024-03-01"]
        )
        assert result.exit_code != 0
