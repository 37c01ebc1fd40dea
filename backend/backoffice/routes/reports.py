from flask import Blueprint, current_app, jsonify, request

from ..services import reporting_service


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _flag(name: str) -> bool:
    return request.args.get(name, "false").lower() == "true"


@reports_bp.get("/summary")
def period_summary():
    """
    Query params:
    - window: today | this-month | last-month | this-year (default REPORT_DEFAULT_WINDOW)
    - from, to: YYYY-MM-DD (optional, override window; inclusive)
    - bucketing: day | month | year (default day)
    - include_pending: true | false (default false)
    """
    window = request.args.get("window") or current_app.config["REPORT_DEFAULT_WINDOW"]

    try:
        report = reporting_service.period_report(
            window=window,
            date_from=request.args.get("from"),
            date_to=request.args.get("to"),
            bucketing=request.args.get("bucketing", "day"),
            include_pending=_flag("include_pending"),
        )
        return jsonify(report), 200
    except reporting_service.ReportError as exc:
        return jsonify({"error": str(exc)}), 400


@reports_bp.get("/dashboard")
def dashboard():
    report = reporting_service.dashboard_summary(include_pending=_flag("include_pending"))
    return jsonify(report), 200
