from flask import Blueprint, jsonify, request, current_app

from retailpos.decorators import require_operator, require_role
from retailpos.services import reporting_service
from retailpos.time_utils import local_business_date, parse_iso_date, utcnow


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/daily")
@require_operator
@require_role("admin", "manager")
def daily_report():
    """Daily aggregate for ?date=YYYY-MM-DD (defaults to today, store-local)."""
    try:
        report_date = parse_iso_date(request.args.get("date"))
    except ValueError:
        return jsonify({"error": "date must be YYYY-MM-DD"}), 400

    if report_date is None:
        report_date = local_business_date(utcnow(), current_app.config["STORE_TIMEZONE"])

    report = reporting_service.get_daily_report(report_date)
    if report is None:
        return jsonify({"error": "No sales recorded for this date", "date": report_date.isoformat()}), 404
    return jsonify({"report": report.to_dict()}), 200
