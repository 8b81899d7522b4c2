# Overview: Flask API routes for the monthly cashflow forecast (read-only).

from flask import Blueprint, jsonify, request

from ..decorators import bool_arg, int_arg, json_errors
from ..services import forecast_service
from ..services.forecast import Visibility


forecast_bp = Blueprint("forecast", __name__, url_prefix="/api/forecast")


@forecast_bp.get("")
@json_errors("Failed to build forecast")
def forecast_route():
    """
    Query params:
    - months: horizon (default PAYTRACK_FORECAST_MONTHS)
    - hide: comma-separated buckets excluded from totals
      (budget, scheduled, estimated, recurring, paid)
    - details: include per-line drill-down (default true)
    """
    hidden = (request.args.get("hide") or "").split(",")
    result = forecast_service.get_forecast(
        months=int_arg("months"),
        visibility=Visibility.from_hidden(hidden),
        include_details=bool_arg("details", default=True),
    )
    return jsonify(result), 200


@forecast_bp.get("/cashflow")
@json_errors("Failed to list cashflow records")
def cashflow_route():
    records = forecast_service.cashflow_records(months_back=int_arg("months_back"))
    return jsonify({
        "records": [
            {
                "record_id": r.record_id,
                "item_id": r.item_id,
                "item_name": r.name,
                "amount_cents": r.amount_cents,
                "payment_month": r.payment_month,
                "due_month": r.due_month,
                "is_current_month_item": r.is_current,
                "origin_label": r.origin_label,
            }
            for r in records
        ]
    }), 200
