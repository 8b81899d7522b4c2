# Overview: Flask API route for waterfall allocation of one payment across a scope.

from flask import Blueprint, jsonify

from ..decorators import actor_from_request, amount_cents_from, json_body, json_errors
from ..services import allocation_service, item_service
from ..validation import ValidationError
from paytrack.time_utils import parse_iso_date


allocations_bp = Blueprint("allocations", __name__, url_prefix="/api/allocations")


@allocations_bp.post("")
@json_errors("Failed to allocate payment")
def allocate_route():
    """
    Request body:
    {
        "category_id": 1,                 (and/or fixed_category_id + fixed_sub_option_id)
        "project_id": 2,                  (optional when a category is given)
        "amount_cents": 500000,           (or "amount": "5000.00")
        "payment_date": "2026-03-10",     (optional, defaults to today)
        "notes": "March transfer",        (optional)
        "reason": "..."                   (optional)
    }

    Returns:
        200: allocation lines plus leftover_cents (leftover is not an error)
        400: invalid scope or amount
    """
    data = json_body()
    scope = item_service.scope_from_payload(data)
    amount_cents = amount_cents_from(data)

    payment_date = None
    if data.get("payment_date"):
        try:
            payment_date = parse_iso_date(data["payment_date"])
        except (TypeError, ValueError, AttributeError):
            raise ValidationError("payment_date must be an ISO-8601 date (YYYY-MM-DD)")

    result = allocation_service.allocate(
        scope,
        amount_cents,
        payment_date=payment_date,
        actor=actor_from_request(data),
        reason=data.get("reason"),
        notes=data.get("notes"),
    )
    return jsonify(result.to_dict()), 200
