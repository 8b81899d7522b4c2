# Overview: Flask API routes for payment items; parses input and returns JSON responses.

"""
Payment Item API Routes

DESIGN:
- Create items (monthly/installment plans expand into planned records)
- Direct edits and direct payments of one item
- Soft delete / restore / purge lifecycle, every step audited
- Overdue refresh and per-scope outstanding summary

Amounts are integer cents in and out.
"""

from flask import Blueprint, jsonify, request

from ..decorators import (
    actor_from_request,
    amount_cents_from,
    bool_arg,
    int_arg,
    json_body,
    json_errors,
    pop_meta,
)
from ..models.payments import VALID_ITEM_STATUSES
from ..repositories import ItemFilters
from ..services import item_service
from ..validation import ValidationError
from paytrack.time_utils import parse_iso_date


items_bp = Blueprint("items", __name__, url_prefix="/api/items")


def _parse_date_arg(value, field: str):
    if value is None or value == "":
        return None
    try:
        return parse_iso_date(value)
    except (TypeError, ValueError, AttributeError):
        raise ValidationError(f"{field} must be an ISO-8601 date (YYYY-MM-DD)")


# =============================================================================
# CREATE / READ
# =============================================================================

@items_bp.post("")
@json_errors("Failed to create payment item")
def create_item_route():
    """
    Request body:
    {
        "name": "Office rent",
        "category_id": 1,                  (or fixed_category_id + fixed_sub_option_id)
        "project_id": 2,                   (optional)
        "total_amount_cents": 1200000,
        "payment_type": "monthly",         (single | monthly | installment)
        "start_date": "2026-01-01",
        "end_date": "2026-04-01",          (required for a schedule)
        "priority": 1,
        "notes": "..."
    }
    """
    data = json_body()
    actor = actor_from_request(data)
    payload, reason = pop_meta(data)
    item = item_service.create_item(payload, actor=actor, reason=reason)
    records = item_service.list_records(item.id, planned=True)
    return jsonify({"item": item.to_dict(), "planned_records": [r.to_dict() for r in records]}), 201


@items_bp.get("")
@json_errors("Failed to list payment items")
def list_items_route():
    statuses = request.args.get("status")
    status_tuple = None
    if statuses:
        status_tuple = tuple(s.strip() for s in statuses.split(",") if s.strip())
        bad = [s for s in status_tuple if s not in VALID_ITEM_STATUSES]
        if bad:
            raise ValidationError(f"Invalid status: {', '.join(bad)}")

    category = item_service.category_from_fields(
        int_arg("category_id"),
        int_arg("fixed_category_id"),
        int_arg("fixed_sub_option_id"),
        required=False,
    )
    filters = ItemFilters(
        category=category,
        project_id=int_arg("project_id"),
        statuses=status_tuple,
        exclude_paid=bool_arg("exclude_paid"),
        include_deleted=bool_arg("include_deleted"),
    )
    items = item_service.list_items(filters)
    return jsonify({"items": [i.to_dict() for i in items], "count": len(items)}), 200


@items_bp.get("/deleted")
@json_errors("Failed to list deleted payment items")
def list_deleted_items_route():
    items = item_service.list_deleted_items()
    return jsonify({"items": [i.to_dict() for i in items], "count": len(items)}), 200


@items_bp.get("/<int:item_id>")
@json_errors("Failed to get payment item")
def get_item_route(item_id: int):
    item = item_service.get_item(item_id, include_deleted=bool_arg("include_deleted"))
    return jsonify({"item": item.to_dict()}), 200


@items_bp.get("/<int:item_id>/records")
@json_errors("Failed to list payment records")
def list_records_route(item_id: int):
    planned = request.args.get("planned")
    planned_flag = None if planned is None else bool_arg("planned")
    records = item_service.list_records(item_id, planned=planned_flag)
    return jsonify({"records": [r.to_dict() for r in records]}), 200


# =============================================================================
# EDITS AND PAYMENTS
# =============================================================================

@items_bp.patch("/<int:item_id>")
@json_errors("Failed to update payment item")
def update_item_route(item_id: int):
    data = json_body()
    actor = actor_from_request(data)
    payload, reason = pop_meta(data)
    item = item_service.update_item(item_id, payload, actor=actor, reason=reason)
    return jsonify({"item": item.to_dict()}), 200


@items_bp.post("/<int:item_id>/payments")
@json_errors("Failed to record payment")
def record_payment_route(item_id: int):
    """
    Request body:
    {
        "amount_cents": 50000,         (or "amount": "500.00")
        "payment_date": "2026-02-01",  (optional, defaults to today)
        "method": "transfer",          (optional)
        "notes": "..."                 (optional)
    }
    """
    data = json_body()
    actor = actor_from_request(data)
    item, record = item_service.record_payment(
        item_id,
        amount_cents_from(data),
        payment_date=_parse_date_arg(data.get("payment_date"), "payment_date"),
        method=data.get("method"),
        notes=data.get("notes"),
        actor=actor,
    )
    return jsonify({"item": item.to_dict(), "record": record.to_dict()}), 201


@items_bp.patch("/records/<int:record_id>")
@json_errors("Failed to correct payment record")
def update_record_route(record_id: int):
    """
    Correct an actual payment record; the item's paid amount and status follow.

    Body keys: amount_cents (or amount), payment_date, method, notes, plus reason.
    """
    data = json_body()
    actor = actor_from_request(data)
    payload, reason = pop_meta(data)
    if "amount" in payload:
        payload["amount_cents"] = amount_cents_from(payload)
        payload.pop("amount")
    item, record = item_service.update_record(record_id, payload, actor=actor, reason=reason)
    return jsonify({"item": item.to_dict(), "record": record.to_dict()}), 200


@items_bp.delete("/records/<int:record_id>")
@json_errors("Failed to delete payment record")
def delete_record_route(record_id: int):
    data = json_body()
    item = item_service.delete_record(record_id, actor=actor_from_request(data), reason=data.get("reason"))
    return jsonify({"item": item.to_dict(), "record_id": record_id}), 200


@items_bp.post("/<int:item_id>/recompute")
@json_errors("Failed to recompute payment item")
def recompute_item_route(item_id: int):
    data = json_body()
    item = item_service.recompute_item_amounts(item_id, actor=actor_from_request(data), reason=data.get("reason"))
    return jsonify({"item": item.to_dict()}), 200


@items_bp.post("/batch")
@json_errors("Failed to batch update payment items")
def batch_update_route():
    """
    Request body:
    {
        "item_ids": [1, 2, 3],
        "action": "update_priority",   (update_priority | update_category | archive)
        "data": {"priority": 2},       (category_id or fixed_category_id + fixed_sub_option_id for update_category)
        "reason": "..."                (optional)
    }
    """
    data = json_body()
    items = item_service.batch_update_items(
        data.get("item_ids"),
        data.get("action"),
        data.get("data"),
        actor=actor_from_request(data),
        reason=data.get("reason"),
    )
    return jsonify({"items": [i.to_dict() for i in items], "count": len(items)}), 200


# =============================================================================
# LIFECYCLE
# =============================================================================

@items_bp.delete("/<int:item_id>")
@json_errors("Failed to delete payment item")
def soft_delete_item_route(item_id: int):
    data = json_body()
    item = item_service.soft_delete_item(item_id, actor=actor_from_request(data), reason=data.get("reason"))
    return jsonify({"item": item.to_dict()}), 200


@items_bp.post("/<int:item_id>/restore")
@json_errors("Failed to restore payment item")
def restore_item_route(item_id: int):
    data = json_body()
    item = item_service.restore_item(item_id, actor=actor_from_request(data), reason=data.get("reason"))
    return jsonify({"item": item.to_dict()}), 200


@items_bp.post("/<int:item_id>/purge")
@json_errors("Failed to purge payment item")
def purge_item_route(item_id: int):
    """Irreversible; the item must be soft-deleted first."""
    data = json_body()
    result = item_service.purge_item(item_id, actor=actor_from_request(data), reason=data.get("reason"))
    return jsonify(result), 200


# =============================================================================
# SWEEPS AND SUMMARIES
# =============================================================================

@items_bp.post("/refresh-overdue")
@json_errors("Failed to refresh overdue items")
def refresh_overdue_route():
    data = json_body()
    changed = item_service.refresh_overdue(
        today=_parse_date_arg(data.get("as_of"), "as_of"),
        actor=actor_from_request(data),
    )
    return jsonify({"changed": [i.to_dict() for i in changed], "count": len(changed)}), 200


@items_bp.get("/summary")
@json_errors("Failed to build scope summary")
def scope_summary_route():
    scope = item_service.scope_from_payload(request.args.to_dict())
    return jsonify(item_service.scope_summary(scope)), 200
