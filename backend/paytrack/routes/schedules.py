# Overview: Flask API routes for manual payment schedules.

from flask import Blueprint, jsonify, request

from ..decorators import actor_from_request, bool_arg, int_arg, json_body, json_errors, pop_meta
from ..services import schedule_service
from ..validation import ValidationError
from paytrack.time_utils import parse_iso_date, today as business_today


schedules_bp = Blueprint("schedules", __name__, url_prefix="/api/schedules")


@schedules_bp.post("")
@json_errors("Failed to create payment schedule")
def create_schedule_route():
    data = json_body()
    actor = actor_from_request(data)
    payload, _reason = pop_meta(data)
    schedule = schedule_service.create_schedule(payload, actor=actor)
    return jsonify({"schedule": schedule.to_dict()}), 201


@schedules_bp.get("")
@json_errors("Failed to list payment schedules")
def list_schedules_route():
    year = int_arg("year")
    month = int_arg("month")
    if year is None or month is None:
        raise ValidationError("year and month are required")
    schedules = schedule_service.list_schedules(
        year, month, include_closed=bool_arg("include_closed", default=True)
    )
    return jsonify({"schedules": [s.to_dict() for s in schedules]}), 200


@schedules_bp.get("/items/<int:item_id>")
@json_errors("Failed to list item schedules")
def item_schedules_route(item_id: int):
    schedules = schedule_service.schedules_for_item(item_id)
    return jsonify({"schedules": [s.to_dict() for s in schedules]}), 200


@schedules_bp.post("/<int:schedule_id>/reschedule")
@json_errors("Failed to reschedule payment")
def reschedule_route(schedule_id: int):
    data = json_body()
    if not data.get("scheduled_date"):
        raise ValidationError("scheduled_date is required")
    schedule = schedule_service.reschedule(
        schedule_id,
        data["scheduled_date"],
        actor=actor_from_request(data),
        reason=data.get("reason"),
    )
    return jsonify({"schedule": schedule.to_dict()}), 200


@schedules_bp.post("/<int:schedule_id>/complete")
@json_errors("Failed to complete payment schedule")
def complete_schedule_route(schedule_id: int):
    data = json_body()
    schedule = schedule_service.complete_schedule(schedule_id, actor=actor_from_request(data), reason=data.get("reason"))
    return jsonify({"schedule": schedule.to_dict()}), 200


@schedules_bp.post("/<int:schedule_id>/cancel")
@json_errors("Failed to cancel payment schedule")
def cancel_schedule_route(schedule_id: int):
    data = json_body()
    schedule = schedule_service.cancel_schedule(schedule_id, actor=actor_from_request(data), reason=data.get("reason"))
    return jsonify({"schedule": schedule.to_dict()}), 200


@schedules_bp.get("/overdue")
@json_errors("Failed to list overdue schedules")
def overdue_schedules_route():
    as_of = request.args.get("as_of")
    try:
        today = parse_iso_date(as_of) if as_of else business_today()
    except (TypeError, ValueError):
        raise ValidationError("as_of must be an ISO-8601 date (YYYY-MM-DD)")
    schedules = schedule_service.list_overdue_schedules(today=today)
    rows = []
    for schedule in schedules:
        row = schedule.to_dict()
        row["overdue_days"] = (today - schedule.scheduled_date).days
        rows.append(row)
    return jsonify({"schedules": rows, "count": len(rows)}), 200


@schedules_bp.get("/unscheduled")
@json_errors("Failed to list unscheduled items")
def unscheduled_items_route():
    year = int_arg("year")
    month = int_arg("month")
    if year is None or month is None:
        raise ValidationError("year and month are required")
    items = schedule_service.list_unscheduled_items(year, month)
    return jsonify({"items": items, "count": len(items)}), 200
