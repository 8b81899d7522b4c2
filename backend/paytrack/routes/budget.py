# Overview: Flask API routes for budget plans, their items and conversion into payment items.

from flask import Blueprint, jsonify

from ..decorators import actor_from_request, bool_arg, json_body, json_errors, pop_meta
from ..services import budget_service


budget_bp = Blueprint("budget", __name__, url_prefix="/api/budget")


@budget_bp.post("/plans")
@json_errors("Failed to create budget plan")
def create_plan_route():
    data = json_body()
    actor = actor_from_request(data)
    payload, _reason = pop_meta(data)
    plan = budget_service.create_plan(payload, actor=actor)
    return jsonify({"plan": plan.to_dict()}), 201


@budget_bp.get("/plans")
@json_errors("Failed to list budget plans")
def list_plans_route():
    plans = budget_service.list_plans_with_items(include_closed=bool_arg("include_closed"))
    return jsonify({"plans": [p.to_dict(include_items=True) for p in plans]}), 200


@budget_bp.get("/plans/<int:plan_id>")
@json_errors("Failed to get budget plan")
def get_plan_route(plan_id: int):
    plan = budget_service.get_plan(plan_id)
    return jsonify({"plan": plan.to_dict(include_items=True)}), 200


@budget_bp.post("/plans/<int:plan_id>/items")
@json_errors("Failed to add budget item")
def add_budget_item_route(plan_id: int):
    data = json_body()
    actor = actor_from_request(data)
    payload, _reason = pop_meta(data)
    item = budget_service.add_budget_item(plan_id, payload, actor=actor)
    return jsonify({"budget_item": item.to_dict()}), 201


@budget_bp.post("/items/<int:budget_item_id>/convert")
@json_errors("Failed to convert budget item")
def convert_budget_item_route(budget_item_id: int):
    """
    Returns:
        201: budget item (now converted) and the new payment item
        409: already converted
    """
    data = json_body()
    budget_item, payment_item = budget_service.convert_budget_item(
        budget_item_id, actor=actor_from_request(data)
    )
    return jsonify({"budget_item": budget_item.to_dict(), "payment_item": payment_item.to_dict()}), 201
