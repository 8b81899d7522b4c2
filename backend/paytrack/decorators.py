# Overview: Request helpers and error-mapping decorators for API routes.

from functools import wraps
from flask import request, jsonify, current_app
from sqlalchemy.orm.exc import StaleDataError

from .money import to_cents
from .validation import ValidationError, NotFoundError, ConflictError


def json_errors(failure_message: str):
    """
    Map domain errors to JSON responses.

    - ValidationError -> 400
    - NotFoundError -> 404
    - ConflictError, StaleDataError -> 409
    - anything else -> logged with traceback, generic 500
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            try:
                return f(*args, **kwargs)
            except NotFoundError as e:
                return jsonify({"error": str(e)}), 404
            except ConflictError as e:
                return jsonify({"error": str(e)}), 409
            except StaleDataError:
                current_app.logger.warning("%s: concurrent update", failure_message)
                return jsonify({"error": "The record was changed by another request; retry"}), 409
            except ValidationError as e:
                return jsonify({"error": str(e)}), 400
            except Exception:
                current_app.logger.exception(failure_message)
                return jsonify({"error": "Internal server error"}), 500

        return decorated_function

    return decorator


def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    return data


def actor_from_request(data: dict | None = None) -> str:
    """X-Actor header, else the JSON "actor" field, else the configured default."""
    actor = request.headers.get("X-Actor")
    if not actor and data:
        actor = data.get("actor")
    if actor and str(actor).strip():
        return str(actor).strip()[:255]
    return current_app.config.get("PAYTRACK_DEFAULT_ACTOR", "system")


def pop_meta(data: dict) -> tuple[dict, str | None]:
    """Split request-only keys (actor, reason) from the model payload."""
    payload = dict(data)
    payload.pop("actor", None)
    reason = payload.pop("reason", None)
    return payload, reason


def int_arg(name: str, default=None):
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer")


def bool_arg(name: str, default: bool = False) -> bool:
    raw = request.args.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes")


def amount_cents_from(data: dict, *, field: str = "amount_cents", decimal_field: str = "amount"):
    """
    Integer cents from a request body.

    Accepts either `amount_cents` (integer cents) or `amount` (decimal string
    in whole units, e.g. "1234.50"), never both.
    """
    cents = data.get(field)
    amount = data.get(decimal_field)
    if cents is not None and amount is not None:
        raise ValidationError(f"Provide either {field} or {decimal_field}, not both")
    if cents is not None:
        return cents
    if amount is not None:
        return to_cents(amount)
    raise ValidationError(f"{field} is required")
