# Overview: Domain error types and payload validation against model columns and per-operation policies.

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from sqlalchemy import Boolean, Date, Integer, String, Text

from paytrack.time_utils import parse_iso_date


class ValidationError(ValueError):
    """400-level input problem."""


class NotFoundError(LookupError):
    """404-level reference to a record that does not exist."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., restoring an item that is not deleted)."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    What one operation accepts for one model:
    - writable_fields: keys a client may send; anything else is rejected
    - required_on_create: keys that must be present and non-null on create
    """
    writable_fields: set[str]
    required_on_create: set[str] = field(default_factory=set)


def _as_int(key: str, value: Any) -> int:
    # bool is an int subclass; True is not an amount
    if isinstance(value, bool) or isinstance(value, float):
        raise ValidationError(f"{key} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        digits = text[1:] if text.startswith("-") else text
        if not digits.isdigit():
            raise ValidationError(f"{key} must be a plain integer (no decimals or exponents)")
        return int(text)
    raise ValidationError(f"{key} must be an integer")


def _as_date(key: str, value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            parsed = parse_iso_date(value)
        except ValueError:
            parsed = None
        if parsed is not None:
            return parsed
    raise ValidationError(f"{key} must be an ISO-8601 date (YYYY-MM-DD)")


def _coerce(column, key: str, value: Any):
    coltype = column.type
    if isinstance(coltype, Integer):
        return _as_int(key, value)
    if isinstance(coltype, Date):
        return _as_date(key, value)
    if isinstance(coltype, Boolean):
        if not isinstance(value, bool):
            raise ValidationError(f"{key} must be a boolean")
        return value
    if isinstance(coltype, (String, Text)):
        text = str(value).strip()
        if not text and not column.nullable:
            raise ValidationError(f"{key} cannot be blank")
        if isinstance(coltype, String) and coltype.length and len(text) > coltype.length:
            raise ValidationError(f"{key} exceeds max length {coltype.length}")
        return text
    return value


def validate_payload(*, model, payload: dict, policy: ModelValidationPolicy, partial: bool) -> dict:
    """
    Clean a JSON payload into a patch of column values.

    Unknown and non-writable keys are rejected, values are coerced by
    column type (integer cents, ISO dates, trimmed strings) and NOT NULL
    columns refuse null. partial=False also enforces required_on_create.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(key for key in policy.required_on_create if payload.get(key) is None)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    columns = {column.key: column for column in model.__mapper__.columns}
    patch: dict = {}
    for key, raw in payload.items():
        if key not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {key}")
        column = columns.get(key)
        if column is None:
            raise ValidationError(f"Unknown field: {key}")
        if raw is None:
            if not column.nullable:
                raise ValidationError(f"{key} cannot be null")
            patch[key] = None
            continue
        patch[key] = _coerce(column, key, raw)
    return patch


def enforce_rules_amount(patch: dict, field: str, *, allow_zero: bool = False) -> None:
    """Amount fields are cents; positive unless allow_zero."""
    from .money import MAX_AMOUNT_CENTS

    if field not in patch or patch[field] is None:
        return
    amount = patch[field]
    if amount < 0 or (amount == 0 and not allow_zero):
        raise ValidationError(f"{field} must be {'>= 0' if allow_zero else '> 0'}")
    if amount > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} cannot exceed {MAX_AMOUNT_CENTS}")


def enforce_rules_date_range(start: date | None, end: date | None, *, strict: bool) -> None:
    """
    end must follow start. strict=True forbids end == start (multi-period plans).
    """
    if start is None or end is None:
        return
    if end < start or (strict and end == start):
        raise ValidationError("end_date must be after start_date")
