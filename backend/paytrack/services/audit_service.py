# Overview: Service-layer operations for the audit trail; append-only field-level history.

"""
Audit Trail Invariants (authoritative)

- Append-only: rows are never updated or deleted (enforced by mapper events).
- Rows are written inside the same DB transaction as the mutation they record.
- History survives a permanent purge of the audited record.
- history() is most-recent-first; ties on created_at break on id.
"""

from __future__ import annotations

from typing import Optional

from flask import current_app, has_app_context

from ..extensions import db
from ..models import AuditLog
from ..models.audit import VALID_AUDIT_ACTIONS
from ..validation import ValidationError
from paytrack.time_utils import utcnow


DEFAULT_ACTOR = "system"


def resolve_actor(actor: Optional[str]) -> str:
    """Explicit actor, else the configured default."""
    if actor is not None and str(actor).strip():
        return str(actor).strip()[:255]
    if has_app_context():
        return current_app.config.get("PAYTRACK_DEFAULT_ACTOR") or DEFAULT_ACTOR
    return DEFAULT_ACTOR


def diff_fields(old_values: Optional[dict], new_values: Optional[dict]) -> list[str]:
    """
    Keys whose values differ between two snapshots, in snapshot order.

    A missing side counts as all keys changed.
    """
    if old_values is None and new_values is None:
        return []
    if old_values is None:
        return list(new_values.keys())
    if new_values is None:
        return list(old_values.keys())
    keys = list(old_values.keys()) + [k for k in new_values.keys() if k not in old_values]
    return [k for k in keys if old_values.get(k) != new_values.get(k)]


class AuditRecorder:
    """Writes and reads audit rows through the caller's session."""

    def __init__(self, session=None):
        self.session = session if session is not None else db.session

    def record(
        self,
        *,
        table_name: str,
        record_id: int,
        action: str,
        old_values: Optional[dict] = None,
        new_values: Optional[dict] = None,
        changed_fields: Optional[list[str]] = None,
        actor: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> AuditLog:
        if action not in VALID_AUDIT_ACTIONS:
            raise ValidationError(f"Invalid audit action: {action}")
        if changed_fields is None:
            changed_fields = diff_fields(old_values, new_values)

        entry = AuditLog(
            table_name=table_name,
            record_id=record_id,
            action=action,
            old_values=old_values,
            new_values=new_values,
            changed_fields=list(changed_fields),
            actor=resolve_actor(actor),
            reason=reason,
            created_at=utcnow(),
        )
        self.session.add(entry)
        self.session.flush()
        return entry

    def history(self, table_name: str, record_id: int, *, limit: Optional[int] = None) -> list[AuditLog]:
        query = (
            self.session.query(AuditLog)
            .filter(AuditLog.table_name == table_name, AuditLog.record_id == record_id)
            .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        )
        if limit:
            query = query.limit(limit)
        return query.all()

    def recent(self, *, table_name: Optional[str] = None, limit: int = 50) -> list[AuditLog]:
        query = self.session.query(AuditLog)
        if table_name:
            query = query.filter(AuditLog.table_name == table_name)
        return query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit).all()
