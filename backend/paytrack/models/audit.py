from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from paytrack.time_utils import to_utc_z


AUDIT_INSERT = "INSERT"
AUDIT_UPDATE = "UPDATE"
AUDIT_DELETE = "DELETE"
AUDIT_RESTORE = "RESTORE"
AUDIT_PERMANENT_DELETE = "PERMANENT_DELETE"
VALID_AUDIT_ACTIONS = (AUDIT_INSERT, AUDIT_UPDATE, AUDIT_DELETE, AUDIT_RESTORE, AUDIT_PERMANENT_DELETE)


class AuditImmutableError(RuntimeError):
    """Raised when something tries to change or remove an audit row."""


class AuditLog(db.Model):
    """
    Field-level history of every mutation of a tracked record.

    IMMUTABLE: Never update or delete. Append-only for audit integrity.
    No foreign key to the audited row, so history survives a permanent purge.
    """
    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("ix_audit_logs_table_record", "table_name", "record_id"),
        db.Index("ix_audit_logs_created", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    table_name = db.Column(db.String(64), nullable=False)
    record_id = db.Column(db.Integer, nullable=False)
    # INSERT | UPDATE | DELETE | RESTORE | PERMANENT_DELETE
    action = db.Column(db.String(32), nullable=False, index=True)

    old_values = db.Column(db.JSON, nullable=True)
    new_values = db.Column(db.JSON, nullable=True)
    changed_fields = db.Column(db.JSON, nullable=False, default=list)

    actor = db.Column(db.String(255), nullable=False)
    reason = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<AuditLog id={self.id} {self.table_name}#{self.record_id} {self.action}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "table_name": self.table_name,
            "record_id": self.record_id,
            "action": self.action,
            "old_values": self.old_values,
            "new_values": self.new_values,
            "changed_fields": self.changed_fields or [],
            "actor": self.actor,
            "reason": self.reason,
            "created_at": to_utc_z(self.created_at),
        }


@event.listens_for(AuditLog, "before_update")
def _prevent_audit_update(mapper, connection, target):
    raise AuditImmutableError(f"Audit rows are append-only: cannot modify audit log {target.id}")


@event.listens_for(AuditLog, "before_delete")
def _prevent_audit_delete(mapper, connection, target):
    raise AuditImmutableError(f"Audit rows are append-only: cannot delete audit log {target.id}")
