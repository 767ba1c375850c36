"""
Commitment Fulfillment Orchestrator
Audit domain model.

Models:
    - AuditLog: immutable, append-only ledger mirroring every commitment and
      deliverable event, so one table answers "what happened" across subjects.

Helpers:
    - write_audit():            append one ledger row (flush only)
    - register_append_only():   block ORM updates / deletes on event tables
"""

import json
from datetime import UTC, datetime

from sqlalchemy import event

from fulfillment.core.exceptions import ImmutableRecordError
from fulfillment.models import db


class AuditLog(db.Model):
    """
    Immutable audit trail. One row per mirrored event; ``diff_json``
    carries the event payload (or ``{"before", "after"}`` for deliverables).
    """

    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("idx_audit_entity", "entity_type", "entity_id"),
        db.Index("idx_audit_action", "action"),
        db.Index("idx_audit_ts", "timestamp"),
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(
        db.Integer,
        db.ForeignKey("tenants.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Polymorphic entity reference
    entity_type = db.Column(
        db.String(30), nullable=False,
        comment="commitment | deliverable",
    )
    entity_id = db.Column(
        db.String(36), nullable=False,
        comment="PK of the referenced entity as string",
    )

    # What happened
    action = db.Column(
        db.String(60), nullable=False,
        comment="deliverables_generated | deliverable_created | …",
    )
    actor = db.Column(db.String(150), nullable=False, default="system")
    actor_user_id = db.Column(db.Integer, nullable=True)
    request_id = db.Column(db.String(64), nullable=True)

    diff_json = db.Column(db.Text, default="{}")

    timestamp = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(UTC),
    )

    # ── Helpers ──────────────────────────────────────────────────────────

    @property
    def diff(self) -> dict:
        """Deserialise *diff_json* to a Python dict."""
        try:
            return json.loads(self.diff_json or "{}")
        except (json.JSONDecodeError, TypeError):
            return {}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "action": self.action,
            "actor": self.actor,
            "actor_user_id": self.actor_user_id,
            "request_id": self.request_id,
            "diff": self.diff,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }

    def __repr__(self):
        return f"<AuditLog {self.id}: {self.action} on {self.entity_type}/{self.entity_id}>"


# ── Convenience writer ───────────────────────────────────────────────────────

def write_audit(
    *,
    entity_type: str,
    entity_id,
    action: str,
    tenant_id: int | None,
    actor_user_id: int | None = None,
    diff: dict | None = None,
) -> AuditLog:
    """
    Append a single audit row.  Uses ``flush`` so callers keep
    transaction control.

    The request id is taken from the Flask request context when there is one.
    """
    request_id = None
    from flask import g, has_request_context
    if has_request_context():
        request_id = getattr(g, "request_id", None)

    log = AuditLog(
        tenant_id=tenant_id,
        entity_type=entity_type,
        entity_id=str(entity_id),
        action=action,
        actor="system" if actor_user_id is None else f"user:{actor_user_id}",
        actor_user_id=actor_user_id,
        request_id=request_id,
        diff_json=json.dumps(diff or {}, default=str),
    )
    db.session.add(log)
    db.session.flush()
    return log


# ── Append-only guard ────────────────────────────────────────────────────────

def _reject_mutation(mapper, connection, target):
    raise ImmutableRecordError(
        f"{type(target).__name__} id={getattr(target, 'id', None)} is append-only"
    )


def register_append_only(model_cls):
    """Make ORM updates and deletes of ``model_cls`` rows raise ImmutableRecordError."""
    if not event.contains(model_cls, "before_update", _reject_mutation):
        event.listen(model_cls, "before_update", _reject_mutation)
        event.listen(model_cls, "before_delete", _reject_mutation)
    return model_cls


register_append_only(AuditLog)
