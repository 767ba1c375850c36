"""
Commitment Fulfillment Orchestrator
Deliverable domain models.

Models:
    - Deliverable:            concrete unit of fulfillment work generated from
                              one (CommitmentItem, DeliverableTemplate, seq) triple
    - DeliverableDependency:  Finish → Start edge between two deliverables
    - DeliverableEvent:       immutable, append-only event for a deliverable
    - OrchestrationRun:       one row per orchestrated commitment; its unique
                              key is the idempotency signal

Architecture:
    Commitment ──1:N──▶ Deliverable ──N:M──▶ Deliverable  (via DeliverableDependency)
    Deliverable ──1:N──▶ DeliverableEvent
    Commitment ──1:1──▶ OrchestrationRun

Lifecycle states:
    Deliverable: planned → in_progress → done | cancelled   (blocked ↔ in_progress)
    Only ``planned`` is set here; downstream fulfillment workflows move it on.
"""

from datetime import datetime, timezone

from fulfillment.models import db
from fulfillment.models.audit import register_append_only
from fulfillment.models.base import TenantModel
from fulfillment.models.soft_delete import SoftDeleteMixin


# ── Constants ────────────────────────────────────────────────────────────────

INITIAL_DELIVERABLE_STATUS = "planned"


# ═════════════════════════════════════════════════════════════════════════════
# 1. Deliverable
# ═════════════════════════════════════════════════════════════════════════════


class Deliverable(TenantModel, SoftDeleteMixin):
    """
    One trackable unit of fulfillment work.

    ``entity_id`` is the offering of the source item, not the template:
    templates may change later, the offering identity does not.
    ``metadata`` records provenance:
    ``{template_id, commitment_item_id, seq, total}`` with 1 <= seq <= total.
    """

    __tablename__ = "deliverables"

    id = db.Column(db.Integer, primary_key=True)
    commitment_id = db.Column(
        db.Integer, db.ForeignKey("commitments.id", ondelete="CASCADE"),
        nullable=False,
    )
    entity_id = db.Column(
        db.Integer, db.ForeignKey("offerings.id", ondelete="RESTRICT"),
        nullable=False,
    )
    status = db.Column(
        db.String(20), default=INITIAL_DELIVERABLE_STATUS,
        comment="planned | in_progress | blocked | done | cancelled",
    )
    owner_user_id = db.Column(db.Integer, nullable=True)
    due_date = db.Column(db.Date, nullable=True)
    # "metadata" is reserved on declarative classes
    meta = db.Column("metadata", db.JSON, nullable=False, default=dict)

    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        TenantModel.tenant_composite_index("deliverables", "commitment_id"),
        TenantModel.tenant_composite_index("deliverables", "status", "due_date"),
    )

    predecessors = db.relationship(
        "DeliverableDependency",
        foreign_keys="DeliverableDependency.deliverable_id",
        backref="deliverable",
        lazy="dynamic",
    )
    successors = db.relationship(
        "DeliverableDependency",
        foreign_keys="DeliverableDependency.depends_on_deliverable_id",
        backref="depends_on",
        lazy="dynamic",
    )

    def to_dict(self, include_dependencies=False):
        result = {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "commitment_id": self.commitment_id,
            "entity_id": self.entity_id,
            "status": self.status,
            "owner_user_id": self.owner_user_id,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "metadata": self.meta or {},
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_dependencies:
            result["depends_on"] = [
                d.depends_on_deliverable_id
                for d in self.predecessors.filter(DeliverableDependency.deleted_at.is_(None))
            ]
        return result

    def __repr__(self):
        meta = self.meta or {}
        return f"<Deliverable {self.id}: tpl={meta.get('template_id')} {meta.get('seq')}/{meta.get('total')}>"


# ═════════════════════════════════════════════════════════════════════════════
# 2. DeliverableDependency
# ═════════════════════════════════════════════════════════════════════════════


class DeliverableDependency(TenantModel, SoftDeleteMixin):
    """
    Finish → Start edge: ``deliverable_id`` cannot start until
    ``depends_on_deliverable_id`` reaches a terminal state.
    Enforcement belongs to the consumers; this service only writes edges.
    """

    __tablename__ = "deliverable_dependencies"

    id = db.Column(db.Integer, primary_key=True)
    deliverable_id = db.Column(
        db.Integer, db.ForeignKey("deliverables.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    depends_on_deliverable_id = db.Column(
        db.Integer, db.ForeignKey("deliverables.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )

    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.Index(
            "uq_deliverable_dependencies_active",
            "tenant_id", "deliverable_id", "depends_on_deliverable_id",
            unique=True,
            postgresql_where=db.text("deleted_at IS NULL"),
            sqlite_where=db.text("deleted_at IS NULL"),
        ),
        db.CheckConstraint(
            "deliverable_id != depends_on_deliverable_id",
            name="ck_deliverable_dep_no_self_loop",
        ),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "deliverable_id": self.deliverable_id,
            "depends_on_deliverable_id": self.depends_on_deliverable_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<DeliverableDependency {self.depends_on_deliverable_id} → {self.deliverable_id}>"


# ═════════════════════════════════════════════════════════════════════════════
# 3. DeliverableEvent
# ═════════════════════════════════════════════════════════════════════════════


class DeliverableEvent(TenantModel):
    """
    Append-only event for a deliverable. ``before`` / ``after`` hold JSON
    snapshots; generation events carry the template snapshot in ``after``.
    """

    __tablename__ = "deliverable_events"

    id = db.Column(db.Integer, primary_key=True)
    deliverable_id = db.Column(
        db.Integer, db.ForeignKey("deliverables.id", ondelete="CASCADE"),
        nullable=False,
    )
    event_type = db.Column(db.String(60), nullable=False)
    before = db.Column(db.JSON, nullable=True)
    after = db.Column(db.JSON, nullable=True)
    actor_user_id = db.Column(db.Integer, nullable=True, comment="NULL = system")
    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.Index("ix_deliverable_events_tenant_deliverable_created", "tenant_id", "deliverable_id", "created_at"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "deliverable_id": self.deliverable_id,
            "event_type": self.event_type,
            "before": self.before,
            "after": self.after,
            "actor_user_id": self.actor_user_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<DeliverableEvent {self.id}: {self.event_type} on deliverable/{self.deliverable_id}>"


# ═════════════════════════════════════════════════════════════════════════════
# 4. OrchestrationRun
# ═════════════════════════════════════════════════════════════════════════════


class OrchestrationRun(TenantModel):
    """
    Marker row for one orchestration of one commitment.

    Inserted (and flushed) inside the run's transaction before any
    deliverable; the unique key on (tenant_id, commitment_id) makes a second
    concurrent insert fail, and that failure is the "already generated"
    signal.
    """

    __tablename__ = "orchestration_runs"

    id = db.Column(db.Integer, primary_key=True)
    commitment_id = db.Column(
        db.Integer, db.ForeignKey("commitments.id", ondelete="CASCADE"),
        nullable=False,
    )
    status = db.Column(db.String(20), nullable=False, default="running")
    deliverables_created = db.Column(db.Integer, nullable=True)
    dependencies_created = db.Column(db.Integer, nullable=True)
    request_id = db.Column(db.String(64), nullable=True)
    started_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    finished_at = db.Column(db.DateTime(timezone=True), nullable=True)

    __table_args__ = (
        db.UniqueConstraint(
            "tenant_id", "commitment_id",
            name="uq_orchestration_run_commitment",
        ),
        db.CheckConstraint(
            "status IN ('running','completed')",
            name="ck_orchestration_run_status",
        ),
    )

    def mark_completed(self, deliverables_created: int, dependencies_created: int) -> None:
        self.status = "completed"
        self.deliverables_created = deliverables_created
        self.dependencies_created = dependencies_created
        self.finished_at = datetime.now(timezone.utc)

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "commitment_id": self.commitment_id,
            "status": self.status,
            "deliverables_created": self.deliverables_created,
            "dependencies_created": self.dependencies_created,
            "request_id": self.request_id,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }

    def __repr__(self):
        return f"<OrchestrationRun {self.id}: commitment/{self.commitment_id} [{self.status}]>"


register_append_only(DeliverableEvent)
