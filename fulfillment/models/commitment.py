"""
Commitment Fulfillment Orchestrator
Commercial commitment domain models.

Models:
    - Commitment:       an activated sale / contract that obligates fulfillment work
    - CommitmentItem:   one line of a commitment, pointing at an offering
    - CommitmentEvent:  immutable, append-only domain event for a commitment

Architecture:
    Commitment ──1:N──▶ CommitmentItem ──N:1──▶ Offering
    Commitment ──1:N──▶ CommitmentEvent
    Commitment ──1:N──▶ Deliverable        (see deliverable.py)

Lifecycle states:
    Commitment: draft → active → completed | cancelled
    Only ``active`` commitments are orchestrated; activation happens outside
    this service.
"""

from datetime import datetime, timezone

from fulfillment.models import db
from fulfillment.models.audit import register_append_only
from fulfillment.models.base import TenantModel
from fulfillment.models.soft_delete import SoftDeleteMixin


# ── Constants ────────────────────────────────────────────────────────────────

ACTIVE_STATUS = "active"


class Commitment(TenantModel, SoftDeleteMixin):
    """Commercial commitment (contract / order / subscription)."""

    __tablename__ = "commitments"

    id = db.Column(db.Integer, primary_key=True)
    commitment_type = db.Column(
        db.String(20), nullable=False, default="order",
        comment="contract | order | subscription",
    )
    customer_entity_id = db.Column(
        db.Integer, nullable=True,
        comment="Customer party id (party registry lives outside this service)",
    )
    status = db.Column(
        db.String(20), nullable=True, default="draft",
        comment="draft | active | completed | cancelled",
    )
    total_value = db.Column(db.Numeric(18, 2), nullable=True)

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
        db.CheckConstraint(
            "commitment_type IN ('contract','order','subscription')",
            name="ck_commitment_type",
        ),
    )

    items = db.relationship(
        "CommitmentItem", backref="commitment", lazy="dynamic",
        order_by="CommitmentItem.created_at",
    )

    @property
    def is_active(self) -> bool:
        return self.status == ACTIVE_STATUS

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "commitment_type": self.commitment_type,
            "customer_entity_id": self.customer_entity_id,
            "status": self.status,
            "total_value": float(self.total_value) if self.total_value is not None else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Commitment {self.id}: {self.commitment_type} [{self.status}]>"


class CommitmentItem(TenantModel, SoftDeleteMixin):
    """
    One line item of a commitment.

    ``metadata`` may carry ``deliverable_overrides``: a mapping of template
    id → ``{"quantity": n}`` that replaces ``quantity`` for that template.
    """

    __tablename__ = "commitment_items"

    id = db.Column(db.Integer, primary_key=True)
    commitment_id = db.Column(
        db.Integer, db.ForeignKey("commitments.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    offering_entity_id = db.Column(
        db.Integer, db.ForeignKey("offerings.id", ondelete="RESTRICT"),
        nullable=False, index=True,
    )
    quantity = db.Column(db.Integer, nullable=False, default=1)
    price = db.Column(db.Numeric(18, 2), nullable=True)
    requires_fulfillment = db.Column(db.Boolean, nullable=False, default=True)
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
        db.Index("ix_commitment_items_tenant_commitment", "tenant_id", "commitment_id"),
    )

    offering = db.relationship("Offering")

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "commitment_id": self.commitment_id,
            "offering_entity_id": self.offering_entity_id,
            "quantity": self.quantity,
            "price": float(self.price) if self.price is not None else None,
            "requires_fulfillment": self.requires_fulfillment,
            "metadata": self.meta or {},
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<CommitmentItem {self.id}: offering={self.offering_entity_id} x{self.quantity}>"


class CommitmentEvent(TenantModel):
    """
    Append-only domain event for a commitment.

    Written through ``event_service.log_commitment_event``; never updated
    or deleted (see ``audit.register_append_only``).
    """

    __tablename__ = "commitment_events"

    id = db.Column(db.Integer, primary_key=True)
    commitment_id = db.Column(
        db.Integer, db.ForeignKey("commitments.id", ondelete="CASCADE"),
        nullable=False,
    )
    event_type = db.Column(db.String(60), nullable=False)
    payload_json = db.Column(db.JSON, nullable=False, default=dict)
    actor_user_id = db.Column(
        db.Integer, nullable=True,
        comment="NULL = system",
    )
    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.Index("ix_commitment_events_tenant_commitment_created", "tenant_id", "commitment_id", "created_at"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "commitment_id": self.commitment_id,
            "event_type": self.event_type,
            "payload": self.payload_json or {},
            "actor_user_id": self.actor_user_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<CommitmentEvent {self.id}: {self.event_type} on commitment/{self.commitment_id}>"


register_append_only(CommitmentEvent)
