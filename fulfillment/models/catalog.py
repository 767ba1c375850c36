"""
Commitment Fulfillment Orchestrator
Catalog domain models.

Models:
    - Offering:             tenant-scoped product/service that commitments sell
    - DeliverableTemplate:  catalog definition of one kind of fulfillment work
                            for an offering (installation, training, ...)

Architecture:
    Offering ──1:N──▶ DeliverableTemplate
    Offering ──1:N──▶ CommitmentItem   (see commitment.py)
"""

from datetime import datetime, timezone

from fulfillment.models import db
from fulfillment.models.base import TenantModel
from fulfillment.models.soft_delete import SoftDeleteMixin


class Offering(TenantModel, SoftDeleteMixin):
    """Product or service in a tenant's catalog."""

    __tablename__ = "offerings"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    code = db.Column(db.String(50), nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    templates = db.relationship(
        "DeliverableTemplate", backref="offering", lazy="dynamic",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "code": self.code,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Offering {self.id}: {self.name}>"


class DeliverableTemplate(TenantModel, SoftDeleteMixin):
    """
    One kind of fulfillment work attached to an offering.

    Several templates may apply to the same offering; the orchestrator
    expands them in creation order. A template name is unique per offering
    among non-deleted rows.
    """

    __tablename__ = "deliverable_templates"

    id = db.Column(db.Integer, primary_key=True)
    offering_entity_id = db.Column(
        db.Integer, db.ForeignKey("offerings.id", ondelete="RESTRICT"),
        nullable=False, index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    estimated_minutes = db.Column(db.Integer, nullable=True)
    required_resource_type = db.Column(
        db.String(60), nullable=True,
        comment="technician | trainer | consultant | ...",
    )

    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.Index(
            "ix_deliverable_templates_tenant_offering",
            "tenant_id", "offering_entity_id",
        ),
        db.Index(
            "uq_deliverable_templates_active_name",
            "tenant_id", "offering_entity_id", "name",
            unique=True,
            postgresql_where=db.text("deleted_at IS NULL"),
            sqlite_where=db.text("deleted_at IS NULL"),
        ),
    )

    def snapshot(self) -> dict:
        """Frozen copy of the fields recorded when a deliverable is generated."""
        return {
            "template_id": self.id,
            "template_name": self.name,
            "estimated_minutes": self.estimated_minutes,
            "required_resource_type": self.required_resource_type,
        }

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "offering_entity_id": self.offering_entity_id,
            "name": self.name,
            "estimated_minutes": self.estimated_minutes,
            "required_resource_type": self.required_resource_type,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<DeliverableTemplate {self.id}: {self.name}>"
