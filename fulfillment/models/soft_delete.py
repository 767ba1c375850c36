"""
Soft Delete Mixin.

Adds a `deleted_at` timestamp column and query helpers. Soft-deleted rows
are invisible to the orchestrator and to the read views; the deliverables
view reads through ``query_active``.

Usage:
    class Deliverable(TenantModel, SoftDeleteMixin):
        ...

    Deliverable.query_active().filter_by(commitment_id=cid).first()
"""

from datetime import datetime, timezone

from fulfillment.models import db


class SoftDeleteMixin:
    """Mixin that adds soft delete support to any SQLAlchemy model."""

    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True, default=None, index=True)

    def soft_delete(self):
        """Mark this record as deleted."""
        self.deleted_at = datetime.now(timezone.utc)

    @property
    def is_deleted(self):
        return self.deleted_at is not None

    @classmethod
    def query_active(cls):
        """Return a query that excludes soft-deleted records."""
        return cls.query.filter(cls.deleted_at.is_(None))
