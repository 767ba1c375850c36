"""
Read-only deliverable views.

Rules:
  - tenant_id is always an explicit parameter.
  - Another tenant's rows are reported as not found.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError

from fulfillment.core.exceptions import NotFoundError, StoreReadError
from fulfillment.models.commitment import Commitment
from fulfillment.models.deliverable import Deliverable, DeliverableDependency

logger = logging.getLogger(__name__)


def list_commitment_deliverables(tenant_id: int, commitment_id: int) -> list[dict]:
    """Non-deleted deliverables of a commitment in creation order, with ``depends_on`` ids."""
    commitment = Commitment.get_for_tenant(tenant_id, commitment_id)
    if commitment is None or commitment.is_deleted:
        raise NotFoundError("Commitment", commitment_id, tenant_id, code="commitment_not_found")

    try:
        deliverables = (
            Deliverable.query_active()
            .filter_by(tenant_id=tenant_id, commitment_id=commitment_id)
            .order_by(Deliverable.created_at.asc(), Deliverable.id.asc())
            .all()
        )

        ids = [d.id for d in deliverables]
        edges = []
        if ids:
            edges = (
                DeliverableDependency.query_for_tenant(tenant_id)
                .filter(
                    DeliverableDependency.deliverable_id.in_(ids),
                    DeliverableDependency.deleted_at.is_(None),
                )
                .order_by(DeliverableDependency.id.asc())
                .all()
            )
    except SQLAlchemyError as exc:
        logger.error(
            "Deliverables query failed: %s", exc,
            extra={"tenant_id": tenant_id, "commitment_id": commitment_id},
        )
        raise StoreReadError(
            "deliverables query failed",
            code="deliverables_check_failed", detail={"message": str(exc)},
        ) from exc

    depends_on: dict[int, list[int]] = {i: [] for i in ids}
    for edge in edges:
        depends_on[edge.deliverable_id].append(edge.depends_on_deliverable_id)

    result = []
    for d in deliverables:
        row = d.to_dict()
        row["depends_on"] = depends_on[d.id]
        result.append(row)
    return result
