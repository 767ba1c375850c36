"""
Audit / event emitter.

Append-only writers for commitment and deliverable events, plus the
read-only listings that timeline views consume.

Rules:
  - tenant_id is always an explicit parameter.
  - Writers only flush; the caller owns the transaction.
  - Every event is mirrored into ``audit_logs`` via ``write_audit``.
  - The writer contract ``(tenant_id, subject_id, event_type, payload)`` is
    shared with other callers (e.g. journey actions) and must stay stable.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from fulfillment.core.exceptions import NotFoundError, StoreReadError, StoreWriteError
from fulfillment.models import db
from fulfillment.models.audit import write_audit
from fulfillment.models.commitment import Commitment, CommitmentEvent
from fulfillment.models.deliverable import Deliverable, DeliverableEvent

logger = logging.getLogger(__name__)

# Commitment-level event types
DELIVERABLES_GENERATED = "deliverables_generated"

# Deliverable-level event types
DELIVERABLE_CREATED = "deliverable_created"
DELIVERABLE_GENERATED_FROM_TEMPLATE = "deliverable_generated_from_template"
DELIVERABLE_DEPENDENCY_ADDED = "deliverable_dependency_added"

TIMELINE_LIMIT = 200


# ── Writers ──────────────────────────────────────────────────────────────────


def log_commitment_event(
    tenant_id: int,
    commitment_id: int,
    event_type: str,
    payload: dict | None = None,
    *,
    actor_user_id: int | None = None,
) -> CommitmentEvent:
    """Append one CommitmentEvent and mirror it into the audit ledger.

    Raises:
        StoreWriteError: the insert failed (code ``event_write_failed``).
    """
    payload = payload or {}
    try:
        ev = CommitmentEvent(
            tenant_id=tenant_id,
            commitment_id=commitment_id,
            event_type=event_type,
            payload_json=payload,
            actor_user_id=actor_user_id,
        )
        db.session.add(ev)
        db.session.flush()
        write_audit(
            entity_type="commitment",
            entity_id=commitment_id,
            action=event_type,
            tenant_id=tenant_id,
            actor_user_id=actor_user_id,
            diff=payload,
        )
    except SQLAlchemyError as exc:
        logger.error(
            "Commitment event write failed: %s", exc,
            extra={"tenant_id": tenant_id, "commitment_id": commitment_id, "event_type": event_type},
        )
        raise StoreWriteError(
            f"could not append {event_type} for commitment {commitment_id}",
            code="event_write_failed", detail={"message": str(exc)},
        ) from exc
    return ev


def log_deliverable_event(
    tenant_id: int,
    deliverable_id: int,
    event_type: str,
    after: dict | None = None,
    *,
    before: dict | None = None,
    actor_user_id: int | None = None,
) -> DeliverableEvent:
    """Append one DeliverableEvent and mirror it into the audit ledger.

    Raises:
        StoreWriteError: the insert failed (code ``event_write_failed``).
    """
    try:
        ev = DeliverableEvent(
            tenant_id=tenant_id,
            deliverable_id=deliverable_id,
            event_type=event_type,
            before=before,
            after=after,
            actor_user_id=actor_user_id,
        )
        db.session.add(ev)
        db.session.flush()
        write_audit(
            entity_type="deliverable",
            entity_id=deliverable_id,
            action=event_type,
            tenant_id=tenant_id,
            actor_user_id=actor_user_id,
            diff={"before": before, "after": after},
        )
    except SQLAlchemyError as exc:
        logger.error(
            "Deliverable event write failed: %s", exc,
            extra={"tenant_id": tenant_id, "deliverable_id": deliverable_id, "event_type": event_type},
        )
        raise StoreWriteError(
            f"could not append {event_type} for deliverable {deliverable_id}",
            code="event_write_failed", detail={"message": str(exc)},
        ) from exc
    return ev


# ── Readers ──────────────────────────────────────────────────────────────────


def list_commitment_events(tenant_id: int, commitment_id: int, limit: int = TIMELINE_LIMIT) -> list[dict]:
    """Commitment events, newest first.

    Raises:
        NotFoundError: commitment missing, soft-deleted or in another tenant.
    """
    commitment = Commitment.get_for_tenant(tenant_id, commitment_id)
    if commitment is None or commitment.is_deleted:
        raise NotFoundError("Commitment", commitment_id, tenant_id, code="commitment_not_found")

    try:
        rows = db.session.execute(
            select(CommitmentEvent)
            .where(
                CommitmentEvent.tenant_id == tenant_id,
                CommitmentEvent.commitment_id == commitment_id,
            )
            .order_by(CommitmentEvent.created_at.desc(), CommitmentEvent.id.desc())
            .limit(limit)
        ).scalars().all()
    except SQLAlchemyError as exc:
        raise StoreReadError(
            "commitment events query failed",
            code="commitment_query_failed", detail={"message": str(exc)},
        ) from exc
    return [r.to_dict() for r in rows]


def list_deliverable_events(tenant_id: int, deliverable_id: int) -> list[dict]:
    """Deliverable events, oldest first.

    Raises:
        NotFoundError: deliverable missing or in another tenant.
    """
    deliverable = Deliverable.get_for_tenant(tenant_id, deliverable_id)
    if deliverable is None:
        raise NotFoundError("Deliverable", deliverable_id, tenant_id, code="deliverable_not_found")

    rows = db.session.execute(
        select(DeliverableEvent)
        .where(
            DeliverableEvent.tenant_id == tenant_id,
            DeliverableEvent.deliverable_id == deliverable_id,
        )
        .order_by(DeliverableEvent.created_at.asc(), DeliverableEvent.id.asc())
    ).scalars().all()
    return [r.to_dict() for r in rows]
