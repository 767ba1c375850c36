"""
Commitment orchestration service layer.

Expands one active commitment into dependency-ordered deliverables,
exactly once, with a durable audit trail.

Pipeline (strictly sequential, single pass):
    1. load_commitment      fetch + eligibility (exists, not deleted, active)
    2. claim_run            insert the OrchestrationRun marker (idempotency)
    3. resolve_expansion    items → templates → final quantities
    4. create_deliverables  N rows per (item, template) + generation events
    5. chain_dependencies   one linear chain in creation order
    6. emit                 one ``deliverables_generated`` commitment event

Steps 2-6 share one transaction. Any failure rolls back every row the run
wrote, marker included, so retrying a failed run converges to the same end
state instead of duplicating.

Rules:
  - Every row written carries the commitment's tenant_id.
  - Rows reachable from the commitment that carry another tenant_id raise
    TenantMismatchError; they are never skipped.
  - db.session.commit() happens only in orchestrate_commitment().
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from flask import current_app, has_app_context
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from fulfillment.core.exceptions import (
    NotFoundError,
    OrchestrationError,
    StoreReadError,
    StoreWriteError,
    TenantMismatchError,
    ValidationError,
)
from fulfillment.models import db
from fulfillment.models.catalog import DeliverableTemplate, Offering
from fulfillment.models.commitment import Commitment, CommitmentItem
from fulfillment.models.deliverable import (
    INITIAL_DELIVERABLE_STATUS,
    Deliverable,
    DeliverableDependency,
    OrchestrationRun,
)
from fulfillment.services.event_service import (
    DELIVERABLE_CREATED,
    DELIVERABLE_DEPENDENCY_ADDED,
    DELIVERABLE_GENERATED_FROM_TEMPLATE,
    DELIVERABLES_GENERATED,
    log_commitment_event,
    log_deliverable_event,
)
from fulfillment.services.overrides import final_quantity, parse_deliverable_overrides

logger = logging.getLogger(__name__)

SKIP_NOT_ACTIVE = "not_active"
SKIP_ALREADY_GENERATED = "already_generated"

DEFAULT_MAX_DELIVERABLES = 5000


# ── Result & plan types ──────────────────────────────────────────────────────


@dataclass
class OrchestrationResult:
    """Outcome of one invocation: a skip or a success. Failures raise."""

    tenant_id: int
    commitment_id: int
    skipped: bool = False
    reason: str | None = None
    deliverables_created: int = 0
    dependencies_created: int = 0
    run_id: int | None = None

    @classmethod
    def skip(cls, tenant_id: int, commitment_id: int, reason: str) -> "OrchestrationResult":
        return cls(tenant_id=tenant_id, commitment_id=commitment_id, skipped=True, reason=reason)

    def to_dict(self) -> dict:
        body = {"ok": True, "tenant_id": self.tenant_id, "commitment_id": self.commitment_id}
        if self.skipped:
            body["skipped"] = True
            body["reason"] = self.reason
            return body
        body["deliverables_created"] = self.deliverables_created
        body["dependencies_created"] = self.dependencies_created
        if self.run_id is not None:
            body["run_id"] = self.run_id
        return body


@dataclass
class ExpansionLine:
    """One (item, template) pair and how many deliverables it yields."""

    item: CommitmentItem
    template: DeliverableTemplate
    quantity: int


@dataclass
class ExpansionPlan:
    items: list[CommitmentItem] = field(default_factory=list)
    lines: list[ExpansionLine] = field(default_factory=list)

    @property
    def total(self) -> int:
        return sum(line.quantity for line in self.lines)


# ── Input ────────────────────────────────────────────────────────────────────


def parse_commitment_id(raw) -> int:
    """Validate the trigger's ``commitment_id``.

    Raises:
        ValidationError: missing (``missing_commitment_id``) or not a positive
            integer (``invalid_commitment_id``).
    """
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        raise ValidationError("commitment_id is required", code="missing_commitment_id")
    if isinstance(raw, bool):
        raise ValidationError("commitment_id must be an integer", code="invalid_commitment_id")
    if isinstance(raw, int):
        value = raw
    elif isinstance(raw, str) and raw.strip().isdigit():
        value = int(raw.strip())
    else:
        raise ValidationError("commitment_id must be an integer", code="invalid_commitment_id")
    if value <= 0:
        raise ValidationError("commitment_id must be positive", code="invalid_commitment_id")
    return value


# ── 1. Commitment loader ─────────────────────────────────────────────────────


def load_commitment(commitment_id: int) -> Commitment:
    """Fetch the commitment; soft-deleted rows count as absent.

    Raises:
        NotFoundError: no such commitment (``commitment_not_found``).
        StoreReadError: the query failed (``commitment_query_failed``).
    """
    try:
        commitment = db.session.get(Commitment, commitment_id)
    except SQLAlchemyError as exc:
        logger.error("Commitment query failed: %s", exc, extra={"commitment_id": commitment_id})
        raise StoreReadError(
            "commitment query failed",
            code="commitment_query_failed", detail={"message": str(exc)},
        ) from exc

    if commitment is None or commitment.is_deleted:
        raise NotFoundError("Commitment", commitment_id, code="commitment_not_found")
    return commitment


# ── 2. Idempotency guard ─────────────────────────────────────────────────────


def claim_run(tenant_id: int, commitment_id: int, request_id: str | None = None) -> OrchestrationRun | None:
    """Insert the run marker; return None when the commitment was already orchestrated.

    The unique key on (tenant_id, commitment_id) is the signal: a concurrent
    or earlier run makes this flush fail. Deliverables written before markers
    existed are also honoured. On a None return the transaction has been
    rolled back.
    """
    run = OrchestrationRun(tenant_id=tenant_id, commitment_id=commitment_id, request_id=request_id)
    db.session.add(run)
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        logger.info(
            "Orchestration run already claimed",
            extra={"tenant_id": tenant_id, "commitment_id": commitment_id},
        )
        return None
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise StoreWriteError(
            "orchestration run marker insert failed",
            code="run_marker_insert_failed", detail={"message": str(exc)},
        ) from exc

    try:
        existing = db.session.execute(
            select(Deliverable.id)
            .where(
                Deliverable.tenant_id == tenant_id,
                Deliverable.commitment_id == commitment_id,
                Deliverable.deleted_at.is_(None),
            )
            .limit(1)
        ).first()
    except SQLAlchemyError as exc:
        raise StoreReadError(
            "deliverables existence check failed",
            code="deliverables_check_failed", detail={"message": str(exc)},
        ) from exc

    if existing is not None:
        db.session.rollback()
        logger.info(
            "Deliverables already exist without a run marker",
            extra={"tenant_id": tenant_id, "commitment_id": commitment_id},
        )
        return None
    return run


# ── 3. Item & template resolver ──────────────────────────────────────────────


def load_items(tenant_id: int, commitment_id: int) -> list[CommitmentItem]:
    """Non-deleted items of the commitment, in creation order."""
    try:
        items = db.session.execute(
            select(CommitmentItem)
            .where(
                CommitmentItem.commitment_id == commitment_id,
                CommitmentItem.deleted_at.is_(None),
            )
            .order_by(CommitmentItem.created_at.asc(), CommitmentItem.id.asc())
        ).scalars().all()
    except SQLAlchemyError as exc:
        logger.error(
            "Commitment items query failed: %s", exc,
            extra={"tenant_id": tenant_id, "commitment_id": commitment_id},
        )
        raise StoreReadError(
            "commitment items query failed",
            code="commitment_items_query_failed", detail={"message": str(exc)},
        ) from exc

    for item in items:
        if item.tenant_id != tenant_id:
            raise TenantMismatchError("CommitmentItem", item.id, tenant_id, item.tenant_id)
    return list(items)


def load_templates(tenant_id: int, offering_id: int) -> list[DeliverableTemplate]:
    """Non-deleted templates of an offering, in creation order.

    Raises:
        TenantMismatchError: the offering or one of its templates belongs to
            another tenant.
        StoreReadError: the query failed (``deliverable_templates_query_failed``).
    """
    try:
        offering = db.session.get(Offering, offering_id)
        templates = db.session.execute(
            select(DeliverableTemplate)
            .where(
                DeliverableTemplate.offering_entity_id == offering_id,
                DeliverableTemplate.deleted_at.is_(None),
            )
            .order_by(DeliverableTemplate.created_at.asc(), DeliverableTemplate.id.asc())
        ).scalars().all()
    except SQLAlchemyError as exc:
        logger.error(
            "Deliverable templates query failed: %s", exc,
            extra={"tenant_id": tenant_id, "offering_id": offering_id},
        )
        raise StoreReadError(
            "deliverable templates query failed",
            code="deliverable_templates_query_failed",
            detail={"message": str(exc), "offering_entity_id": offering_id},
        ) from exc

    if offering is not None and offering.tenant_id != tenant_id:
        raise TenantMismatchError("Offering", offering_id, tenant_id, offering.tenant_id)
    for tpl in templates:
        if tpl.tenant_id != tenant_id:
            raise TenantMismatchError("DeliverableTemplate", tpl.id, tenant_id, tpl.tenant_id)
    return list(templates)


def resolve_expansion(tenant_id: int, commitment_id: int) -> ExpansionPlan:
    """Build the (item, template, quantity) lines in item order, then template order.

    Overrides of every item are validated before anything is written.
    """
    plan = ExpansionPlan(items=load_items(tenant_id, commitment_id))
    templates_by_offering: dict[int, list[DeliverableTemplate]] = {}

    for item in plan.items:
        overrides = parse_deliverable_overrides(item.meta, item.id)
        offering_id = item.offering_entity_id
        if offering_id not in templates_by_offering:
            templates_by_offering[offering_id] = load_templates(tenant_id, offering_id)

        for tpl in templates_by_offering[offering_id]:
            qty = final_quantity(item.quantity, overrides.get(tpl.id))
            plan.lines.append(ExpansionLine(item=item, template=tpl, quantity=qty))

    return plan


# ── 4. Deliverable factory ───────────────────────────────────────────────────


def _insert_deliverable(tenant_id: int, commitment_id: int, line: ExpansionLine, seq: int) -> Deliverable:
    deliverable = Deliverable(
        tenant_id=tenant_id,
        commitment_id=commitment_id,
        entity_id=line.item.offering_entity_id,
        status=INITIAL_DELIVERABLE_STATUS,
        owner_user_id=None,
        due_date=None,
        meta={
            "template_id": line.template.id,
            "commitment_item_id": line.item.id,
            "seq": seq,
            "total": line.quantity,
        },
    )
    db.session.add(deliverable)
    try:
        db.session.flush()
    except SQLAlchemyError as exc:
        logger.error(
            "Deliverable insert failed: %s", exc,
            extra={
                "tenant_id": tenant_id,
                "commitment_id": commitment_id,
                "offering_id": line.item.offering_entity_id,
                "template_id": line.template.id,
            },
        )
        raise StoreWriteError(
            "deliverable insert failed",
            code="deliverable_insert_failed",
            detail={
                "message": str(exc),
                "offering_entity_id": line.item.offering_entity_id,
                "template_id": line.template.id,
            },
        ) from exc
    return deliverable


def create_deliverables(
    tenant_id: int,
    commitment_id: int,
    plan: ExpansionPlan,
    actor_user_id: int | None = None,
) -> list[Deliverable]:
    """Insert every planned deliverable, returning them in creation order.

    Each one gets a ``deliverable_created`` event and a
    ``deliverable_generated_from_template`` event holding a snapshot of the
    template as it is now, so later template edits do not rewrite history.
    """
    created: list[Deliverable] = []
    for line in plan.lines:
        snapshot = line.template.snapshot()
        for seq in range(1, line.quantity + 1):
            deliverable = _insert_deliverable(tenant_id, commitment_id, line, seq)
            created.append(deliverable)

            log_deliverable_event(
                tenant_id, deliverable.id, DELIVERABLE_CREATED,
                after=deliverable.to_dict(), actor_user_id=actor_user_id,
            )
            log_deliverable_event(
                tenant_id, deliverable.id, DELIVERABLE_GENERATED_FROM_TEMPLATE,
                after={
                    **snapshot,
                    "commitment_item_id": line.item.id,
                    "offering_entity_id": line.item.offering_entity_id,
                    "seq": seq,
                    "total": line.quantity,
                },
                actor_user_id=actor_user_id,
            )
    return created


# ── 5. Dependency chainer ────────────────────────────────────────────────────


def _is_unique_violation(exc: IntegrityError) -> bool:
    if getattr(exc.orig, "pgcode", None) == "23505":
        return True
    msg = str(exc.orig).lower()
    return "unique" in msg or "duplicate" in msg


def chain_dependencies(
    tenant_id: int,
    deliverables: list[Deliverable],
    actor_user_id: int | None = None,
) -> int:
    """Link the run's deliverables into one chain: #k depends on #k-1.

    An edge that already exists (unique violation) counts as satisfied and
    is not counted; any other insert failure aborts the run.
    Returns the number of edges inserted.
    """
    created = 0
    for prev, cur in zip(deliverables, deliverables[1:]):
        edge = DeliverableDependency(
            tenant_id=tenant_id,
            deliverable_id=cur.id,
            depends_on_deliverable_id=prev.id,
        )
        try:
            with db.session.begin_nested():
                db.session.add(edge)
        except IntegrityError as exc:
            if not _is_unique_violation(exc):
                raise StoreWriteError(
                    "dependency insert failed",
                    code="dependency_insert_failed", detail={"message": str(exc.orig)},
                ) from exc
            logger.info(
                "Dependency %s → %s already exists", prev.id, cur.id,
                extra={"tenant_id": tenant_id},
            )
            continue
        except SQLAlchemyError as exc:
            logger.error(
                "Dependency insert failed: %s", exc,
                extra={"tenant_id": tenant_id, "deliverable_id": cur.id},
            )
            raise StoreWriteError(
                "dependency insert failed",
                code="dependency_insert_failed", detail={"message": str(exc)},
            ) from exc

        created += 1
        log_deliverable_event(
            tenant_id, cur.id, DELIVERABLE_DEPENDENCY_ADDED,
            after=edge.to_dict(), actor_user_id=actor_user_id,
        )
    return created


# ── Orchestration entry point ────────────────────────────────────────────────


def _max_deliverables() -> int:
    if has_app_context():
        return int(current_app.config.get("MAX_DELIVERABLES_PER_RUN", DEFAULT_MAX_DELIVERABLES))
    return DEFAULT_MAX_DELIVERABLES


def orchestrate_commitment(
    raw_commitment_id,
    *,
    request_id: str | None = None,
    actor_user_id: int | None = None,
) -> OrchestrationResult:
    """Run the whole pipeline for one commitment.

    Returns:
        OrchestrationResult: skipped (``not_active`` / ``already_generated``)
        or a success with created counts.

    Raises:
        OrchestrationError subclasses. The transaction is rolled back first.
    """
    commitment_id = parse_commitment_id(raw_commitment_id)
    commitment = load_commitment(commitment_id)
    tenant_id = commitment.tenant_id
    log_extra = {"tenant_id": tenant_id, "commitment_id": commitment_id, "request_id": request_id}

    if not commitment.is_active:
        logger.info("Commitment not active (status=%s)", commitment.status, extra=log_extra)
        return OrchestrationResult.skip(tenant_id, commitment_id, SKIP_NOT_ACTIVE)

    try:
        run = claim_run(tenant_id, commitment_id, request_id)
        if run is None:
            return OrchestrationResult.skip(tenant_id, commitment_id, SKIP_ALREADY_GENERATED)

        plan = resolve_expansion(tenant_id, commitment_id)
        limit = _max_deliverables()
        if plan.total > limit:
            raise ValidationError(
                f"commitment would generate {plan.total} deliverables (limit {limit})",
                code="deliverable_limit_exceeded",
                detail={"planned": plan.total, "limit": limit},
            )

        deliverables = create_deliverables(tenant_id, commitment_id, plan, actor_user_id)
        dependencies = chain_dependencies(tenant_id, deliverables, actor_user_id)

        payload = {"deliverables": len(deliverables), "dependencies": dependencies}
        if not plan.items:
            payload["note"] = "no_commitment_items"
        elif not plan.lines:
            payload["note"] = "no_deliverable_templates"
        log_commitment_event(
            tenant_id, commitment_id, DELIVERABLES_GENERATED, payload,
            actor_user_id=actor_user_id,
        )

        run.mark_completed(len(deliverables), dependencies)
        run_id = run.id
        db.session.commit()
    except OrchestrationError as exc:
        db.session.rollback()
        level = logging.WARNING if isinstance(exc, ValidationError) else logging.ERROR
        logger.log(level, "Orchestration failed: %s", exc, extra={**log_extra, "error_code": exc.code})
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Orchestration commit failed", extra=log_extra)
        raise StoreWriteError(
            "orchestration run could not be committed",
            code="run_commit_failed", detail={"message": str(exc)},
        ) from exc
    except Exception:
        db.session.rollback()
        logger.exception("Unexpected orchestration failure", extra=log_extra)
        raise

    logger.info(
        "Orchestration completed: %d deliverables, %d dependencies",
        len(deliverables), dependencies, extra=log_extra,
    )
    return OrchestrationResult(
        tenant_id=tenant_id,
        commitment_id=commitment_id,
        deliverables_created=len(deliverables),
        dependencies_created=dependencies,
        run_id=run_id,
    )
