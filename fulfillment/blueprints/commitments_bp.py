"""
Commitments Blueprint: orchestration trigger and read-only views.

Endpoints:
  Trigger:   POST /api/v1/commitments/orchestrate               {commitment_id}
  Preview:   POST /api/v1/commitments/deliverables-preview      {items: [...]}
  Views:     GET  /api/v1/commitments/<id>/deliverables
             GET  /api/v1/commitments/<id>/events?limit=
             GET  /api/v1/deliverables/<id>/events

The trigger resolves the tenant from the commitment itself. Every other
endpoint is scoped by the ``X-Tenant-ID`` header.
"""

import logging

from flask import Blueprint, g, jsonify, request
from werkzeug.exceptions import HTTPException

from fulfillment.core.exceptions import OrchestrationError, ValidationError
from fulfillment.services.deliverable_service import list_commitment_deliverables
from fulfillment.services.event_service import (
    TIMELINE_LIMIT,
    list_commitment_events,
    list_deliverable_events,
)
from fulfillment.services.orchestration_service import orchestrate_commitment
from fulfillment.services.preview_service import preview_deliverables
from fulfillment.utils.errors import E, api_error

logger = logging.getLogger(__name__)

commitments_bp = Blueprint("commitments", __name__, url_prefix="/api/v1")


# ── Error handlers ───────────────────────────────────────────────────────────


@commitments_bp.errorhandler(OrchestrationError)
def _handle_orchestration_error(error: OrchestrationError):
    return api_error(error.code, status=error.http_status, detail=error.detail or None)


@commitments_bp.errorhandler(Exception)
def _handle_unexpected(error: Exception):
    if isinstance(error, HTTPException):
        return error
    logger.exception(
        "Unexpected error in commitments_bp endpoint=%s", request.endpoint,
        extra={"request_id": g.get("request_id"), "tenant_id": g.get("tenant_id")},
    )
    return api_error(E.INTERNAL, status=500, detail={"message": str(error)})


# ── Helpers ──────────────────────────────────────────────────────────────────


def _json_body() -> dict:
    """Request JSON as a dict; malformed or non-object bodies count as empty."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _require_tenant() -> int:
    """Read the tenant scope from ``X-Tenant-ID`` and stash it on ``g``."""
    raw = (request.headers.get("X-Tenant-ID") or "").strip()
    if not raw:
        raise ValidationError("X-Tenant-ID header is required", code=E.MISSING_TENANT_ID)
    if not raw.isdigit() or int(raw) <= 0:
        raise ValidationError("X-Tenant-ID must be a positive integer", code=E.INVALID_TENANT_ID)
    g.tenant_id = int(raw)
    return g.tenant_id


# ═════════════════════════════════════════════════════════════════════════════
# Trigger
# ═════════════════════════════════════════════════════════════════════════════


@commitments_bp.route("/commitments/orchestrate", methods=["POST"])
def orchestrate():
    """Expand an active commitment into deliverables (idempotent)."""
    data = _json_body()
    result = orchestrate_commitment(
        data.get("commitment_id"),
        request_id=g.get("request_id"),
    )
    g.tenant_id = result.tenant_id
    return jsonify(result.to_dict()), 200


@commitments_bp.route("/commitments/deliverables-preview", methods=["POST"])
def deliverables_preview():
    """Plan deliverables for draft items without writing anything."""
    tenant_id = _require_tenant()
    data = _json_body()
    plan = preview_deliverables(tenant_id, data.get("items", []))
    return jsonify({"ok": True, "tenant_id": tenant_id, **plan}), 200


# ═════════════════════════════════════════════════════════════════════════════
# Read-only views
# ═════════════════════════════════════════════════════════════════════════════


@commitments_bp.route("/commitments/<int:commitment_id>/deliverables", methods=["GET"])
def list_deliverables(commitment_id):
    tenant_id = _require_tenant()
    items = list_commitment_deliverables(tenant_id, commitment_id)
    return jsonify({"items": items, "total": len(items)})


@commitments_bp.route("/commitments/<int:commitment_id>/events", methods=["GET"])
def commitment_events(commitment_id):
    """Commitment timeline, newest first."""
    tenant_id = _require_tenant()
    limit = request.args.get("limit", TIMELINE_LIMIT, type=int)
    limit = max(1, min(limit, TIMELINE_LIMIT))
    items = list_commitment_events(tenant_id, commitment_id, limit=limit)
    return jsonify({"items": items, "total": len(items)})


@commitments_bp.route("/deliverables/<int:deliverable_id>/events", methods=["GET"])
def deliverable_events(deliverable_id):
    """Deliverable history, oldest first."""
    tenant_id = _require_tenant()
    items = list_deliverable_events(tenant_id, deliverable_id)
    return jsonify({"items": items, "total": len(items)})
