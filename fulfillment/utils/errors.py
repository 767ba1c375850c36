"""Standardised API error responses.

Every failure answers with the same body shape::

    {"ok": false, "error": "<code>", "detail": {...}}

Usage
-----
    from fulfillment.utils.errors import api_error, E

    return api_error(E.MISSING_COMMITMENT_ID)
    return api_error(E.DELIVERABLE_INSERT_FAILED, detail={"message": "..."})
"""

from __future__ import annotations

from flask import jsonify


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants."""

    # Bad input – HTTP 400
    MISSING_COMMITMENT_ID = "missing_commitment_id"
    INVALID_COMMITMENT_ID = "invalid_commitment_id"
    MISSING_TENANT_ID = "missing_tenant_id"
    INVALID_TENANT_ID = "invalid_tenant_id"
    INVALID_DELIVERABLE_OVERRIDES = "invalid_deliverable_overrides"
    INVALID_PREVIEW_ITEMS = "invalid_preview_items"
    DELIVERABLE_LIMIT_EXCEEDED = "deliverable_limit_exceeded"

    # Not-found – HTTP 404
    COMMITMENT_NOT_FOUND = "commitment_not_found"
    DELIVERABLE_NOT_FOUND = "deliverable_not_found"
    OFFERING_NOT_FOUND = "offering_not_found"

    # Store failures – HTTP 500
    COMMITMENT_QUERY_FAILED = "commitment_query_failed"
    DELIVERABLES_CHECK_FAILED = "deliverables_check_failed"
    COMMITMENT_ITEMS_QUERY_FAILED = "commitment_items_query_failed"
    DELIVERABLE_TEMPLATES_QUERY_FAILED = "deliverable_templates_query_failed"
    DELIVERABLE_INSERT_FAILED = "deliverable_insert_failed"
    DEPENDENCY_INSERT_FAILED = "dependency_insert_failed"
    EVENT_WRITE_FAILED = "event_write_failed"
    RUN_MARKER_INSERT_FAILED = "run_marker_insert_failed"
    RUN_COMMIT_FAILED = "run_commit_failed"
    TENANT_MISMATCH = "tenant_mismatch"
    INTERNAL = "internal_error"

    # Transport
    METHOD_NOT_ALLOWED = "method_not_allowed"
    RATE_LIMITED = "rate_limited"
    NOT_FOUND = "not_found"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.MISSING_COMMITMENT_ID: 400,
    E.INVALID_COMMITMENT_ID: 400,
    E.MISSING_TENANT_ID: 400,
    E.INVALID_TENANT_ID: 400,
    E.INVALID_DELIVERABLE_OVERRIDES: 400,
    E.INVALID_PREVIEW_ITEMS: 400,
    E.DELIVERABLE_LIMIT_EXCEEDED: 400,
    E.COMMITMENT_NOT_FOUND: 404,
    E.DELIVERABLE_NOT_FOUND: 404,
    E.OFFERING_NOT_FOUND: 404,
    E.NOT_FOUND: 404,
    E.METHOD_NOT_ALLOWED: 405,
    E.RATE_LIMITED: 429,
}


def api_error(
    code: str,
    *,
    status: int | None = None,
    detail: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``500``.
    detail : dict, optional
        Extra diagnostic payload (store message, offending ids, ...).

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 500)

    body: dict = {"ok": False, "error": code}
    if detail:
        body["detail"] = detail

    return jsonify(body), http_status
