"""
Platform-wide exception hierarchy.

Every failure an orchestration run can surface is one of the types below.
Each carries a stable machine-readable ``code`` (the ``error`` field of the
HTTP contract), the HTTP status the blueprint maps it to, and an optional
``detail`` dict for diagnostics.

Taxonomy:
    ValidationError      InvalidInput, caller must fix the request  (400)
    NotFoundError        absent or soft-deleted record              (404)
    StoreReadError       a query against the store failed           (500)
    StoreWriteError      an insert against the store failed         (500)
    TenantMismatchError  cross-tenant reference found in the store  (500)

Usage:
    from fulfillment.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Commitment", resource_id=42, code="commitment_not_found")
    raise ValidationError("commitment_id is required", code="missing_commitment_id")
"""


class OrchestrationError(Exception):
    """Base class for every error the service layer raises on purpose.

    Args:
        message: Human-readable explanation, used in logs.
        code: Machine-readable error code returned to the caller.
        detail: Optional structured diagnostics returned as ``detail``.
    """

    code = "internal_error"
    http_status = 500

    def __init__(self, message: str, *, code: str | None = None, detail: dict | None = None) -> None:
        if code is not None:
            self.code = code
        self.detail = detail or {}
        super().__init__(message)


class ValidationError(OrchestrationError):
    """Raised when the request or the stored input data is malformed.

    Never retried: the caller (or whoever edits the commitment) must fix it.
    """

    code = "invalid_input"
    http_status = 400


class NotFoundError(OrchestrationError):
    """Raised when a requested record does not exist within the given scope.

    Used for BOTH genuinely missing rows AND rows that belong to another
    tenant, so a 404 never confirms that a foreign record exists.

    Args:
        resource: Human-readable model name (e.g. "Commitment").
        resource_id: The PK that was looked up. Included in logs.
        tenant_id: Optional scope that was enforced. For debug logging only.
    """

    code = "not_found"
    http_status = 404

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        tenant_id: int | None = None,
        *,
        code: str | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.tenant_id = tenant_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        if tenant_id is not None:
            msg += f" (tenant={tenant_id})"
        super().__init__(msg, code=code)


class StoreReadError(OrchestrationError):
    """Raised when a query against the backing store fails."""

    code = "store_read_failed"


class StoreWriteError(OrchestrationError):
    """Raised when an insert against the backing store fails.

    The surrounding transaction is rolled back, so a retry is safe.
    """

    code = "store_write_failed"


class TenantMismatchError(OrchestrationError):
    """Raised when a record reachable from a commitment carries another tenant_id.

    Cross-tenant references are a data-integrity violation: they are
    rejected, never skipped.
    """

    code = "tenant_mismatch"

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None,
        expected_tenant_id: int,
        actual_tenant_id: int | None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.expected_tenant_id = expected_tenant_id
        self.actual_tenant_id = actual_tenant_id
        super().__init__(
            f"{resource} id={resource_id} belongs to tenant={actual_tenant_id}, "
            f"expected tenant={expected_tenant_id}",
            detail={"resource": resource, "resource_id": resource_id},
        )


class ImmutableRecordError(Exception):
    """Raised when code tries to update or delete an append-only record."""
