"""
Tests: Multi-tenant isolation for orchestration and read views.

Categories:
    1. Every row a run writes carries the commitment's tenant_id
    2. Cross-tenant items, offerings and templates are rejected, never skipped
    3. Runs of two tenants never link to each other
    4. Read views answer 404 for another tenant's rows

The ``session`` autouse fixture (conftest.py) recreates tables after every test.
"""

import pytest

import fulfillment.services.orchestration_service as orchestration_service
from fulfillment.core.exceptions import TenantMismatchError
from fulfillment.models.audit import AuditLog
from fulfillment.models.commitment import CommitmentEvent
from fulfillment.models.deliverable import (
    Deliverable,
    DeliverableDependency,
    DeliverableEvent,
    OrchestrationRun,
)

URL = "/api/v1/commitments/orchestrate"


def _nothing_written():
    return (
        Deliverable.query.count() == 0
        and DeliverableDependency.query.count() == 0
        and DeliverableEvent.query.count() == 0
        and CommitmentEvent.query.count() == 0
        and AuditLog.query.count() == 0
        and OrchestrationRun.query.count() == 0
    )


# ═════════════════════════════════════════════════════════════════════════════
# 1. Tenant stamping
# ═════════════════════════════════════════════════════════════════════════════


def test_every_written_row_carries_the_commitment_tenant(tenant, make_offering, make_template, make_commitment, make_item):
    offering = make_offering()
    make_template(offering, "Installation")
    make_template(offering, "Training")
    commitment = make_commitment()
    make_item(commitment, offering, quantity=2)
    tenant_id = tenant.id

    orchestration_service.orchestrate_commitment(commitment.id)

    for model in (Deliverable, DeliverableDependency, DeliverableEvent, CommitmentEvent, OrchestrationRun, AuditLog):
        rows = model.query.all()
        assert rows, model.__name__
        assert {r.tenant_id for r in rows} == {tenant_id}, model.__name__


# ═════════════════════════════════════════════════════════════════════════════
# 2. Cross-tenant references
# ═════════════════════════════════════════════════════════════════════════════


class TestCrossTenantReferences:
    def test_foreign_item_is_rejected(self, other_tenant, make_offering, make_template, make_commitment, make_item):
        offering = make_offering()
        make_template(offering)
        commitment = make_commitment()
        make_item(commitment, offering, quantity=1)
        make_item(commitment, offering, quantity=1, tenant_id=other_tenant.id)

        with pytest.raises(TenantMismatchError) as exc_info:
            orchestration_service.orchestrate_commitment(commitment.id)

        assert exc_info.value.resource == "CommitmentItem"
        assert _nothing_written()

    def test_foreign_offering_is_rejected(self, other_tenant, make_offering, make_template, make_commitment, make_item):
        foreign = make_offering("Globex boiler", tenant_id=other_tenant.id)
        make_template(foreign, tenant_id=other_tenant.id)
        commitment = make_commitment()
        make_item(commitment, foreign, quantity=1)

        with pytest.raises(TenantMismatchError) as exc_info:
            orchestration_service.orchestrate_commitment(commitment.id)

        assert exc_info.value.resource == "Offering"
        assert _nothing_written()

    def test_foreign_template_is_rejected(self, other_tenant, make_offering, make_template, make_commitment, make_item):
        offering = make_offering()
        make_template(offering, "Installation")
        make_template(offering, "Injected", tenant_id=other_tenant.id)
        commitment = make_commitment()
        make_item(commitment, offering, quantity=1)

        with pytest.raises(TenantMismatchError) as exc_info:
            orchestration_service.orchestrate_commitment(commitment.id)

        assert exc_info.value.resource == "DeliverableTemplate"
        assert _nothing_written()

    def test_mismatch_maps_to_500(self, client, other_tenant, make_offering, make_template, make_commitment, make_item):
        foreign = make_offering("Globex boiler", tenant_id=other_tenant.id)
        commitment = make_commitment()
        make_item(commitment, foreign, quantity=1)

        rv = client.post(URL, json={"commitment_id": commitment.id})

        assert rv.status_code == 500
        body = rv.get_json()
        assert body["ok"] is False
        assert body["error"] == "tenant_mismatch"
        assert body["detail"]["resource"] == "Offering"


# ═════════════════════════════════════════════════════════════════════════════
# 3. Separate tenants, separate chains
# ═════════════════════════════════════════════════════════════════════════════


def test_two_tenants_never_share_edges(tenant, other_tenant, make_offering, make_template, make_commitment, make_item):
    ours = make_offering()
    make_template(ours)
    c_ours = make_commitment()
    make_item(c_ours, ours, quantity=2)

    theirs = make_offering("Globex boiler", tenant_id=other_tenant.id)
    make_template(theirs, tenant_id=other_tenant.id)
    c_theirs = make_commitment(tenant_id=other_tenant.id)
    make_item(c_theirs, theirs, quantity=2, tenant_id=other_tenant.id)

    r1 = orchestration_service.orchestrate_commitment(c_ours.id)
    r2 = orchestration_service.orchestrate_commitment(c_theirs.id)

    assert r1.tenant_id == tenant.id
    assert r2.tenant_id == other_tenant.id
    assert Deliverable.query_for_tenant(tenant.id).count() == 2
    assert Deliverable.query_for_tenant(other_tenant.id).count() == 2
    owner = {d.id: d.tenant_id for d in Deliverable.query.all()}
    for edge in DeliverableDependency.query.all():
        assert owner[edge.deliverable_id] == owner[edge.depends_on_deliverable_id] == edge.tenant_id


# ═════════════════════════════════════════════════════════════════════════════
# 4. Read views
# ═════════════════════════════════════════════════════════════════════════════


class TestReadIsolation:
    def _orchestrated(self, make_offering, make_template, make_commitment, make_item):
        offering = make_offering()
        make_template(offering)
        commitment = make_commitment()
        make_item(commitment, offering, quantity=2)
        orchestration_service.orchestrate_commitment(commitment.id)
        return commitment.id

    def test_deliverables_of_other_tenant_are_404(self, client, other_tenant, make_offering, make_template, make_commitment, make_item):
        commitment_id = self._orchestrated(make_offering, make_template, make_commitment, make_item)

        rv = client.get(
            f"/api/v1/commitments/{commitment_id}/deliverables",
            headers={"X-Tenant-ID": str(other_tenant.id)},
        )

        assert rv.status_code == 404
        assert rv.get_json()["error"] == "commitment_not_found"

    def test_commitment_events_of_other_tenant_are_404(self, client, other_tenant, make_offering, make_template, make_commitment, make_item):
        commitment_id = self._orchestrated(make_offering, make_template, make_commitment, make_item)

        rv = client.get(
            f"/api/v1/commitments/{commitment_id}/events",
            headers={"X-Tenant-ID": str(other_tenant.id)},
        )

        assert rv.status_code == 404

    def test_deliverable_events_of_other_tenant_are_404(self, client, other_tenant, make_offering, make_template, make_commitment, make_item):
        self._orchestrated(make_offering, make_template, make_commitment, make_item)
        deliverable_id = Deliverable.query.first().id

        rv = client.get(
            f"/api/v1/deliverables/{deliverable_id}/events",
            headers={"X-Tenant-ID": str(other_tenant.id)},
        )

        assert rv.status_code == 404
        assert rv.get_json()["error"] == "deliverable_not_found"
