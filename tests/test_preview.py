"""
Tests: deliverables preview (service + endpoint).

The preview is a pure read: it must plan exactly what orchestration would
create and write nothing.
"""

import pytest

from fulfillment.core.exceptions import NotFoundError, ValidationError
from fulfillment.models.audit import AuditLog
from fulfillment.models.deliverable import Deliverable
from fulfillment.services.preview_service import preview_deliverables

URL = "/api/v1/commitments/deliverables-preview"


@pytest.fixture()
def catalog(make_offering, make_template):
    pump = make_offering("Heat pump")
    install = make_template(pump, "Installation", estimated_minutes=120, required_resource_type="technician")
    training = make_template(pump, "Training", estimated_minutes=45, required_resource_type="trainer")
    survey = make_template(pump, "Site survey", estimated_minutes=30)
    return {"pump": pump, "install": install, "training": training, "survey": survey}


class TestPreviewService:
    def test_lines_follow_template_order(self, tenant, catalog):
        plan = preview_deliverables(tenant.id, [{"offering_id": catalog["pump"].id, "quantity": 2}])

        assert [line["template_name"] for line in plan["lines"]] == ["Installation", "Training", "Site survey"]
        assert [line["quantity"] for line in plan["lines"]] == [2, 2, 2]
        assert plan["total_deliverables"] == 6

    def test_resource_totals_largest_first(self, tenant, catalog):
        plan = preview_deliverables(tenant.id, [{"offering_id": catalog["pump"].id, "quantity": 2}])

        assert plan["resource_totals"] == [
            {"required_resource_type": "technician", "total_minutes": 240, "deliverables": 2},
            {"required_resource_type": "trainer", "total_minutes": 90, "deliverables": 2},
            {"required_resource_type": "unspecified", "total_minutes": 60, "deliverables": 2},
        ]

    def test_overrides_apply(self, tenant, catalog):
        training_id = catalog["training"].id
        plan = preview_deliverables(tenant.id, [{
            "offering_id": catalog["pump"].id,
            "quantity": 1,
            "metadata": {"deliverable_overrides": {str(training_id): {"quantity": 4}}},
        }])

        by_template = {line["template_id"]: line["quantity"] for line in plan["lines"]}
        assert by_template[training_id] == 4
        assert plan["total_deliverables"] == 6

    def test_missing_quantity_defaults_to_one(self, tenant, catalog):
        plan = preview_deliverables(tenant.id, [{"offering_id": catalog["pump"].id}])
        assert plan["total_deliverables"] == 3

    def test_empty_items(self, tenant):
        assert preview_deliverables(tenant.id, []) == {
            "lines": [],
            "total_deliverables": 0,
            "resource_totals": [],
        }

    def test_preview_writes_nothing(self, tenant, catalog):
        preview_deliverables(tenant.id, [{"offering_id": catalog["pump"].id, "quantity": 3}])
        assert Deliverable.query.count() == 0
        assert AuditLog.query.count() == 0

    def test_other_tenant_offering_is_not_found(self, other_tenant, catalog):
        with pytest.raises(NotFoundError) as exc_info:
            preview_deliverables(other_tenant.id, [{"offering_id": catalog["pump"].id}])
        assert exc_info.value.code == "offering_not_found"

    @pytest.mark.parametrize("items", [
        "nope",
        {"offering_id": 1},
        ["nope"],
        [{}],
        [{"offering_id": "abc"}],
        [{"offering_id": 0}],
        [{"offering_id": True}],
    ])
    def test_malformed_items(self, tenant, items):
        with pytest.raises(ValidationError) as exc_info:
            preview_deliverables(tenant.id, items)
        assert exc_info.value.code == "invalid_preview_items"


class TestPreviewEndpoint:
    def test_preview_endpoint(self, client, tenant, catalog):
        rv = client.post(
            URL,
            json={"items": [{"offering_id": catalog["pump"].id, "quantity": 1}]},
            headers={"X-Tenant-ID": str(tenant.id)},
        )

        assert rv.status_code == 200
        body = rv.get_json()
        assert body["ok"] is True
        assert body["tenant_id"] == tenant.id
        assert body["total_deliverables"] == 3
        assert len(body["lines"]) == 3

    def test_preview_requires_tenant_header(self, client, catalog):
        rv = client.post(URL, json={"items": []})
        assert rv.status_code == 400
        assert rv.get_json() == {"ok": False, "error": "missing_tenant_id"}

    def test_preview_rejects_bad_tenant_header(self, client):
        rv = client.post(URL, json={"items": []}, headers={"X-Tenant-ID": "acme"})
        assert rv.status_code == 400
        assert rv.get_json()["error"] == "invalid_tenant_id"

    def test_preview_bad_overrides(self, client, tenant, catalog):
        rv = client.post(
            URL,
            json={"items": [{"offering_id": catalog["pump"].id, "metadata": {"deliverable_overrides": 7}}]},
            headers={"X-Tenant-ID": str(tenant.id)},
        )
        assert rv.status_code == 400
        assert rv.get_json()["error"] == "invalid_deliverable_overrides"
