"""
Tests: HTTP contract of the orchestration trigger.

Covers:
    1. Success body carries counts and run_id
    2. Skip bodies (not_active / already_generated)
    3. Input errors: missing, malformed JSON, non-integer id
    4. Not found, wrong method, unknown path
    5. Unexpected exceptions map to internal_error
    6. Request id propagation into the run marker and audit rows

Marker: integration (full HTTP round-trip through Flask test client).
"""

import fulfillment.blueprints.commitments_bp as commitments_bp_module
from fulfillment.models.audit import AuditLog
from fulfillment.models.deliverable import OrchestrationRun

URL = "/api/v1/commitments/orchestrate"


def _seed(make_offering, make_template, make_commitment, make_item, status="active", quantity=2):
    offering = make_offering()
    make_template(offering, "Installation")
    make_template(offering, "Training")
    commitment = make_commitment(status=status)
    make_item(commitment, offering, quantity=quantity)
    return commitment.id


class TestOrchestrateSuccess:
    def test_success_body(self, client, tenant, make_offering, make_template, make_commitment, make_item):
        commitment_id = _seed(make_offering, make_template, make_commitment, make_item)
        tenant_id = tenant.id

        rv = client.post(URL, json={"commitment_id": commitment_id})

        assert rv.status_code == 200
        body = rv.get_json()
        run_id = body.pop("run_id")
        assert isinstance(run_id, int)
        assert body == {
            "ok": True,
            "tenant_id": tenant_id,
            "commitment_id": commitment_id,
            "deliverables_created": 4,
            "dependencies_created": 3,
        }

    def test_string_commitment_id_is_accepted(self, client, make_offering, make_template, make_commitment, make_item):
        commitment_id = _seed(make_offering, make_template, make_commitment, make_item, quantity=1)

        rv = client.post(URL, json={"commitment_id": str(commitment_id)})

        assert rv.status_code == 200
        assert rv.get_json()["deliverables_created"] == 2

    def test_repeat_call_is_skipped(self, client, tenant, make_offering, make_template, make_commitment, make_item):
        commitment_id = _seed(make_offering, make_template, make_commitment, make_item)
        tenant_id = tenant.id

        client.post(URL, json={"commitment_id": commitment_id})
        rv = client.post(URL, json={"commitment_id": commitment_id})

        assert rv.status_code == 200
        assert rv.get_json() == {
            "ok": True,
            "skipped": True,
            "reason": "already_generated",
            "tenant_id": tenant_id,
            "commitment_id": commitment_id,
        }

    def test_inactive_commitment_is_skipped(self, client, make_offering, make_template, make_commitment, make_item):
        commitment_id = _seed(make_offering, make_template, make_commitment, make_item, status="draft")

        rv = client.post(URL, json={"commitment_id": commitment_id})

        assert rv.status_code == 200
        body = rv.get_json()
        assert body["skipped"] is True
        assert body["reason"] == "not_active"


class TestOrchestrateErrors:
    def test_missing_commitment_id(self, client):
        rv = client.post(URL, json={})
        assert rv.status_code == 400
        assert rv.get_json() == {"ok": False, "error": "missing_commitment_id"}

    def test_malformed_json_counts_as_empty_body(self, client):
        rv = client.post(URL, data="{not json", content_type="application/json")
        assert rv.status_code == 400
        assert rv.get_json()["error"] == "missing_commitment_id"

    def test_non_object_body_counts_as_empty(self, client):
        rv = client.post(URL, json=[1, 2, 3])
        assert rv.status_code == 400
        assert rv.get_json()["error"] == "missing_commitment_id"

    def test_invalid_commitment_id(self, client):
        rv = client.post(URL, json={"commitment_id": "abc"})
        assert rv.status_code == 400
        assert rv.get_json()["error"] == "invalid_commitment_id"

    def test_unknown_commitment(self, client):
        rv = client.post(URL, json={"commitment_id": 999999})
        assert rv.status_code == 404
        assert rv.get_json() == {"ok": False, "error": "commitment_not_found"}

    def test_malformed_overrides(self, client, make_offering, make_template, make_commitment, make_item):
        offering = make_offering()
        make_template(offering)
        commitment = make_commitment()
        make_item(commitment, offering, metadata={"deliverable_overrides": ["oops"]})

        rv = client.post(URL, json={"commitment_id": commitment.id})

        assert rv.status_code == 400
        body = rv.get_json()
        assert body["ok"] is False
        assert body["error"] == "invalid_deliverable_overrides"
        assert "commitment_item_id" in body["detail"]

    def test_get_is_not_allowed(self, client):
        rv = client.get(URL)
        assert rv.status_code == 405
        assert rv.get_json() == {"ok": False, "error": "method_not_allowed"}

    def test_unknown_path(self, client):
        rv = client.get("/api/v1/nope")
        assert rv.status_code == 404
        assert rv.get_json() == {"ok": False, "error": "not_found"}

    def test_unexpected_exception_is_internal_error(self, client, monkeypatch):
        def _explode(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(commitments_bp_module, "orchestrate_commitment", _explode)

        rv = client.post(URL, json={"commitment_id": 1})

        assert rv.status_code == 500
        body = rv.get_json()
        assert body["ok"] is False
        assert body["error"] == "internal_error"


class TestRequestId:
    def test_request_id_is_echoed_and_recorded(self, client, make_offering, make_template, make_commitment, make_item):
        commitment_id = _seed(make_offering, make_template, make_commitment, make_item, quantity=1)

        rv = client.post(URL, json={"commitment_id": commitment_id}, headers={"X-Request-ID": "req-abc-123"})

        assert rv.status_code == 200
        assert rv.headers["X-Request-ID"] == "req-abc-123"
        assert "X-Request-Duration-Ms" in rv.headers
        assert OrchestrationRun.query.one().request_id == "req-abc-123"
        audit = AuditLog.query.all()
        assert audit
        assert {a.request_id for a in audit} == {"req-abc-123"}

    def test_request_id_is_generated_when_absent(self, client):
        rv = client.post(URL, json={})
        assert rv.headers.get("X-Request-ID")
