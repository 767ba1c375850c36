"""
Shared pytest fixtures for the fulfillment orchestrator test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - tenant / other_tenant: Pre-created Tenant entities
    - make_offering / make_template / make_commitment / make_item:
      ORM factories that commit, so a run's rollback never removes them
"""

from datetime import datetime, timedelta, timezone

import pytest

from fulfillment import create_app
from fulfillment.models import db as _db
from fulfillment.models.catalog import DeliverableTemplate, Offering
from fulfillment.models.commitment import Commitment, CommitmentItem
from fulfillment.models.tenant import Tenant


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


def _make_tenant(name, slug):
    t = Tenant(name=name, slug=slug)
    _db.session.add(t)
    _db.session.commit()
    return t


@pytest.fixture()
def tenant():
    return _make_tenant("Acme Field Services", "acme")


@pytest.fixture()
def other_tenant():
    return _make_tenant("Globex", "globex")


# ── ORM factories ────────────────────────────────────────────────────────

# Rows get strictly increasing created_at values so creation order is
# unambiguous even when inserts land within the same clock tick.
_BASE_TS = datetime(2026, 1, 1, tzinfo=timezone.utc)


@pytest.fixture()
def _clock():
    state = {"n": 0}

    def tick():
        state["n"] += 1
        return _BASE_TS + timedelta(seconds=state["n"])

    return tick


@pytest.fixture()
def make_offering(tenant):
    def _make(name="Heat pump", tenant_id=None, **kw):
        o = Offering(tenant_id=tenant_id or tenant.id, name=name, **kw)
        _db.session.add(o)
        _db.session.commit()
        return o

    return _make


@pytest.fixture()
def make_template(tenant, _clock):
    def _make(offering, name="Installation", tenant_id=None, **kw):
        kw.setdefault("created_at", _clock())
        tpl = DeliverableTemplate(
            tenant_id=tenant_id or tenant.id,
            offering_entity_id=offering.id,
            name=name,
            **kw,
        )
        _db.session.add(tpl)
        _db.session.commit()
        return tpl

    return _make


@pytest.fixture()
def make_commitment(tenant):
    def _make(status="active", tenant_id=None, **kw):
        c = Commitment(tenant_id=tenant_id or tenant.id, status=status, **kw)
        _db.session.add(c)
        _db.session.commit()
        return c

    return _make


@pytest.fixture()
def make_item(tenant, _clock):
    def _make(commitment, offering, quantity=1, metadata=None, tenant_id=None, **kw):
        kw.setdefault("created_at", _clock())
        item = CommitmentItem(
            tenant_id=tenant_id or tenant.id,
            commitment_id=commitment.id,
            offering_entity_id=offering.id,
            quantity=quantity,
            meta=metadata if metadata is not None else {},
            **kw,
        )
        _db.session.add(item)
        _db.session.commit()
        return item

    return _make
