"""
Shared pytest fixtures for the onboarding checklist test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - default_tenant / other_tenant: Pre-created Tenant entities
    - ctx: ChecklistContext for the default tenant
    - make_customer / make_template: factories
"""

import pytest

from onboarding import create_app
from onboarding.core.context import ChecklistContext
from onboarding.models import db as _db
from onboarding.models.customer import Customer, CustomerDocument
from onboarding.models.tenant import Tenant


def _ensure_tenant(slug, name):
    t = Tenant.query.filter_by(slug=slug).first()
    if not t:
        t = Tenant(name=name, slug=slug)
        _db.session.add(t)
        _db.session.commit()
    return t


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
        _ensure_tenant("test-default", "Test Default")
        _ensure_tenant("test-other", "Test Other")
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def default_tenant():
    """Return the auto-created default test tenant."""
    return Tenant.query.filter_by(slug="test-default").first()


@pytest.fixture()
def other_tenant():
    """A second tenant for isolation checks."""
    return Tenant.query.filter_by(slug="test-other").first()


@pytest.fixture()
def ctx(default_tenant):
    return ChecklistContext(tenant_id=default_tenant.id, actor_id="member-1")


@pytest.fixture()
def other_ctx(other_tenant):
    return ChecklistContext(tenant_id=other_tenant.id, actor_id="member-9")


# ── Factories ────────────────────────────────────────────────────────────


@pytest.fixture()
def make_customer(default_tenant):
    """Insert a customer directly, bypassing the lifecycle service."""

    def _make(tenant_id=None, name="Acme", customer_type="INDIVIDUAL", lifecycle_status="PROSPECT"):
        customer = Customer(
            tenant_id=tenant_id or default_tenant.id,
            name=name,
            customer_type=customer_type,
            lifecycle_status=lifecycle_status,
        )
        _db.session.add(customer)
        _db.session.commit()
        return customer

    return _make


@pytest.fixture()
def make_document():
    def _make(customer, file_name="passport.pdf"):
        document = CustomerDocument(
            tenant_id=customer.tenant_id, customer_id=customer.id, file_name=file_name,
        )
        _db.session.add(document)
        _db.session.commit()
        return document

    return _make


@pytest.fixture()
def make_template(ctx):
    """Create a template through the service.

    ``items`` entries are dicts; ``key`` / ``depends_on_key`` wire dependencies.
    """
    from onboarding.services import checklist_template_service

    def _make(name="KYC", items=None, context=None, **fields):
        data = {"name": name, "items": items or [{"key": "a", "name": "Step A"}]}
        data.update(fields)
        return checklist_template_service.create_template(context or ctx, data)

    return _make
