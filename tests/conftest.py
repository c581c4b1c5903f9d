"""
Shared pytest fixtures for the Change Order Workflow test suite.

Provides:
    - app: Flask application (session-scoped, SQL store on in-memory SQLite)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - fixed_now / lifecycle: in-memory lifecycle service with a frozen clock
    - make_input: factory for complete ChangeOrderInput values
    - valid_payload: a complete submission body that passes the checklist
"""

from datetime import datetime, timedelta, timezone

import pytest

from app import create_app
from app.models import db as _db
from app.models.change_order import ChangeOrderInput
from app.services.change_order_lifecycle import ChangeOrderLifecycle
from app.services.change_order_store import InMemoryChangeOrderStore

FIXED_NOW = datetime(2025, 3, 10, 15, 0, 0, tzinfo=timezone.utc)


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


# ── Domain fixtures ──────────────────────────────────────────────────────


@pytest.fixture()
def fixed_now():
    return FIXED_NOW


@pytest.fixture()
def lifecycle(fixed_now):
    """Lifecycle service over a fresh in-memory store with a frozen clock."""
    return ChangeOrderLifecycle(InMemoryChangeOrderStore(), clock=lambda: fixed_now)


def _make_input(**overrides) -> ChangeOrderInput:
    values = dict(
        project_id="PRJ-1042",
        contractor_name="Dana Ortiz",
        contractor_email="dana@acme-builders.com",
        work_performed_at=(FIXED_NOW - timedelta(hours=2)).isoformat(),
        scope="Replace water-damaged subfloor in hallway",
        quantity=120.0,
        unit_label="sq ft",
        material_cost=640.0,
        labor_cost=480.0,
        additional_charges=0.0,
        additional_charges_reason="",
        why_needed="Subfloor rot discovered after carpet removal",
        why_not_in_turnkey="Hidden damage, not visible during walkthrough",
        photos=["photo-hallway-1.jpg"],
        is_multi_item=False,
        line_items=[],
    )
    values.update(overrides)
    return ChangeOrderInput(**values)


@pytest.fixture()
def make_input():
    """Factory for a complete ChangeOrderInput performed two hours before FIXED_NOW."""
    return _make_input


@pytest.fixture()
def valid_payload():
    """JSON body for POST /change-orders/submit, performed one hour ago."""
    performed = datetime.now(timezone.utc) - timedelta(hours=1)
    return {
        "project_id": "PRJ-1042",
        "contractor_name": "Dana Ortiz",
        "contractor_email": "dana@acme-builders.com",
        "work_performed_at": performed.isoformat(),
        "scope": "Replace water-damaged subfloor in hallway",
        "quantity": 120,
        "unit_label": "sq ft",
        "material_cost": 640,
        "labor_cost": 480,
        "additional_charges": 0,
        "additional_charges_reason": "",
        "why_needed": "Subfloor rot discovered after carpet removal",
        "why_not_in_turnkey": "Hidden damage, not visible during walkthrough",
        "photos": ["photo-hallway-1.jpg"],
        "is_multi_item": False,
        "line_items": [],
    }
