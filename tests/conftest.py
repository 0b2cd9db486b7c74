"""
Shared pytest fixtures for the order workflow engine test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - make_service / make_order_type / make_order: catalog and order factories
"""

import pytest

from orderflow import create_app
from orderflow.models import db as _db
from orderflow.models.catalog import OrderType, OrderTypeService, Service
from orderflow.services import order_service


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


# ── Catalog / order factories ────────────────────────────────────────────


@pytest.fixture()
def make_service():
    """Factory: insert a catalog Service.

    ``auto_assign_user_id`` alone switches auto-assignment on; pass
    ``auto_assign_enabled=False`` to model a configured-but-disabled target.
    """

    def _make(
        name="Photo Retouch",
        type="DIRECT",
        *,
        auto_assign_user_id=None,
        auto_assign_enabled=None,
        is_active=True,
        is_mandatory=False,
        team_id=None,
    ) -> Service:
        if auto_assign_enabled is None:
            auto_assign_enabled = auto_assign_user_id is not None
        svc = Service(
            name=name,
            type=type,
            team_id=team_id,
            is_mandatory=is_mandatory,
            is_active=is_active,
            auto_assign_enabled=auto_assign_enabled,
            auto_assign_user_id=auto_assign_user_id,
        )
        _db.session.add(svc)
        _db.session.flush()
        return svc

    return _make


@pytest.fixture()
def make_order_type():
    """Factory: insert an OrderType whose template is *services*."""
    counter = {"n": 0}

    def _make(services=(), name=None) -> OrderType:
        counter["n"] += 1
        ot = OrderType(name=name or f"Order Type {counter['n']}")
        _db.session.add(ot)
        _db.session.flush()
        for svc in services:
            _db.session.add(OrderTypeService(order_type_id=ot.id, service_id=svc.id))
        _db.session.flush()
        _db.session.refresh(ot)
        return ot

    return _make


@pytest.fixture()
def make_order(make_order_type):
    """Factory: create an order through the order service.

    ``services`` is the ordered selection (repeat a Service for quantity);
    without it the order type's template is used.
    """

    def _make(order_type=None, services=None, *, folder_link=None, delivery_date=None):
        if order_type is None:
            order_type = make_order_type(list(dict.fromkeys(services or [])))
        data = {
            "order_type_id": order_type.id,
            "customer_name": "Jane Customer",
            "folder_link": folder_link,
            "delivery_date": delivery_date,
        }
        if services is not None:
            data["service_ids"] = [s.id for s in services]
        return order_service.create_order(data, "creator")

    return _make
