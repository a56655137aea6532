"""
Pytest configuration and fixtures.

Every test gets its own in-memory SQLite database and a clock it can move.
"""

import datetime as dt

import pytest

from app import create_app
from auth import ADMIN, KITCHEN, NORMAL
from realtime import ChangeFeed
from services import build_services
from sql_db import init_db, make_engine, make_session_factory
from storage import Store

PASSWORD = "secret123"


class FakeClock:
    """Stands in for the business clock; tests move it by hand."""

    def __init__(self, start: dt.datetime):
        self.now = start

    def __call__(self) -> dt.datetime:
        return self.now

    def advance(self, **kwargs) -> dt.datetime:
        self.now += dt.timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock(dt.datetime(2024, 5, 17, 12, 0))


@pytest.fixture
def engine():
    engine = make_engine("sqlite:///:memory:")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine):
    return Store(make_session_factory(engine), ChangeFeed())


@pytest.fixture
def services(store, clock):
    return build_services(store, {}, clock=clock)


@pytest.fixture
def menu(services):
    """Two dishes on different stations."""
    return {
        "burger": services.menu.create_item(
            {"name": "Burger", "price": 10.0, "station": "inside_kitchen"}
        ),
        "fries": services.menu.create_item(
            {"name": "Fries", "price": 4.0, "station": "outside_kitchen"}
        ),
    }


@pytest.fixture
def drinks(services):
    return {
        "cola": services.inventory.add_drink(
            {"name": "Cola", "brand": "Coca-Cola", "quantity": 20, "price": 2.5}
        ),
        "water": services.inventory.add_drink({"name": "Water", "quantity": 3, "price": 1.5}),
    }


@pytest.fixture
def occupied_table(services):
    table = services.tables.create_table(capacity=4)
    return services.tables.update_table(
        table["id"], {"status": "occupied", "customer": {"name": "Ana", "party_size": 3}}
    )


# -----------------------
# Flask app
# -----------------------
@pytest.fixture
def app(clock):
    return create_app(
        {
            "TESTING": True,
            "SECRET_KEY": "test-secret",
            "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
            "FIRESTORE_EVENTS": False,
            "CLOCK": clock,
        }
    )


@pytest.fixture
def app_services(app):
    return app.extensions["pos"]


def _logged_in_client(app, role: str):
    email = f"{role}@mesa.test"
    result = app.extensions["pos"].accounts.create_account(email, PASSWORD, role)
    assert result == {"success": True}

    client = app.test_client()
    response = client.post("/login", data={"email": email, "password": PASSWORD})
    assert response.status_code == 302
    return client


@pytest.fixture
def client(app):
    """Not logged in."""
    return app.test_client()


@pytest.fixture
def waiter_client(app):
    return _logged_in_client(app, NORMAL)


@pytest.fixture
def admin_client(app):
    return _logged_in_client(app, ADMIN)


@pytest.fixture
def kitchen_client(app):
    return _logged_in_client(app, KITCHEN)
