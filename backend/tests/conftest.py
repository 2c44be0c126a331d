"""
Pytest fixtures for Canopy backend tests.

Provides the test database, two isolated locations (tenants) with rooms
and users, and the test client.
"""

import pytest

from canopy import create_app
from canopy.config import TestConfig
from canopy.extensions import db
from canopy.models import Location
from canopy.services import auth_service, inventory_type_service, room_service

PASSWORD = "Password123"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Fresh data for each test; the inventory taxonomy is re-seeded."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        inventory_type_service.seed_standard_types()
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def location_a(db_session):
    """Location A (first tenant)."""
    location = Location(name="Green Acres", ubi="600000001", license_type="Cultivator", is_active=True)
    db_session.add(location)
    db_session.commit()
    return location


@pytest.fixture(scope='function')
def location_b(db_session):
    """Location B (second tenant)."""
    location = Location(name="Blue Ridge", ubi="600000002", license_type="Cultivator", is_active=True)
    db_session.add(location)
    db_session.commit()
    return location


@pytest.fixture(scope='function')
def room_a(location_a):
    return room_service.create_room(location_a.id, "Veg 1", "vegetative")


@pytest.fixture(scope='function')
def room_a2(location_a):
    return room_service.create_room(location_a.id, "Flower 1", "flowering")


@pytest.fixture(scope='function')
def room_b(location_b):
    return room_service.create_room(location_b.id, "Veg 1", "vegetative")


@pytest.fixture(scope='function')
def admin_a(location_a):
    return auth_service.create_user(location_a.id, "admin_a", PASSWORD, role="admin")


@pytest.fixture(scope='function')
def admin_b(location_b):
    return auth_service.create_user(location_b.id, "admin_b", PASSWORD, role="admin")


@pytest.fixture(scope='function')
def viewer_a(location_a):
    return auth_service.create_user(location_a.id, "viewer_a", PASSWORD, role="viewer")


@pytest.fixture(scope='function')
def processor_a(location_a):
    return auth_service.create_user(location_a.id, "processor_a", PASSWORD, role="processor")


def get_auth_token(client, username: str, password: str = PASSWORD, location_ubi: str = None) -> str:
    """Helper to get auth token for a user."""
    body = {'username': username, 'password': password}
    if location_ubi is not None:
        body['location_ubi'] = location_ubi
    response = client.post('/api/auth/login', json=body)
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_a_headers(client, admin_a):
    return auth_headers(get_auth_token(client, "admin_a"))


@pytest.fixture(scope='function')
def admin_b_headers(client, admin_b):
    return auth_headers(get_auth_token(client, "admin_b"))


@pytest.fixture(scope='function')
def viewer_a_headers(client, viewer_a):
    return auth_headers(get_auth_token(client, "viewer_a"))


@pytest.fixture(scope='function')
def processor_a_headers(client, processor_a):
    return auth_headers(get_auth_token(client, "processor_a"))


@pytest.fixture(scope='function')
def type_id(db_session):
    """Lookup of a seeded inventory type id by name."""
    def _lookup(name: str) -> int:
        return inventory_type_service.require_type_by_name(name).id
    return _lookup


@pytest.fixture(scope='function')
def login(client):
    """Log in and return Authorization headers (None when login fails)."""
    def _login(username: str, password: str = PASSWORD, location_ubi: str = None):
        token = get_auth_token(client, username, password, location_ubi)
        return auth_headers(token) if token else None
    return _login
