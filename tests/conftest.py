"""
Pytest configuration.

Each test gets a fresh application bound to an in-memory SQLite database,
with CSRF disabled and one account per role.
"""

import pytest

from app import create_app
from extensions import db
from models import Role, User, generate_uuid
from utils import security

PASSWORD = "clave-segura-1"

# username -> (role, assigned region, municipality-wide)
ACCOUNT_SPECS = {
    "admin": (Role.ADMIN, None, False),
    "director": (Role.DIRECTOR, None, False),
    "analyst": (Role.ANALYST, None, False),
    "regional1": (Role.REGIONAL, "REGION 1", False),
    "shiftchief2": (Role.SHIFT_CHIEF, "REGION 2", False),
    "municipal": (Role.MUNICIPALITY_CHIEF, "REGION 1", True),
    "quadrant1": (Role.QUADRANT_CHIEF, "REGION 1", False),
    "patrol1": (Role.PATROL_OFFICER, "REGION 1", False),
    "patrol2": (Role.PATROL_OFFICER, "REGION 2", False),
}


def make_user(username, role, region=None, municipality_wide=False, password=PASSWORD):
    user = User(
        id=generate_uuid(),
        full_name=username.upper(),
        username=username,
        role=role.value,
        assigned_region=region,
        is_municipality_wide=municipality_wide,
        is_active=True,
    )
    user.set_password(password)
    db.session.add(user)
    return user


def build_operative_payload(**overrides):
    """A valid patrol registration using values from the seed catalogs."""
    payload = {
        "type": "OPERATIVO CARRUSEL",
        "region": "REGION 1",
        "quadrant": "1",
        "shift": "FIRST",
        "location": {
            "latitude": 19.316721,
            "longitude": -98.883312,
            "colony": "CENTRO",
            "street": "AV. JUAREZ",
            "corner": "HIDALGO",
        },
        "units": [
            {
                "unit_number": "P-101",
                "in_charge": "JUAN PEREZ",
                "rank": "POLICIA PRIMERO",
                "personnel_count": 2,
                "phone": "55 1234 5678",
            }
        ],
        "corporations": [
            {
                "name": "GUARDIA NACIONAL",
                "unit_number": "GN-7",
                "in_charge": "LUIS DIAZ",
                "unit_count": 1,
                "personnel_count": 4,
            }
        ],
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def app():
    """Application configured for testing."""
    application = create_app("testing")
    yield application
    with application.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def ctx(app):
    """Active application context for service-level tests."""
    with app.app_context():
        yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture(autouse=True)
def reset_login_attempts():
    security._attempts.clear()
    yield
    security._attempts.clear()


@pytest.fixture
def accounts(app):
    """Map of username -> user id for one account per role."""
    with app.app_context():
        ids = {}
        for username, (role, region, wide) in ACCOUNT_SPECS.items():
            ids[username] = make_user(username, role, region, wide).id
        db.session.commit()
    return ids


@pytest.fixture
def login(client):
    """Log the test client in as the given username."""

    def _login(username, password=PASSWORD):
        response = client.post("/auth/login", json={"username": username, "password": password})
        assert response.status_code == 200, response.get_json()
        return response

    return _login


@pytest.fixture
def operative_payload():
    return build_operative_payload
