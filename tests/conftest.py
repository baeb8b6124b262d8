import sys
import os
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# -------------------------------------------------------
# Add Project Root to Path
# -------------------------------------------------------
# Makes 'locallens' importable when the package is not installed
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from locallens import config
from locallens.auth_utils import create_access_token, hash_password
from locallens.database import Base, get_db
from locallens.main import app
from locallens.models.user import User, UserRole

DEFAULT_PASSWORD = "Passw0rd"


# -------------------------------------------------------
# Test Database Setup
# -------------------------------------------------------
# Use in-memory SQLite for fast, isolated tests
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


# -------------------------------------------------------
# Fixtures
# -------------------------------------------------------
@pytest.fixture(autouse=True)
def no_rate_limit(monkeypatch):
    monkeypatch.setattr(config, "RATE_LIMIT_ENABLED", False)


@pytest.fixture(scope="function")
def db_session():
    """Create a new database session for each test."""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        # Drop tables to ensure clean slate for next test
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session):
    """Test client sharing the test's session, so fixtures and requests see the same rows."""

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db_session):
    def _make_user(
        email: str,
        name: str = "Test User",
        role: UserRole = UserRole.CITIZEN,
        admin_area: str = None,
        is_active: bool = True,
        password: str = DEFAULT_PASSWORD,
    ) -> User:
        user = User(
            name=name,
            email=email,
            password_hash=hash_password(password),
            role=role.value,
            admin_area=admin_area,
            is_active=is_active,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make_user


@pytest.fixture
def citizen(make_user):
    return make_user("alice@example.com", name="Alice")


@pytest.fixture
def other_citizen(make_user):
    return make_user("bob@example.com", name="Bob")


@pytest.fixture
def admin(make_user):
    return make_user("admin@example.com", name="Admin", role=UserRole.ADMINISTRATOR)


def auth_header(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.user_id)}"}


def report_payload(**overrides) -> dict:
    payload = {
        "title": "Broken streetlight on Elm St",
        "description": "The streetlight at the corner has been dark for a week.",
        "category": "streetlight",
        "location": {
            "address": "12 Elm St",
            "coordinates": {"lat": 40.0, "lng": -75.0},
            "city": "Springfield",
        },
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def create_report(client):
    """POST a report as the given user and return its JSON representation."""

    def _create(user: User, **overrides) -> dict:
        response = client.post("/api/reports", json=report_payload(**overrides), headers=auth_header(user))
        assert response.status_code == 201, response.text
        return response.json()["report"]

    return _create
