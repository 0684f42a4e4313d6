# Test configuration and fixtures
import os

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AUTO_CREATE_DB"] = "false"
os.environ["RATE_LIMIT"] = "100000/minute"
os.environ["JWT_SECRET"] = "test-access-secret-0123456789abcdef"
os.environ["JWT_REFRESH_SECRET"] = "test-refresh-secret-0123456789abcdef"
os.environ["LOG_LEVEL"] = "WARNING"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from municipal_feedback.auth.security import create_access_token, get_password_hash
from municipal_feedback.db import Base, build_engine
from municipal_feedback.main import create_app
from municipal_feedback.models.models import Municipality, User, UserRole


@pytest.fixture
def engine():
    """Fresh in-memory database per test"""
    eng = build_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def app(session_factory):
    return create_app(session_factory=session_factory)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def make_municipality(db):
    def _make(name: str = "Springfield", city: str = "Springfield") -> Municipality:
        m = Municipality(
            name=name,
            city=city,
            state="Test State",
            country="Test Country",
            contact_email=f"contact@{name.lower().replace(' ', '-')}.org",
        )
        db.add(m)
        db.commit()
        db.refresh(m)
        return m

    return _make


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(role: UserRole = UserRole.USER, municipality=None, email=None, password: str = "secret123") -> User:
        counter["n"] += 1
        u = User(
            email=email or f"user{counter['n']}@example.com",
            password_hash=get_password_hash(password),
            name=f"{role.value.title()} {counter['n']}",
            role=role.value,
            municipality_id=municipality.id if municipality is not None else None,
        )
        db.add(u)
        db.commit()
        db.refresh(u)
        return u

    return _make


def auth_header(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(str(user.id), role=user.role)}"}


@pytest.fixture
def headers():
    return auth_header


@pytest.fixture
def town_a(make_municipality):
    return make_municipality("Town A", "Alpha")


@pytest.fixture
def town_b(make_municipality):
    return make_municipality("Town B", "Beta")


@pytest.fixture
def admin(make_user):
    return make_user(UserRole.ADMIN, email="admin@test.com", password="admin123")


@pytest.fixture
def staff_a(make_user, town_a):
    return make_user(UserRole.MUNICIPALITY_ADMIN, town_a, email="staff.a@example.com")


@pytest.fixture
def staff_b(make_user, town_b):
    return make_user(UserRole.MUNICIPALITY_ADMIN, town_b, email="staff.b@example.com")


@pytest.fixture
def citizen_a(make_user, town_a):
    return make_user(UserRole.USER, town_a, email="citizen.a@example.com")


@pytest.fixture
def neighbour_a(make_user, town_a):
    return make_user(UserRole.USER, town_a, email="neighbour.a@example.com")


@pytest.fixture
def citizen_b(make_user, town_b):
    return make_user(UserRole.USER, town_b, email="citizen.b@example.com")
