# tests/conftest.py
import os
from datetime import datetime, timezone

# ---- Configure the app under test before anything imports gymdesk
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["REDIS_URL"] = ""
os.environ.setdefault("JWT_SECRET", "test-access-secret")
os.environ.setdefault("JWT_REFRESH_SECRET", "test-refresh-secret")
os.environ.setdefault("DUPLICATE_SCAN_WINDOW_MINUTES", "5")

import pytest
from fastapi.testclient import TestClient

from api.main import create_app
from gymdesk.auth import store
from gymdesk.auth.db import Base, SessionLocal, engine
from gymdesk.auth.models import Gym
from gymdesk.auth.permissions import GYM_OWNER, STAFF, SUPER_ADMIN
from gymdesk.auth.security import issue_access_token
from gymdesk.auth.utils_ids import new_gym_id
from gymdesk.realtime.bus import BUS, shutdown_realtime

PASSWORD = "secret123"


@pytest.fixture(scope="session")
def app():
    return create_app()


@pytest.fixture(autouse=True)
def _fresh_state():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    BUS._channels.clear()
    yield
    shutdown_realtime()


@pytest.fixture
def client(app):
    # a new client per test so cookies never leak between tests
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


# ---- Seed helpers

def headers_for(user):
    token = issue_access_token(user_id=str(user.id), gym_id=user.gym_id, role=user.role)
    return {"Authorization": f"Bearer {token}"}


def make_gym(db, name="Iron Temple", owner_email=None):
    gym = Gym(gym_id=new_gym_id(), name=name, settings={"timezone": "UTC"})
    db.add(gym)
    db.commit()
    db.refresh(gym)
    owner = store.create_user(
        db,
        email=owner_email or f"owner-{gym.gym_id.lower()}@example.com",
        password=PASSWORD,
        name=f"{name} Owner",
        phone="555-0100",
        role=GYM_OWNER,
        gym_id=gym.gym_id,
    )
    return gym, owner


def make_user(db, gym, role=STAFF, email=None):
    return store.create_user(
        db,
        email=email or f"{role}-{gym.gym_id.lower()}@example.com",
        password=PASSWORD,
        name=role.title(),
        phone="555-0101",
        role=role,
        gym_id=gym.gym_id,
    )


@pytest.fixture
def superadmin(db):
    return store.create_user(
        db, email="root@example.com", password=PASSWORD, name="Root", phone="555-0000", role=SUPER_ADMIN
    )


@pytest.fixture
def gym_a(db):
    return make_gym(db, "Gym A", owner_email="owner-a@example.com")


@pytest.fixture
def gym_b(db):
    return make_gym(db, "Gym B", owner_email="owner-b@example.com")


@pytest.fixture
def owner_headers(gym_a):
    return headers_for(gym_a[1])


@pytest.fixture
def staff_headers(db, gym_a):
    return headers_for(make_user(db, gym_a[0], STAFF))


@pytest.fixture
def assert_iso_timestamp():
    def _assert_iso(value: str):
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
        assert dt.tzinfo is not None
        now = datetime.now(timezone.utc)
        assert abs((now - dt).total_seconds()) < 60 * 60 * 24
    return _assert_iso


class Seeder:
    """Seed helpers bound to the test session."""

    def __init__(self, db):
        self.db = db

    def gym(self, name="Another Gym", owner_email=None):
        return make_gym(self.db, name, owner_email=owner_email)

    def user(self, gym, role=STAFF, email=None):
        return make_user(self.db, gym, role, email=email)

    headers = staticmethod(headers_for)

    @staticmethod
    def token(user):
        return headers_for(user)["Authorization"].split()[1]


@pytest.fixture
def seed(db):
    return Seeder(db)
