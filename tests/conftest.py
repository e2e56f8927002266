import os
from datetime import date

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from vaxtracker.main import app
from vaxtracker.core.config import settings
from vaxtracker.core.database import get_db, get_redis, Base
from vaxtracker.core.security import UserRole, create_access_token, get_password_hash
from vaxtracker.models.hospital import Hospital, HospitalType
from vaxtracker.models.user import User
from vaxtracker.models.vaccine import Vaccine
from vaxtracker.services.notification_service import NotificationService

# Create test database
SQLALCHEMY_DATABASE_URL = os.environ["TEST_DATABASE_URL"]
engine = create_engine(
    SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False}
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# A weekday well in the future; the service zone is UTC in tests
BOOKING_DAY = date(2030, 1, 15)


def at(hhmm: str) -> str:
    """ISO instant on BOOKING_DAY, e.g. at("10:00") -> "2030-01-15T10:00:00Z"."""
    return f"{BOOKING_DAY.isoformat()}T{hhmm}:00Z"


class FakeRedis:
    """In-memory stand-in for the two commands the rate limiter uses."""

    def __init__(self):
        self.data = {}

    def incr(self, key):
        self.data[key] = int(self.data.get(key, 0)) + 1
        return self.data[key]

    def expire(self, key, seconds):
        return key in self.data


class RecordingNotifier:
    """Collects notifications instead of sending them."""

    def __init__(self):
        self.sent = []

    def notify_booking(self, **kwargs):
        self.sent.append(("booking", kwargs))

    def notify_payment_confirmed(self, **kwargs):
        self.sent.append(("payment", kwargs))


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(scope="function")
def test_db():
    # Create tables
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def fake_redis():
    redis_client = FakeRedis()
    app.dependency_overrides[get_redis] = lambda: redis_client
    yield redis_client
    app.dependency_overrides.pop(get_redis, None)


@pytest.fixture
def client(test_db, fake_redis):
    with TestClient(app, base_url="http://testserver") as test_client:
        yield test_client


@pytest.fixture
def db(test_db):
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def notifier():
    return NotificationService(settings)


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make_user(role=UserRole.PATIENT, approved=True, email=None, name="Test Patient"):
        counter["n"] += 1
        user = User(
            email=email or f"user{counter['n']}@vax.local",
            password_hash=get_password_hash("Secret123"),
            role=role,
            is_approved=approved,
            name=name,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def make_hospital(db):
    def _make_hospital(charge=20, approved=True, name="Denver General Hospital"):
        hospital = Hospital(
            name=name,
            address="123 Civic Center Dr, Denver, CO",
            type=HospitalType.GOVT,
            charge=charge,
            is_approved=approved,
        )
        db.add(hospital)
        db.commit()
        db.refresh(hospital)
        return hospital

    return _make_hospital


@pytest.fixture
def make_vaccine(db):
    counter = {"n": 0}

    def _make_vaccine(price=15, doses_required=2, name=None):
        counter["n"] += 1
        vaccine = Vaccine(
            name=name or f"Vaccine {counter['n']}",
            type="mRNA",
            price=price,
            doses_required=doses_required,
        )
        db.add(vaccine)
        db.commit()
        db.refresh(vaccine)
        return vaccine

    return _make_vaccine


def auth_headers(user: User) -> dict:
    token = create_access_token({
        "sub": str(user.id),
        "email": user.email,
        "role": user.role.value,
        "approved": user.is_approved,
    })
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def patient(make_user):
    return make_user()


@pytest.fixture
def admin(make_user):
    return make_user(role=UserRole.ADMIN, email="admin@vax.local", name="Admin User")


@pytest.fixture
def hospital(make_hospital):
    return make_hospital()


@pytest.fixture
def vaccine(make_vaccine):
    return make_vaccine()
