from __future__ import annotations

import os

os.environ["DATABASE_URL"] = "sqlite+pysqlite://"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["EMAIL_PROVIDER"] = "disabled"
os.environ["SMS_PROVIDER"] = "disabled"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.errors import EmailSendError, SMSSendError
from app.core.security import create_access_token
from app.db.base import Base, create_schema
from app.db.session import enable_sqlite_savepoints, get_db
from app.main import app
from app.models.enums import UserRole, VehicleStatus
from app.models.location import DealershipLocation
from app.models.user import User
from app.models.vehicle import Vehicle
from app.services.email import SendResult


class FakeEmailSender:
    """Records every send; addresses in ``fail_for`` raise like a provider error."""

    def __init__(self, fail_for: tuple[str, ...] = ()) -> None:
        self.fail_for = {address.lower() for address in fail_for}
        self.sent: list[dict] = []

    def __call__(self, *, to_address: str, subject: str, html: str, text: str | None = None) -> SendResult:
        if to_address.lower() in self.fail_for:
            raise EmailSendError(f"Mailbox unavailable: {to_address}")
        self.sent.append({"to": to_address, "subject": subject, "html": html, "text": text})
        return SendResult(provider="fake", message_id=f"msg-{len(self.sent)}")


class FakeSMSSender:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.sent: list[dict] = []

    def __call__(self, *, to_number: str, body: str) -> SendResult:
        if self.fail:
            raise SMSSendError("Twilio error: 500")
        self.sent.append({"to": to_number, "body": body})
        return SendResult(provider="fake-sms", message_id=f"SM{len(self.sent)}")


@pytest.fixture()
def engine():
    engine = enable_sqlite_savepoints(
        create_engine(
            "sqlite+pysqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    )
    create_schema(engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture()
def db(engine):
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(db: Session):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def email_sender() -> FakeEmailSender:
    return FakeEmailSender()


@pytest.fixture()
def sms_sender() -> FakeSMSSender:
    return FakeSMSSender()


@pytest.fixture()
def stores(db: Session) -> dict[str, DealershipLocation]:
    north = DealershipLocation(name="North Store", code="N01", email="north@example.com")
    south = DealershipLocation(name="South Store", code="S01", email="south@example.com")
    db.add_all([north, south])
    db.commit()
    return {"north": north, "south": south}


@pytest.fixture()
def make_user(db: Session):
    counter = {"n": 0}

    def _make(role: UserRole = UserRole.SALES, location: DealershipLocation | None = None, **kwargs) -> User:
        counter["n"] += 1
        kwargs.setdefault("email", f"user{counter['n']}@example.com")
        kwargs.setdefault("name", f"User {counter['n']}")
        user = User(role=role, location_id=location.id if location else None, active=True, **kwargs)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture()
def vehicle(db: Session, stores) -> Vehicle:
    car = Vehicle(
        vin="1HGCM82633A004352",
        year=2023,
        make="Honda",
        model="Accord",
        stock_number="STK-100",
        price=27500,
        mileage=12000,
        color="Blue",
        status=VehicleStatus.AVAILABLE,
        location_id=stores["north"].id,
        image_urls=["https://img.example.com/1.jpg"],
    )
    db.add(car)
    db.commit()
    db.refresh(car)
    return car


def auth_headers(user: User) -> dict[str, str]:
    token = create_access_token({"sub": str(user.id)})
    return {"Authorization": f"Bearer {token}"}
