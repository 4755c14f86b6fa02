import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("CRON_SECRET", "test-cron-secret")
os.environ.setdefault("SWEEPER_ENABLED", "false")
os.environ.setdefault("EMAIL_PROVIDER", "console")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from src.auth.schemas import Actor, UserCreate
from src.auth.service import UserService
from src.auth.utils import create_access_token
from src.database import Base, SessionLocal, engine
from src.events import event_bus
from src.models import Bus, Route, Schedule
from src.notifications.dispatcher import NotificationDispatcher
from src.notifications.providers import ConsoleEmailProvider
from src.notifications.service import NotificationService
from src.utils import utcnow

from fakes import FakeClock


@pytest.fixture(autouse=True)
def tables():
    import src.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    event_bus.clear()


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return FakeClock(datetime(2030, 1, 10, 8, 0, 0))


@pytest.fixture
def make_schedule(db):
    """Factory for a bookable trip; departure is relative to ``now``"""
    counter = {"n": 0}

    def _make(now=None, departure_in_hours=48, seats=10, price=150000, duration_hours=6, close_minutes_before=0):
        counter["n"] += 1
        n = counter["n"]
        now = now or utcnow()
        bus = Bus(plate_number=f"51B-{n:05d}", bus_type="Sleeper", total_seats=seats)
        route = Route(route_no=100 + n, origin="Ho Chi Minh City", destination="Da Lat", duration_minutes=duration_hours * 60)
        db.add_all([bus, route])
        db.flush()

        departure_at = now + timedelta(hours=departure_in_hours)
        schedule = Schedule(
            route_id=route.id,
            bus_id=bus.id,
            departure_city=route.origin,
            arrival_city=route.destination,
            departure_at=departure_at,
            arrival_at=departure_at + timedelta(hours=duration_hours),
            booking_closes_at=departure_at - timedelta(minutes=close_minutes_before),
            total_seats=seats,
            available_seats=seats,
            price_per_seat=Decimal(price),
            status="Scheduled"
        )
        db.add(schedule)
        db.commit()
        db.refresh(schedule)
        return schedule

    return _make


@pytest.fixture
def make_user(db):
    def _make(email="minh@example.com", name="Minh Nguyen", role="user"):
        return UserService.create_user(
            db, UserCreate(name=name, email=email, phone="0901234567", password="secret123"), role_name=role
        )

    return _make


@pytest.fixture
def customer(make_user):
    return make_user()


@pytest.fixture
def admin(make_user):
    return make_user(email="admin@example.com", name="Admin", role="admin")


@pytest.fixture
def customer_actor(customer):
    return Actor(user_id=customer.id)


@pytest.fixture
def auth_headers():
    def _headers(user):
        return {"Authorization": f"Bearer {create_access_token({'sub': str(user.id)})}"}

    return _headers


@pytest.fixture
def console_provider():
    return ConsoleEmailProvider()


@pytest.fixture
def dispatcher(console_provider):
    dispatcher = NotificationDispatcher(provider=console_provider, timeout=2)
    yield dispatcher
    dispatcher.shutdown()


@pytest.fixture
def notifier(dispatcher):
    return NotificationService(dispatcher, session_factory=SessionLocal)


@pytest.fixture
def passengers():
    def _passengers(count):
        return [
            {"name": f"Passenger {i}", "age": 30, "gender": "female", "phone": "0901234567"}
            for i in range(1, count + 1)
        ]

    return _passengers
