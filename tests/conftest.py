import os
from decimal import Decimal
from typing import Callable, Generator

import pytest
from circuitbreaker import CircuitBreakerMonitor
from fastapi.testclient import TestClient

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_roomlink.db")
os.environ.setdefault("RATE_LIMITING_ENABLED", "false")
os.environ.setdefault("LOG_DIR", "./test-logs")

from roomlink.config import reset_settings_cache  # noqa: E402

reset_settings_cache()

from roomlink import registry  # noqa: E402
from roomlink.database import Base, SessionLocal, engine  # noqa: E402
from roomlink.models import Hostel, Room  # noqa: E402
from roomlink.schemas import HostelCreate, RoomCreate  # noqa: E402
from services.bookings.app import app as bookings_app  # noqa: E402
from services.rooms.app import app as rooms_app  # noqa: E402
from services.rooms.app import price_cache  # noqa: E402


@pytest.fixture(autouse=True, scope="function")
def _create_test_database() -> Generator[None, None, None]:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    price_cache.clear()
    for breaker in CircuitBreakerMonitor.get_circuits():
        breaker.reset()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db_session() -> Generator:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def hostel(db_session) -> Hostel:
    return registry.create_hostel(db_session, HostelCreate(name="Harbour Hostel", city="Lisbon"))


@pytest.fixture()
def room_factory(db_session, hostel) -> Callable[..., Room]:
    counter = {"n": 0}

    def make_room(**overrides) -> Room:
        counter["n"] += 1
        fields = {
            "hostel_id": hostel.id,
            "room_number": f"R{counter['n']:03d}",
            "capacity": 4,
            "price_per_night": Decimal("100"),
            "weekly_discount_pct": Decimal("10"),
            "monthly_discount_pct": Decimal("20"),
        }
        fields.update(overrides)
        return registry.create_room(db_session, RoomCreate(**fields))

    return make_room


@pytest.fixture()
def room(room_factory) -> Room:
    return room_factory()


@pytest.fixture()
def bookings_client() -> Generator[TestClient, None, None]:
    with TestClient(bookings_app) as client:
        yield client


@pytest.fixture()
def rooms_client() -> Generator[TestClient, None, None]:
    with TestClient(rooms_app) as client:
        yield client
