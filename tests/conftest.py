import os

# db.py refuses to import without a DATABASE_URL
os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from db import Base
from models import AppUser, Flight


@pytest.fixture
def engine(tmp_path):
    db_file = tmp_path / "fareaware.db"
    eng = create_engine(f"sqlite:///{db_file}", connect_args={"check_same_thread": False}, future=True)
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def now():
    return datetime(2030, 3, 1, 9, 0, 0)


@pytest.fixture
def make_user(session_factory):
    def _make(user_id="user-1", email=None, **fields):
        with session_factory() as db:
            user = AppUser(
                user_id=user_id,
                email=email or f"{user_id}@example.com",
                subscription_plan=fields.pop("subscription_plan", "free"),
                lifetime_savings=fields.pop("lifetime_savings", Decimal("0")),
                **fields,
            )
            db.add(user)
            db.commit()
        return user_id

    return _make


@pytest.fixture
def make_flight(session_factory, now):
    def _make(user_id="user-1", **fields):
        values = {
            "booking_reference": "ABC123",
            "airline": "American Airlines",
            "departure_airport": "JFK",
            "arrival_airport": "LAX",
            "departure_date": (now + timedelta(days=30)).date(),
            "currency": "USD",
            "total_price": Decimal("500.00"),
            "original_price": Decimal("500.00"),
            "last_checked_price": Decimal("500.00"),
            "lowest_price_seen": Decimal("500.00"),
            "is_active": True,
            "check_frequency_hours": 24,
            "next_check_at": now - timedelta(hours=1),
        }
        values.update(fields)
        with session_factory() as db:
            flight = Flight(user_id=user_id, **values)
            db.add(flight)
            db.commit()
            return flight.flight_id

    return _make
