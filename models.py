# =======================================
# SECTION: IMPORTS AND BASE
# =======================================

import json
from datetime import datetime

from sqlalchemy import (
    Column,
    Integer,
    String,
    Boolean,
    DateTime,
    Date,
    Numeric,
    ForeignKey,
    Text,
    UniqueConstraint,
)

from db import Base


# =======================================
# SECTION: USER MODELS
# =======================================

class AppUser(Base):
    __tablename__ = "users"

    user_id = Column(String(255), primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)

    # free | pro | max, see config.PLAN_DEFAULTS
    subscription_plan = Column(String(50), nullable=False, default="free")
    stripe_customer_id = Column(String(255), nullable=True, index=True)

    # Only ever incremented, by the price drop transaction
    lifetime_savings = Column(Numeric(12, 2), nullable=False, default=0)
    total_flights = Column(Integer, nullable=False, default=0)

    # Per user alerts switch
    email_alerts_enabled = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )


# =======================================
# SECTION: FLIGHT MODELS
# =======================================

class Flight(Base):
    __tablename__ = "flights"
    __table_args__ = (
        UniqueConstraint("user_id", "booking_hash", name="unique_booking_per_user"),
    )

    flight_id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(255), ForeignKey("users.user_id"), nullable=False, index=True)

    booking_reference = Column(String(50), nullable=False)
    booking_hash = Column(String(64), nullable=True, index=True)
    airline = Column(String(100), nullable=True)
    airline_code = Column(String(3), nullable=True)
    flight_number = Column(String(20), nullable=True)
    service_class = Column(String(50), nullable=True)

    departure_airport = Column(String(10), nullable=False)
    arrival_airport = Column(String(10), nullable=False)
    departure_date = Column(Date, nullable=False, index=True)
    departure_time = Column(String(5), nullable=True)  # "HH:MM", preferred time of day
    return_date = Column(Date, nullable=True)
    all_dates = Column(Text, nullable=True)  # JSON list of itinerary leg dates

    total_price = Column(Numeric(10, 2), nullable=True)
    currency = Column(String(10), nullable=False, default="USD")

    # Price state
    original_price = Column(Numeric(10, 2), nullable=True)
    last_checked_price = Column(Numeric(10, 2), nullable=True)
    last_alerted_price = Column(Numeric(10, 2), nullable=True)
    lowest_price_seen = Column(Numeric(10, 2), nullable=True)
    price_drop_amount = Column(Numeric(10, 2), nullable=True)
    price_alert_sent = Column(Boolean, nullable=False, default=False)

    # Scheduling state
    is_active = Column(Boolean, nullable=False, default=True)
    last_checked_at = Column(DateTime, nullable=True)
    check_frequency_hours = Column(Integer, nullable=True, default=24)
    next_check_at = Column(DateTime, nullable=True, index=True)

    booking_url = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    @property
    def itinerary_dates(self) -> list:
        if self.all_dates:
            try:
                dates = json.loads(self.all_dates)
                if isinstance(dates, list):
                    return dates
            except ValueError:
                pass
        dates = [d.isoformat() for d in (self.departure_date, self.return_date) if d]
        return dates

    @property
    def is_round_trip(self) -> bool:
        return len(self.itinerary_dates) >= 2


class PriceHistory(Base):
    __tablename__ = "price_history"

    history_id = Column(Integer, primary_key=True, autoincrement=True)
    flight_id = Column(
        Integer,
        ForeignKey("flights.flight_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    price = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(10), nullable=False, default="USD")
    source = Column(String(100), nullable=True)
    checked_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    notes = Column(Text, nullable=True)
