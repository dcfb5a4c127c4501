"""schemas/tracking.py - Snapshots and per-run results for the scheduled price check."""

from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from config import DEFAULT_CHECK_FREQUENCY_HOURS


class TrackedFlight(BaseModel):
    """
    Validated view of one due flight and its owner.

    Built from the ORM row at the start of a sweep so the rest of the
    pipeline never touches loosely typed database payloads.
    """

    flight_id: int
    user_id: str
    user_email: str
    email_alerts_enabled: bool = True

    departure_airport: str = Field(pattern=r"^[A-Z]{3}$")
    arrival_airport: str = Field(pattern=r"^[A-Z]{3}$")
    departure_date: date
    return_date: Optional[date] = None
    departure_time: Optional[time] = None
    airline: Optional[str] = None
    airline_code: Optional[str] = None
    service_class: Optional[str] = None
    currency: str = "USD"

    # original_price stays optional here; the drop engine reports it as InvalidPriceState
    original_price: Optional[Decimal] = None
    last_alerted_price: Optional[Decimal] = None
    last_checked_price: Optional[Decimal] = None
    lowest_price_seen: Optional[Decimal] = None

    check_frequency_hours: int = DEFAULT_CHECK_FREQUENCY_HOURS

    @field_validator("departure_airport", "arrival_airport", mode="before")
    @classmethod
    def _upper_airport(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @field_validator("airline_code", mode="before")
    @classmethod
    def _blank_airline_code(cls, v):
        if isinstance(v, str):
            v = v.strip().upper()
            return v or None
        return v

    @field_validator("departure_time", mode="before")
    @classmethod
    def _parse_departure_time(cls, v):
        # Stored as "HH:MM" text; blank means no preference
        if isinstance(v, str):
            v = v.strip()
            if not v:
                return None
            return time.fromisoformat(v)
        return v

    @field_validator("check_frequency_hours", mode="before")
    @classmethod
    def _default_frequency(cls, v):
        if v is None or v == 0:
            return DEFAULT_CHECK_FREQUENCY_HOURS
        return v

    @field_validator("check_frequency_hours")
    @classmethod
    def _positive_frequency(cls, v: int) -> int:
        if v < 0:
            raise ValueError("check_frequency_hours must be positive")
        return v

    @classmethod
    def from_row(cls, flight, user) -> "TrackedFlight":
        # Trips saved with only all_dates still price as round trips; the
        # last itinerary date is the return leg
        return_date = flight.return_date
        if return_date is None:
            dates = getattr(flight, "itinerary_dates", None) or []
            if len(dates) >= 2:
                return_date = dates[-1]

        return cls.model_validate({
            "flight_id": flight.flight_id,
            "user_id": flight.user_id,
            "user_email": user.email,
            "email_alerts_enabled": True if user.email_alerts_enabled is None else user.email_alerts_enabled,
            "departure_airport": flight.departure_airport,
            "arrival_airport": flight.arrival_airport,
            "departure_date": flight.departure_date,
            "return_date": return_date,
            "departure_time": flight.departure_time,
            "airline": flight.airline,
            "airline_code": flight.airline_code,
            "service_class": flight.service_class,
            "currency": flight.currency or "USD",
            "original_price": flight.original_price,
            "last_alerted_price": flight.last_alerted_price,
            "last_checked_price": flight.last_checked_price,
            "lowest_price_seen": flight.lowest_price_seen,
            "check_frequency_hours": flight.check_frequency_hours,
        })


class FlightCheckStatus(str, Enum):
    NOT_FOUND = "not_found"
    PRICE_STABLE = "price_stable"
    PRICE_DROPPED = "price_dropped"
    LOOKUP_FAILED = "lookup_failed"
    INVALID_PRICE_STATE = "invalid_price_state"
    INVALID = "invalid"
    ALERT_FAILED = "alert_failed"
    FAILED = "failed"


FAILED_STATUSES = {
    FlightCheckStatus.LOOKUP_FAILED,
    FlightCheckStatus.INVALID_PRICE_STATE,
    FlightCheckStatus.INVALID,
    FlightCheckStatus.ALERT_FAILED,
    FlightCheckStatus.FAILED,
}


class FlightCheckResult(BaseModel):
    flight_id: Optional[int] = None
    status: FlightCheckStatus
    current_price: Optional[Decimal] = None
    currency: Optional[str] = None
    savings_this_drop: Optional[Decimal] = None
    notified: bool = False
    rescheduled: bool = False
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status not in FAILED_STATUSES


class PriceCheckReport(BaseModel):
    started_at: datetime
    finished_at: Optional[datetime] = None
    results: List[FlightCheckResult] = Field(default_factory=list)

    def count(self, status: FlightCheckStatus) -> int:
        return sum(1 for r in self.results if r.status == status)

    @property
    def flights_checked(self) -> int:
        return len(self.results)

    @property
    def failures(self) -> List[FlightCheckResult]:
        return [r for r in self.results if not r.ok]

    @property
    def alerts_sent(self) -> int:
        return sum(1 for r in self.results if r.notified)

    @property
    def total_savings(self) -> Decimal:
        return sum(
            (r.savings_this_drop for r in self.results
             if r.status == FlightCheckStatus.PRICE_DROPPED and r.savings_this_drop is not None),
            Decimal("0.00"),
        )

    def summary(self) -> dict:
        return {
            "flights_checked": self.flights_checked,
            "price_dropped": self.count(FlightCheckStatus.PRICE_DROPPED),
            "price_stable": self.count(FlightCheckStatus.PRICE_STABLE),
            "not_found": self.count(FlightCheckStatus.NOT_FOUND),
            "failed": len(self.failures),
            "alerts_sent": self.alerts_sent,
            "total_savings": str(self.total_savings),
        }
