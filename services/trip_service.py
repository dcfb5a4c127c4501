"""
services/trip_service.py

Tracked flight registration and housekeeping:
- create_trip: validation, plan limit, duplicate guard, first price observation
- list_trips / delete_trip: per-user CRUD behind /api/trips
- list_all_trips: admin listing across users with airline and date filters
- get_user_summary: profile numbers for /api/user/me
"""

import json
import logging
import math
import re
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from config import plan_for
from errors import (
    DuplicateTripError,
    PlanLimitError,
    TripNotFoundError,
    TripValidationError,
    UserNotFoundError,
)
from models import AppUser, Flight, PriceHistory
from schemas.trips import FlightCreate, UserSummary

logger = logging.getLogger(__name__)

AIRPORT_CODE_RE = re.compile(r"^[A-Z]{3}$")
MAX_PAGE_SIZE = 100

# Placeholder some email parsers emit when a field was not found
NOT_FOUND_MARKER = "not found"


# =====================================================================
# SECTION: HELPERS
# =====================================================================

def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _airport(value: str, label: str) -> str:
    code = (_clean(value) or "").upper()
    if not code or code.lower() == NOT_FOUND_MARKER:
        raise TripValidationError(f"Valid {label} airport is required.")
    if not AIRPORT_CODE_RE.match(code):
        raise TripValidationError(f"Invalid airport code format: {value!r}")
    return code


def _departure_time(value: Optional[str]) -> Optional[str]:
    raw = _clean(value)
    if raw is None:
        return None
    try:
        parsed = time.fromisoformat(raw)
    except ValueError:
        raise TripValidationError(f"Invalid departure time {value!r}, expected HH:MM")
    return parsed.strftime("%H:%M")


def _count_active_flights(db: Session, user_id: str) -> int:
    return (
        db.query(Flight)
        .filter(Flight.user_id == user_id, Flight.is_active == True)  # noqa: E712
        .count()
    )


def _itinerary_dates(payload: FlightCreate) -> List[str]:
    if payload.all_dates:
        return [d.isoformat() for d in payload.all_dates]
    return [d.isoformat() for d in (payload.departure_date, payload.return_date) if d]


def _return_date(payload: FlightCreate) -> Optional[date]:
    if payload.return_date:
        return payload.return_date
    if payload.all_dates and len(payload.all_dates) >= 2:
        return payload.all_dates[-1]
    return None


def _email_taken(db: Session, email: str) -> bool:
    return (
        db.query(AppUser.user_id)
        .filter(func.lower(AppUser.email) == email.lower())
        .first()
        is not None
    )


def _find_duplicate(
    db: Session,
    user_id: str,
    booking_hash: Optional[str],
    booking_reference: str,
    departure_airport: str,
    arrival_airport: str,
    departure_date: date,
) -> Optional[str]:
    """Returns the conflict message when the user already tracks this booking."""
    if booking_hash:
        existing = (
            db.query(Flight.flight_id)
            .filter(Flight.user_id == user_id, Flight.booking_hash == booking_hash)
            .first()
        )
        if existing:
            return "Booking already exists (hash match)"

    existing = (
        db.query(Flight.flight_id)
        .filter(
            Flight.user_id == user_id,
            Flight.booking_reference == booking_reference,
            Flight.departure_airport == departure_airport,
            Flight.arrival_airport == arrival_airport,
            Flight.departure_date == departure_date,
        )
        .first()
    )
    if existing:
        return "Booking already exists (details match)"
    return None


# =====================================================================
# SECTION: CREATE
# =====================================================================

def create_trip(db: Session, payload: FlightCreate, now: Optional[datetime] = None) -> Flight:
    now = now or datetime.utcnow()

    user_id = _clean(payload.user_id)
    if not user_id:
        raise TripValidationError("User ID is required.")

    booking_reference = _clean(payload.booking_reference)
    if not booking_reference or booking_reference.lower() == NOT_FOUND_MARKER:
        raise TripValidationError("Valid booking reference is required.")

    departure_airport = _airport(payload.departure_airport, "departure")
    arrival_airport = _airport(payload.arrival_airport, "arrival")
    departure_time = _departure_time(payload.departure_time)

    if payload.total_price is not None and payload.total_price <= 0:
        raise TripValidationError("Invalid total price, must be greater than zero.")

    return_date = _return_date(payload)
    if return_date and return_date < payload.departure_date:
        raise TripValidationError("Invalid return date, must not be before departure.")

    try:
        user = db.query(AppUser).filter(AppUser.user_id == user_id).first()
        if user is None:
            email = _clean(payload.email)
            if not email:
                raise TripValidationError("Email is required for a new user.")
            if _email_taken(db, email):
                raise TripValidationError("Email is already registered to another user.")
            user = AppUser(user_id=user_id, email=email.lower(), subscription_plan="free")
            db.add(user)
            try:
                db.flush()
            except IntegrityError as e:
                # Lost a race with another signup for the same user or email
                raise TripValidationError("Email is already registered to another user.") from e
            logger.info("[trips] new user %s created with default free plan", user_id)

        plan = plan_for(user.subscription_plan)
        active = _count_active_flights(db, user_id)
        if active >= plan["active_flight_limit"]:
            raise PlanLimitError(
                f"You have reached your limit of {plan['active_flight_limit']} active flights "
                f"for the {plan['plan']} plan. Please upgrade or delete an existing trip."
            )

        booking_hash = _clean(payload.booking_hash)
        conflict = _find_duplicate(
            db, user_id, booking_hash, booking_reference,
            departure_airport, arrival_airport, payload.departure_date,
        )
        if conflict:
            raise DuplicateTripError(conflict)

        price = payload.total_price
        airline = _clean(payload.airline)
        airline_code = (_clean(payload.airline_code) or "").upper() or None

        flight = Flight(
            user_id=user_id,
            booking_reference=booking_reference,
            booking_hash=booking_hash,
            airline=airline,
            airline_code=airline_code,
            flight_number=_clean(payload.flight_number),
            service_class=_clean(payload.service_class),
            departure_airport=departure_airport,
            arrival_airport=arrival_airport,
            departure_date=payload.departure_date,
            departure_time=departure_time,
            return_date=return_date,
            all_dates=json.dumps(_itinerary_dates(payload)),
            total_price=price,
            currency=(_clean(payload.currency) or "USD").upper(),
            original_price=price,
            last_checked_price=price,
            lowest_price_seen=price,
            is_active=True,
            check_frequency_hours=plan["check_frequency_hours"],
            next_check_at=now + timedelta(hours=plan["check_frequency_hours"]),
            booking_url=_clean(payload.booking_url),
            created_at=now,
            updated_at=now,
        )
        db.add(flight)
        db.flush()

        if price is not None:
            db.add(PriceHistory(
                flight_id=flight.flight_id,
                price=price,
                currency=flight.currency,
                source=airline or "manual",
                checked_at=now,
            ))

        user.total_flights = (user.total_flights or 0) + 1
        user.updated_at = now

        db.commit()
        db.refresh(flight)
    except IntegrityError as e:
        # unique_booking_per_user caught a concurrent insert the pre-check missed
        db.rollback()
        logger.warning("[trips] duplicate booking rejected by database user=%s: %s", user_id, e.orig)
        raise DuplicateTripError("Booking already exists (hash match)") from e
    except Exception:
        db.rollback()
        raise

    logger.info(
        "[trips] flight %s saved user=%s %s-%s %s price=%s",
        flight.flight_id, user_id, departure_airport, arrival_airport, payload.departure_date, price,
    )
    return flight


# =====================================================================
# SECTION: LIST / DELETE
# =====================================================================

def list_trips(db: Session, user_id: str, page: int = 1, limit: int = 20) -> Tuple[List[Flight], int, int]:
    """Returns (flights, total_flights, per_page) for one page, active trips first."""
    page = max(1, int(page))
    limit = max(1, min(int(limit), MAX_PAGE_SIZE))

    query = db.query(Flight).filter(Flight.user_id == user_id)
    total = query.count()
    flights = (
        query.order_by(
            Flight.is_active.desc(),
            Flight.departure_date.desc(),
            Flight.created_at.desc(),
        )
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return flights, total, limit


def list_all_trips(
    db: Session,
    page: int = 1,
    limit: int = 20,
    airline: Optional[str] = None,
    from_date: Optional[date] = None,
    to_date: Optional[date] = None,
) -> Tuple[List[Flight], int, int]:
    """Admin listing across every user, newest bookings first.

    airline matches case-insensitively anywhere in the name; from_date and
    to_date bound created_at and are both inclusive.
    """
    page = max(1, int(page))
    limit = max(1, min(int(limit), MAX_PAGE_SIZE))

    query = db.query(Flight)
    airline = _clean(airline)
    if airline:
        query = query.filter(Flight.airline.ilike(f"%{airline}%"))
    if from_date:
        query = query.filter(Flight.created_at >= datetime.combine(from_date, time.min))
    if to_date:
        query = query.filter(Flight.created_at < datetime.combine(to_date + timedelta(days=1), time.min))

    total = query.count()
    flights = (
        query.order_by(Flight.created_at.desc(), Flight.flight_id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return flights, total, limit


def total_pages(total: int, per_page: int) -> int:
    return int(math.ceil(total / per_page)) if per_page else 0


def delete_trip(db: Session, flight_id: int, user_id: str) -> None:
    try:
        flight = (
            db.query(Flight)
            .filter(Flight.flight_id == flight_id, Flight.user_id == user_id)
            .first()
        )
        if flight is None:
            raise TripNotFoundError("Flight not found or user not authorized to delete.")

        # SQLite does not enforce the cascade unless foreign keys are switched on
        db.query(PriceHistory).filter(PriceHistory.flight_id == flight_id).delete(synchronize_session=False)
        db.delete(flight)

        db.query(AppUser).filter(AppUser.user_id == user_id, AppUser.total_flights > 0).update(
            {AppUser.total_flights: AppUser.total_flights - 1},
            synchronize_session=False,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("[trips] flight %s deleted user=%s", flight_id, user_id)


# =====================================================================
# SECTION: USER SUMMARY
# =====================================================================

def get_user_summary(db: Session, user_id: str) -> UserSummary:
    user = db.query(AppUser).filter(AppUser.user_id == user_id).first()
    if user is None:
        raise UserNotFoundError("User not found.")

    plan = plan_for(user.subscription_plan)
    return UserSummary(
        user_id=user.user_id,
        email=user.email,
        subscription_plan=plan["plan"],
        lifetime_savings=user.lifetime_savings if user.lifetime_savings is not None else Decimal("0.00"),
        total_flights=user.total_flights or 0,
        active_flights=_count_active_flights(db, user_id),
        active_flight_limit=plan["active_flight_limit"],
        check_frequency_hours=plan["check_frequency_hours"],
        email_alerts_enabled=True if user.email_alerts_enabled is None else bool(user.email_alerts_enabled),
    )
