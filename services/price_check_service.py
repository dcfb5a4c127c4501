"""
services/price_check_service.py

Scheduled price check:
- load_due_flights: active, not yet departed, next_check_at reached
- check_flight_price: lookup -> drop decision -> alert transaction -> email
- apply_price_drop: the all-or-nothing write set for one qualifying drop
- run_price_check_cycle: the cron entry point (called by run_price_check.py)

Each flight is processed on its own. A failure for one flight becomes a
failed FlightCheckResult in the report and the loop moves on; only a failure
to load the due set aborts the sweep.
"""

import logging
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Callable, List, Optional, Tuple

from pydantic import ValidationError
from sqlalchemy import or_
from sqlalchemy.orm import Session

from alerts_email import send_price_drop_email
from config import DEFAULT_CHECK_FREQUENCY_HOURS, user_allows_alerts
from db import SessionLocal
from errors import AlertTransactionError, InvalidPriceState, LookupTransportError, SweepFatalError
from models import AppUser, Flight, PriceHistory
from schemas.fares import FareLookupRequest
from schemas.tracking import FlightCheckResult, FlightCheckStatus, PriceCheckReport, TrackedFlight
from services.fare_lookup import FareLookup
from services.price_drop import DropDecision, evaluate_price_drop

logger = logging.getLogger(__name__)

PRICE_CHECK_SOURCE = "price_check"


# =====================================================================
# SECTION: DUE FLIGHTS
# =====================================================================

def _frequency_hours(value) -> int:
    try:
        hours = int(value or 0)
    except (TypeError, ValueError):
        hours = 0
    return hours if hours > 0 else DEFAULT_CHECK_FREQUENCY_HOURS


def load_due_flights(db: Session, now: datetime) -> Tuple[List[TrackedFlight], List[Tuple[int, int, str]]]:
    """
    Returns (snapshots, rejected).

    rejected holds (flight_id, check_frequency_hours, error) for rows that
    failed snapshot validation. They are reported and rescheduled, never checked.
    """
    rows = (
        db.query(Flight, AppUser)
        .join(AppUser, AppUser.user_id == Flight.user_id)
        .filter(Flight.is_active == True)  # noqa: E712
        .filter(Flight.departure_date > now.date())
        .filter(or_(Flight.next_check_at.is_(None), Flight.next_check_at <= now))
        .order_by(Flight.next_check_at, Flight.flight_id)
        .all()
    )

    snapshots: List[TrackedFlight] = []
    rejected: List[Tuple[int, int, str]] = []
    for flight, user in rows:
        try:
            snapshots.append(TrackedFlight.from_row(flight, user))
        except (ValidationError, ValueError) as e:
            logger.warning("[price_check] flight %s has invalid tracking data: %s", flight.flight_id, e)
            rejected.append((flight.flight_id, _frequency_hours(flight.check_frequency_hours), str(e)))

    return snapshots, rejected


def deactivate_past_flights(db: Session, today: date) -> int:
    """Stops tracking flights whose departure date has passed. Returns how many were switched off."""
    count = (
        db.query(Flight)
        .filter(Flight.is_active == True)  # noqa: E712
        .filter(Flight.departure_date < today)
        .update(
            {Flight.is_active: False, Flight.updated_at: datetime.utcnow()},
            synchronize_session=False,
        )
    )
    db.commit()
    if count:
        logger.info("[price_check] deactivated %d past flights (today=%s)", count, today)
    return count


# =====================================================================
# SECTION: WRITES
# =====================================================================

def _lowest(previous: Optional[Decimal], current: Decimal) -> Decimal:
    if previous is None or current < previous:
        return current
    return previous


def _update_flight_prices(db: Session, flight: TrackedFlight, values: dict) -> None:
    updated = (
        db.query(Flight)
        .filter(Flight.flight_id == flight.flight_id)
        .update(values, synchronize_session=False)
    )
    if updated != 1:
        raise LookupError(f"flight {flight.flight_id} no longer exists")


def _increment_lifetime_savings(db: Session, user_id: str, savings: Decimal) -> None:
    # Increment in SQL so a concurrent writer's savings are never overwritten
    updated = (
        db.query(AppUser)
        .filter(AppUser.user_id == user_id)
        .update(
            {AppUser.lifetime_savings: AppUser.lifetime_savings + savings},
            synchronize_session=False,
        )
    )
    if updated != 1:
        raise LookupError(f"user {user_id} no longer exists")


def _append_price_observation(
    db: Session,
    flight_id: int,
    price: Decimal,
    currency: str,
    checked_at: datetime,
    notes: Optional[str] = None,
) -> None:
    db.add(PriceHistory(
        flight_id=flight_id,
        price=price,
        currency=currency,
        source=PRICE_CHECK_SOURCE,
        checked_at=checked_at,
        notes=notes,
    ))
    db.flush()


def apply_price_drop(
    session_factory: Callable[[], Session],
    flight: TrackedFlight,
    decision: DropDecision,
    current_price: Decimal,
    currency: str,
    now: datetime,
) -> None:
    """
    Persists one qualifying drop: flight price state, owner's lifetime
    savings and a price_history row commit together or not at all.
    """
    try:
        with session_factory() as db, db.begin():
            _update_flight_prices(db, flight, {
                Flight.last_checked_price: current_price,
                Flight.last_alerted_price: current_price,
                Flight.last_checked_at: now,
                Flight.lowest_price_seen: _lowest(flight.lowest_price_seen, current_price),
                Flight.price_drop_amount: decision.savings_this_drop,
                Flight.price_alert_sent: True,
                Flight.updated_at: now,
            })
            _increment_lifetime_savings(db, flight.user_id, decision.savings_this_drop)
            _append_price_observation(
                db,
                flight.flight_id,
                current_price,
                currency,
                now,
                notes=f"drop of {decision.savings_this_drop} from {decision.baseline_price}",
            )
    except Exception as e:
        raise AlertTransactionError(flight.flight_id, e) from e


def refresh_checked(
    session_factory: Callable[[], Session],
    flight: TrackedFlight,
    now: datetime,
    current_price: Optional[Decimal] = None,
) -> None:
    """
    Plain check write. Without a price only last_checked_at moves.
    Never touches last_alerted_price.
    """
    values = {Flight.last_checked_at: now, Flight.updated_at: now}
    if current_price is not None:
        values[Flight.last_checked_price] = current_price
        values[Flight.lowest_price_seen] = _lowest(flight.lowest_price_seen, current_price)

    with session_factory() as db, db.begin():
        _update_flight_prices(db, flight, values)


def reschedule_flight(
    session_factory: Callable[[], Session],
    flight_id: int,
    frequency_hours: Optional[int],
    now: datetime,
) -> datetime:
    next_check_at = now + timedelta(hours=_frequency_hours(frequency_hours))
    with session_factory() as db, db.begin():
        db.query(Flight).filter(Flight.flight_id == flight_id).update(
            {Flight.next_check_at: next_check_at},
            synchronize_session=False,
        )
    return next_check_at


# =====================================================================
# SECTION: NOTIFICATION
# =====================================================================

def notify_price_drop(
    notifier: Callable[..., None],
    flight: TrackedFlight,
    current_price: Decimal,
    savings: Decimal,
    currency: str,
) -> bool:
    """
    Hands the drop to the email sender after the transaction committed.
    Send failures are logged only; the committed savings stand.
    """
    if not user_allows_alerts(flight):
        logger.info("[price_check] flight %s owner has email alerts off, not emailing", flight.flight_id)
        return False

    try:
        notifier(
            user_email=flight.user_email,
            flight_details={
                "departure_airport": flight.departure_airport,
                "arrival_airport": flight.arrival_airport,
                "airline": flight.airline or flight.airline_code,
                "departure_date": flight.departure_date.isoformat(),
            },
            new_price=current_price,
            savings_this_drop=savings,
            currency=currency,
        )
    except Exception as e:
        logger.error("[price_check] email for flight %s failed: %s", flight.flight_id, e)
        return False

    return True


# =====================================================================
# SECTION: PROCESS SINGLE FLIGHT
# =====================================================================

def build_lookup_request(flight: TrackedFlight) -> FareLookupRequest:
    # Only an IATA carrier code can filter offers; free-text airline names cannot
    airline = flight.airline_code
    if not airline and flight.airline and len(flight.airline.strip()) == 2:
        airline = flight.airline

    return FareLookupRequest(
        departure_airport=flight.departure_airport,
        arrival_airport=flight.arrival_airport,
        departure_date=flight.departure_date,
        return_date=flight.return_date,
        airline=airline,
        preferred_departure_time=flight.departure_time,
        travel_class=flight.service_class,
        currency=flight.currency,
    )


def check_flight_price(
    flight: TrackedFlight,
    fare_lookup: FareLookup,
    session_factory: Callable[[], Session],
    notifier: Callable[..., None],
    now: datetime,
) -> FlightCheckResult:
    fid = flight.flight_id

    try:
        quote = fare_lookup.lookup(build_lookup_request(flight))
    except LookupTransportError as e:
        logger.warning("[price_check] lookup failed flight=%s: %s", fid, e)
        return FlightCheckResult(flight_id=fid, status=FlightCheckStatus.LOOKUP_FAILED, error=str(e))
    except Exception as e:
        logger.exception("[price_check] unexpected lookup error flight=%s", fid)
        return FlightCheckResult(flight_id=fid, status=FlightCheckStatus.FAILED, error=str(e))

    try:
        if quote is None:
            refresh_checked(session_factory, flight, now)
            logger.info("[price_check] flight=%s no matching offer", fid)
            return FlightCheckResult(flight_id=fid, status=FlightCheckStatus.NOT_FOUND)

        current_price = quote.current_price
        currency = quote.currency or flight.currency

        try:
            decision = evaluate_price_drop(
                flight.original_price,
                flight.last_alerted_price,
                current_price,
            )
        except InvalidPriceState as e:
            refresh_checked(session_factory, flight, now)
            logger.warning("[price_check] flight=%s skipped: %s", fid, e)
            return FlightCheckResult(
                flight_id=fid,
                status=FlightCheckStatus.INVALID_PRICE_STATE,
                current_price=current_price,
                currency=currency,
                error=str(e),
            )

        if not decision.should_alert:
            refresh_checked(session_factory, flight, now, current_price=current_price)
            logger.info(
                "[price_check] flight=%s stable price=%s baseline=%s",
                fid, current_price, decision.baseline_price,
            )
            return FlightCheckResult(
                flight_id=fid,
                status=FlightCheckStatus.PRICE_STABLE,
                current_price=current_price,
                currency=currency,
            )

        try:
            apply_price_drop(session_factory, flight, decision, current_price, currency, now)
        except AlertTransactionError as e:
            logger.error("[price_check] %s", e)
            return FlightCheckResult(
                flight_id=fid,
                status=FlightCheckStatus.ALERT_FAILED,
                current_price=current_price,
                currency=currency,
                error=str(e),
            )

        logger.info(
            "[price_check] flight=%s DROP price=%s baseline=%s savings=%s",
            fid, current_price, decision.baseline_price, decision.savings_this_drop,
        )
        notified = notify_price_drop(notifier, flight, current_price, decision.savings_this_drop, currency)

        return FlightCheckResult(
            flight_id=fid,
            status=FlightCheckStatus.PRICE_DROPPED,
            current_price=current_price,
            currency=currency,
            savings_this_drop=decision.savings_this_drop,
            notified=notified,
        )

    except Exception as e:
        logger.exception("[price_check] error processing flight=%s", fid)
        return FlightCheckResult(flight_id=fid, status=FlightCheckStatus.FAILED, error=str(e))


def _reschedule_result(
    session_factory: Callable[[], Session],
    result: FlightCheckResult,
    frequency_hours: Optional[int],
    now: datetime,
) -> FlightCheckResult:
    try:
        reschedule_flight(session_factory, result.flight_id, frequency_hours, now)
        result.rescheduled = True
    except Exception as e:
        logger.error("[price_check] reschedule failed flight=%s: %s", result.flight_id, e)
    return result


# =====================================================================
# SECTION: PRICE CHECK CYCLE (CRON ENTRY POINT)
# =====================================================================

_default_fare_lookup: Optional[FareLookup] = None


def default_fare_lookup() -> FareLookup:
    """Process-wide FareLookup, so the cached Amadeus token outlives a single sweep."""
    global _default_fare_lookup
    if _default_fare_lookup is None:
        _default_fare_lookup = FareLookup()
    return _default_fare_lookup


def run_price_check_cycle(
    fare_lookup: Optional[FareLookup] = None,
    session_factory: Callable[[], Session] = SessionLocal,
    notifier: Callable[..., None] = send_price_drop_email,
    now: Optional[datetime] = None,
) -> PriceCheckReport:
    now = now or datetime.utcnow()
    report = PriceCheckReport(started_at=now)

    try:
        with session_factory() as db:
            flights, rejected = load_due_flights(db, now)
    except Exception as e:
        logger.exception("[price_check] could not load due flights")
        raise SweepFatalError(f"could not load due flights: {e}") from e

    logger.info("[price_check] %d flights due, %d rejected", len(flights), len(rejected))

    for flight_id, frequency_hours, error in rejected:
        result = FlightCheckResult(flight_id=flight_id, status=FlightCheckStatus.INVALID, error=error)
        report.results.append(_reschedule_result(session_factory, result, frequency_hours, now))

    if flights:
        fare_lookup = fare_lookup or default_fare_lookup()

    # Sequential on purpose: one Amadeus call at a time
    for flight in flights:
        result = check_flight_price(flight, fare_lookup, session_factory, notifier, now)
        report.results.append(_reschedule_result(session_factory, result, flight.check_frequency_hours, now))

    report.finished_at = datetime.utcnow()
    logger.info("[price_check] cycle done %s", report.summary())
    return report
