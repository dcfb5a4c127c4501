import json
from datetime import timedelta
from decimal import Decimal
from unittest.mock import Mock

import pytest

import services.price_check_service as price_check_service
from errors import LookupTransportError, NotificationError, SweepFatalError
from models import AppUser, Flight, PriceHistory
from schemas.fares import FareQuote
from schemas.tracking import FlightCheckStatus
from services.price_check_service import (
    deactivate_past_flights,
    load_due_flights,
    run_price_check_cycle,
)


class FakeLookup:
    """Returns queued quotes (or raises queued errors) in call order."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.requests = []

    def lookup(self, request):
        self.requests.append(request)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def quote(price, now):
    return FareQuote(current_price=Decimal(price), currency="USD", checked_at=now)


def load_flight(session_factory, flight_id):
    with session_factory() as db:
        return db.query(Flight).filter(Flight.flight_id == flight_id).one()


def load_user(session_factory, user_id="user-1"):
    with session_factory() as db:
        return db.query(AppUser).filter(AppUser.user_id == user_id).one()


def count_history(session_factory, flight_id):
    with session_factory() as db:
        return db.query(PriceHistory).filter(PriceHistory.flight_id == flight_id).count()


# ---- due flights ----

def test_only_due_active_future_flights_are_loaded(session_factory, make_user, make_flight, now):
    make_user()
    due = make_flight()
    never_checked = make_flight(booking_reference="NEW001", next_check_at=None)
    make_flight(booking_reference="OFF001", is_active=False)
    make_flight(booking_reference="PAST01", departure_date=now.date())
    make_flight(booking_reference="LATER1", next_check_at=now + timedelta(hours=2))

    with session_factory() as db:
        flights, rejected = load_due_flights(db, now)

    assert sorted(f.flight_id for f in flights) == sorted([due, never_checked])
    assert rejected == []
    assert flights[0].user_email == "user-1@example.com"


def test_invalid_rows_are_rejected_not_loaded(session_factory, make_user, make_flight, now):
    make_user()
    bad = make_flight(departure_time="noon")

    with session_factory() as db:
        flights, rejected = load_due_flights(db, now)

    assert flights == []
    assert [r[0] for r in rejected] == [bad]


# ---- single flight outcomes ----

def test_qualifying_drop_commits_and_notifies(session_factory, make_user, make_flight, now):
    make_user()
    flight_id = make_flight()
    notifier = Mock()

    report = run_price_check_cycle(
        fare_lookup=FakeLookup(quote("449.00", now)),
        session_factory=session_factory,
        notifier=notifier,
        now=now,
    )

    result = report.results[0]
    assert result.status == FlightCheckStatus.PRICE_DROPPED
    assert result.savings_this_drop == Decimal("51.00")
    assert result.notified is True
    assert result.rescheduled is True

    flight = load_flight(session_factory, flight_id)
    assert flight.last_alerted_price == Decimal("449.00")
    assert flight.last_checked_price == Decimal("449.00")
    assert flight.lowest_price_seen == Decimal("449.00")
    assert flight.price_alert_sent is True
    assert flight.last_checked_at == now
    assert flight.next_check_at == now + timedelta(hours=24)

    assert load_user(session_factory).lifetime_savings == Decimal("51.00")
    assert count_history(session_factory, flight_id) == 1

    _, kwargs = notifier.call_args
    assert kwargs["user_email"] == "user-1@example.com"
    assert kwargs["flight_details"] == {
        "departure_airport": "JFK",
        "arrival_airport": "LAX",
        "airline": "American Airlines",
        "departure_date": (now + timedelta(days=30)).date().isoformat(),
    }
    assert kwargs["new_price"] == Decimal("449.00")
    assert kwargs["savings_this_drop"] == Decimal("51.00")
    assert report.total_savings == Decimal("51.00")
    assert report.alerts_sent == 1


def test_stable_price_only_refreshes_check_fields(session_factory, make_user, make_flight, now):
    make_user()
    flight_id = make_flight()
    notifier = Mock()

    report = run_price_check_cycle(
        fare_lookup=FakeLookup(quote("451.00", now)),
        session_factory=session_factory,
        notifier=notifier,
        now=now,
    )

    assert report.results[0].status == FlightCheckStatus.PRICE_STABLE
    flight = load_flight(session_factory, flight_id)
    assert flight.last_checked_price == Decimal("451.00")
    assert flight.lowest_price_seen == Decimal("451.00")
    assert flight.last_alerted_price is None
    assert flight.last_checked_at == now
    assert load_user(session_factory).lifetime_savings == Decimal("0")
    assert count_history(session_factory, flight_id) == 0
    notifier.assert_not_called()


def test_not_found_keeps_prices_and_refreshes_checked_at(session_factory, make_user, make_flight, now):
    make_user()
    flight_id = make_flight(last_checked_price=Decimal("480.00"))

    report = run_price_check_cycle(
        fare_lookup=FakeLookup(None),
        session_factory=session_factory,
        notifier=Mock(),
        now=now,
    )

    assert report.results[0].status == FlightCheckStatus.NOT_FOUND
    flight = load_flight(session_factory, flight_id)
    assert flight.last_checked_price == Decimal("480.00")
    assert flight.last_checked_at == now
    assert flight.next_check_at == now + timedelta(hours=24)


def test_missing_original_price_is_reported_and_rescheduled(session_factory, make_user, make_flight, now):
    make_user()
    flight_id = make_flight(original_price=None)

    report = run_price_check_cycle(
        fare_lookup=FakeLookup(quote("100.00", now)),
        session_factory=session_factory,
        notifier=Mock(),
        now=now,
    )

    result = report.results[0]
    assert result.status == FlightCheckStatus.INVALID_PRICE_STATE
    assert result.rescheduled is True
    flight = load_flight(session_factory, flight_id)
    assert flight.last_checked_at == now
    assert flight.last_alerted_price is None


def test_second_drop_uses_last_alerted_baseline(session_factory, make_user, make_flight, now):
    make_user(lifetime_savings=Decimal("51.00"))
    flight_id = make_flight(last_alerted_price=Decimal("449.00"), lowest_price_seen=Decimal("449.00"))

    first = run_price_check_cycle(
        fare_lookup=FakeLookup(quote("405.00", now)),
        session_factory=session_factory,
        notifier=Mock(),
        now=now,
    )
    assert first.results[0].status == FlightCheckStatus.PRICE_STABLE

    later = now + timedelta(days=1)
    second = run_price_check_cycle(
        fare_lookup=FakeLookup(quote("400.00", later)),
        session_factory=session_factory,
        notifier=Mock(),
        now=later,
    )

    assert second.results[0].status == FlightCheckStatus.PRICE_DROPPED
    assert second.results[0].savings_this_drop == Decimal("49.00")
    assert load_flight(session_factory, flight_id).last_alerted_price == Decimal("400.00")
    assert load_user(session_factory).lifetime_savings == Decimal("100.00")


def test_failed_savings_increment_rolls_back_flight_update(
    session_factory, make_user, make_flight, now, monkeypatch
):
    make_user()
    flight_id = make_flight()
    notifier = Mock()

    def broken_increment(db, user_id, savings):
        raise RuntimeError("users table locked")

    monkeypatch.setattr(price_check_service, "_increment_lifetime_savings", broken_increment)

    report = run_price_check_cycle(
        fare_lookup=FakeLookup(quote("449.00", now)),
        session_factory=session_factory,
        notifier=notifier,
        now=now,
    )

    result = report.results[0]
    assert result.status == FlightCheckStatus.ALERT_FAILED
    assert f"alert processing failed for flight {flight_id}" in result.error
    assert result.rescheduled is True

    flight = load_flight(session_factory, flight_id)
    assert flight.last_alerted_price is None
    assert flight.last_checked_price == Decimal("500.00")
    assert flight.price_alert_sent is False
    assert count_history(session_factory, flight_id) == 0
    assert load_user(session_factory).lifetime_savings == Decimal("0")
    notifier.assert_not_called()


def test_email_failure_keeps_committed_savings(session_factory, make_user, make_flight, now):
    make_user()
    flight_id = make_flight()
    notifier = Mock(side_effect=NotificationError("smtp down"))

    report = run_price_check_cycle(
        fare_lookup=FakeLookup(quote("449.00", now)),
        session_factory=session_factory,
        notifier=notifier,
        now=now,
    )

    result = report.results[0]
    assert result.status == FlightCheckStatus.PRICE_DROPPED
    assert result.notified is False
    assert load_flight(session_factory, flight_id).last_alerted_price == Decimal("449.00")
    assert load_user(session_factory).lifetime_savings == Decimal("51.00")


def test_users_with_alerts_off_are_not_emailed(session_factory, make_user, make_flight, now):
    make_user(email_alerts_enabled=False)
    make_flight()
    notifier = Mock()

    report = run_price_check_cycle(
        fare_lookup=FakeLookup(quote("449.00", now)),
        session_factory=session_factory,
        notifier=notifier,
        now=now,
    )

    assert report.results[0].status == FlightCheckStatus.PRICE_DROPPED
    assert report.results[0].notified is False
    notifier.assert_not_called()


# ---- sweep ----

def test_one_failing_flight_does_not_stop_the_sweep(session_factory, make_user, make_flight, now):
    make_user()
    first = make_flight(booking_reference="AAA111", next_check_at=now - timedelta(hours=3))
    second = make_flight(booking_reference="BBB222", next_check_at=now - timedelta(hours=2))
    third = make_flight(booking_reference="CCC333", next_check_at=now - timedelta(hours=1))

    report = run_price_check_cycle(
        fare_lookup=FakeLookup(
            LookupTransportError("Amadeus flight search failed status=500", status_code=500),
            KeyError("unexpected"),
            quote("449.00", now),
        ),
        session_factory=session_factory,
        notifier=Mock(),
        now=now,
    )

    statuses = {r.flight_id: r.status for r in report.results}
    assert statuses == {
        first: FlightCheckStatus.LOOKUP_FAILED,
        second: FlightCheckStatus.FAILED,
        third: FlightCheckStatus.PRICE_DROPPED,
    }
    assert all(r.rescheduled for r in report.results)
    assert len(report.failures) == 2
    assert load_flight(session_factory, first).next_check_at == now + timedelta(hours=24)
    assert report.summary()["failed"] == 2


def test_rejected_rows_are_reported_and_rescheduled(session_factory, make_user, make_flight, now):
    make_user()
    bad = make_flight(departure_time="noon", check_frequency_hours=72)
    lookup = FakeLookup()

    report = run_price_check_cycle(fare_lookup=lookup, session_factory=session_factory, notifier=Mock(), now=now)

    assert report.results[0].flight_id == bad
    assert report.results[0].status == FlightCheckStatus.INVALID
    assert lookup.requests == []
    assert load_flight(session_factory, bad).next_check_at == now + timedelta(hours=72)


def test_zero_frequency_defaults_to_a_day(session_factory, make_user, make_flight, now):
    make_user()
    flight_id = make_flight(check_frequency_hours=0)

    run_price_check_cycle(
        fare_lookup=FakeLookup(None),
        session_factory=session_factory,
        notifier=Mock(),
        now=now,
    )

    assert load_flight(session_factory, flight_id).next_check_at == now + timedelta(hours=24)


def test_lookup_request_carries_flight_preferences(session_factory, make_user, make_flight, now):
    make_user()
    make_flight(airline_code="dl", departure_time="12:30", service_class="Business")
    lookup = FakeLookup(None)

    run_price_check_cycle(fare_lookup=lookup, session_factory=session_factory, notifier=Mock(), now=now)

    request = lookup.requests[0]
    assert request.airline == "DL"
    assert request.preferred_departure_time.hour == 12
    assert request.preferred_departure_time.minute == 30
    assert request.travel_class == "Business"


def test_all_dates_round_trip_is_priced_with_return_leg(session_factory, make_user, make_flight, now):
    outbound = (now + timedelta(days=30)).date()
    inbound = outbound + timedelta(days=7)
    make_user()
    make_flight(
        departure_date=outbound,
        return_date=None,
        all_dates=json.dumps([outbound.isoformat(), inbound.isoformat()]),
    )
    lookup = FakeLookup(None)

    run_price_check_cycle(fare_lookup=lookup, session_factory=session_factory, notifier=Mock(), now=now)

    assert lookup.requests[0].return_date == inbound


def test_default_lookup_is_reused_across_sweeps(
    session_factory, make_user, make_flight, now, monkeypatch
):
    make_user()
    make_flight()
    factory = Mock(return_value=FakeLookup(None, None))
    monkeypatch.setattr(price_check_service, "FareLookup", factory)
    monkeypatch.setattr(price_check_service, "_default_fare_lookup", None)

    run_price_check_cycle(session_factory=session_factory, notifier=Mock(), now=now)
    run_price_check_cycle(session_factory=session_factory, notifier=Mock(), now=now + timedelta(hours=25))

    assert factory.call_count == 1
    assert len(factory.return_value.requests) == 2


def test_due_query_failure_is_fatal(now):
    broken_factory = Mock(side_effect=RuntimeError("connection refused"))

    with pytest.raises(SweepFatalError):
        run_price_check_cycle(fare_lookup=FakeLookup(), session_factory=broken_factory, now=now)


def test_empty_sweep_reports_nothing(session_factory, now):
    report = run_price_check_cycle(fare_lookup=FakeLookup(), session_factory=session_factory, now=now)

    assert report.results == []
    assert report.finished_at is not None


# ---- cleanup ----

def test_past_flights_are_deactivated(session_factory, make_user, make_flight, now):
    make_user()
    past = make_flight(booking_reference="OLD001", departure_date=(now - timedelta(days=1)).date())
    upcoming = make_flight(booking_reference="NEW001")

    with session_factory() as db:
        count = deactivate_past_flights(db, now.date())

    assert count == 1
    assert load_flight(session_factory, past).is_active is False
    assert load_flight(session_factory, upcoming).is_active is True
