from datetime import date, datetime, time
from decimal import Decimal
from types import SimpleNamespace

import pytest
from pydantic import ValidationError

from schemas.tracking import FlightCheckResult, FlightCheckStatus, PriceCheckReport, TrackedFlight


def make_row(**overrides):
    flight = SimpleNamespace(
        flight_id=7,
        user_id="user-1",
        departure_airport="jfk",
        arrival_airport="LAX",
        departure_date=date(2030, 4, 10),
        return_date=None,
        departure_time="08:45",
        airline="Delta Air Lines",
        airline_code=" dl ",
        service_class=None,
        currency=None,
        original_price=Decimal("500.00"),
        last_alerted_price=None,
        last_checked_price=Decimal("500.00"),
        lowest_price_seen=Decimal("500.00"),
        check_frequency_hours=None,
    )
    for key, value in overrides.items():
        setattr(flight, key, value)
    user = SimpleNamespace(email="t@example.com", email_alerts_enabled=None)
    return flight, user


def test_snapshot_normalises_row():
    tracked = TrackedFlight.from_row(*make_row())

    assert tracked.departure_airport == "JFK"
    assert tracked.airline_code == "DL"
    assert tracked.departure_time == time(8, 45)
    assert tracked.currency == "USD"
    assert tracked.check_frequency_hours == 24
    assert tracked.email_alerts_enabled is True


def test_blank_departure_time_means_no_preference():
    assert TrackedFlight.from_row(*make_row(departure_time=" ")).departure_time is None


def test_return_date_falls_back_to_last_itinerary_date():
    flight, user = make_row(itinerary_dates=["2030-04-10", "2030-04-17"])

    assert TrackedFlight.from_row(flight, user).return_date == date(2030, 4, 17)


def test_stored_return_date_wins_over_itinerary():
    flight, user = make_row(
        return_date=date(2030, 4, 15),
        itinerary_dates=["2030-04-10", "2030-04-17"],
    )

    assert TrackedFlight.from_row(flight, user).return_date == date(2030, 4, 15)


def test_single_itinerary_date_stays_one_way():
    flight, user = make_row(itinerary_dates=["2030-04-10"])

    assert TrackedFlight.from_row(flight, user).return_date is None


@pytest.mark.parametrize(
    "overrides",
    [
        {"departure_airport": "JFK1"},
        {"departure_time": "25:00"},
        {"check_frequency_hours": -4},
        {"departure_date": None},
    ],
)
def test_malformed_rows_are_rejected(overrides):
    with pytest.raises(ValidationError):
        TrackedFlight.from_row(*make_row(**overrides))


def test_report_counts():
    report = PriceCheckReport(
        started_at=datetime(2030, 3, 1),
        results=[
            FlightCheckResult(flight_id=1, status=FlightCheckStatus.PRICE_DROPPED,
                              savings_this_drop=Decimal("51.00"), notified=True),
            FlightCheckResult(flight_id=2, status=FlightCheckStatus.PRICE_DROPPED,
                              savings_this_drop=Decimal("10.50"), notified=False),
            FlightCheckResult(flight_id=3, status=FlightCheckStatus.NOT_FOUND),
            FlightCheckResult(flight_id=4, status=FlightCheckStatus.LOOKUP_FAILED, error="500"),
        ],
    )

    assert report.flights_checked == 4
    assert report.count(FlightCheckStatus.PRICE_DROPPED) == 2
    assert report.alerts_sent == 1
    assert report.total_savings == Decimal("61.50")
    assert [r.flight_id for r in report.failures] == [4]
    assert report.summary()["not_found"] == 1
