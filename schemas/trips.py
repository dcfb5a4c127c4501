"""schemas/trips.py - Pydantic models for tracked flight CRUD and the user profile."""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class FlightCreate(BaseModel):
    user_id: str
    # Only needed the first time a user registers a trip
    email: Optional[str] = None

    booking_reference: str
    booking_hash: Optional[str] = None
    airline: Optional[str] = None
    airline_code: Optional[str] = None
    flight_number: Optional[str] = None
    service_class: Optional[str] = None

    departure_airport: str
    arrival_airport: str
    departure_date: date
    departure_time: Optional[str] = None  # "HH:MM"
    return_date: Optional[date] = None
    all_dates: Optional[List[date]] = None

    total_price: Optional[Decimal] = None
    currency: Optional[str] = "USD"
    booking_url: Optional[str] = None


class FlightOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    flight_id: int
    booking_reference: str
    airline: Optional[str] = None
    airline_code: Optional[str] = None
    flight_number: Optional[str] = None
    service_class: Optional[str] = None

    departure_airport: str
    arrival_airport: str
    departure_date: date
    departure_time: Optional[str] = None
    return_date: Optional[date] = None
    is_round_trip: bool = False

    currency: str
    total_price: Optional[Decimal] = None
    original_price: Optional[Decimal] = None
    last_checked_price: Optional[Decimal] = None
    last_alerted_price: Optional[Decimal] = None
    lowest_price_seen: Optional[Decimal] = None

    is_active: bool
    last_checked_at: Optional[datetime] = None
    next_check_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class TripCreateResponse(BaseModel):
    message: str
    flight: FlightOut


class Pagination(BaseModel):
    current_page: int
    total_pages: int
    total_flights: int
    per_page: int


class TripListResponse(BaseModel):
    message: str
    flights: List[FlightOut]
    pagination: Pagination


class TripDeletePayload(BaseModel):
    user_id: str


class UserSummary(BaseModel):
    user_id: str
    email: str
    subscription_plan: str
    lifetime_savings: Decimal
    total_flights: int
    active_flights: int
    active_flight_limit: int
    check_frequency_hours: int
    email_alerts_enabled: bool


class TrackedFlightOut(FlightOut):
    user_id: str


class TripFilters(BaseModel):
    airline: Optional[str] = None
    from_date: Optional[date] = None
    to_date: Optional[date] = None


class AllTripsResponse(BaseModel):
    message: str
    flights: List[TrackedFlightOut]
    pagination: Pagination
    filters: TripFilters
