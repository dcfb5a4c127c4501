"""schemas/stats.py - Admin dashboard numbers and /health metrics."""

from datetime import date
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel


class UserStats(BaseModel):
    total_users: int
    new_users_week: int


class FlightStats(BaseModel):
    total_flights: int
    flights_today: int  # last 24 hours
    flights_week: int


class DailyActivity(BaseModel):
    day: date
    flight_count: int


class RouteCount(BaseModel):
    route: str  # "JFK→LAX"
    booking_count: int


class PricingStats(BaseModel):
    avg_price: Optional[Decimal] = None
    min_price: Optional[Decimal] = None
    max_price: Optional[Decimal] = None


class BackendStats(BaseModel):
    users: UserStats
    flights: FlightStats
    recent_activity: List[DailyActivity]
    popular_routes: List[RouteCount]
    pricing: PricingStats


class HealthMetrics(BaseModel):
    total_flights: int
    total_users: int
    recent_bookings_24h: int
    db_response_time_ms: int
