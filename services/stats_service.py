"""
services/stats_service.py

Aggregate counts for the admin dashboard (/api/stats) and /health.
Windows are measured back from `now`: 24 hours, 7 days, 30 days.
"""

import time
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from models import AppUser, Flight
from schemas.stats import (
    BackendStats,
    DailyActivity,
    FlightStats,
    HealthMetrics,
    PricingStats,
    RouteCount,
    UserStats,
)
from services.price_drop import CENTS

POPULAR_ROUTE_LIMIT = 10


def _money(value) -> Optional[Decimal]:
    # SQLite hands back floats for AVG
    if value is None:
        return None
    return Decimal(str(value)).quantize(CENTS)


def _count_users(db: Session, since: Optional[datetime] = None) -> int:
    query = db.query(func.count(AppUser.user_id))
    if since is not None:
        query = query.filter(AppUser.created_at >= since)
    return query.scalar() or 0


def _count_flights(db: Session, since: Optional[datetime] = None) -> int:
    query = db.query(func.count(Flight.flight_id))
    if since is not None:
        query = query.filter(Flight.created_at >= since)
    return query.scalar() or 0


def collect_stats(db: Session, now: Optional[datetime] = None) -> BackendStats:
    now = now or datetime.utcnow()
    day_ago = now - timedelta(hours=24)
    week_ago = now - timedelta(days=7)
    month_ago = now - timedelta(days=30)

    created_day = func.date(Flight.created_at)
    activity = (
        db.query(created_day.label("day"), func.count(Flight.flight_id).label("flight_count"))
        .filter(Flight.created_at >= week_ago)
        .group_by(created_day)
        .order_by(created_day.desc())
        .all()
    )

    booking_count = func.count(Flight.flight_id).label("booking_count")
    routes = (
        db.query(Flight.departure_airport, Flight.arrival_airport, booking_count)
        .filter(Flight.created_at >= month_ago)
        .group_by(Flight.departure_airport, Flight.arrival_airport)
        .order_by(booking_count.desc(), Flight.departure_airport, Flight.arrival_airport)
        .limit(POPULAR_ROUTE_LIMIT)
        .all()
    )

    avg_price, min_price, max_price = (
        db.query(func.avg(Flight.total_price), func.min(Flight.total_price), func.max(Flight.total_price))
        .filter(Flight.created_at >= month_ago, Flight.total_price.isnot(None))
        .one()
    )

    return BackendStats(
        users=UserStats(
            total_users=_count_users(db),
            new_users_week=_count_users(db, since=week_ago),
        ),
        flights=FlightStats(
            total_flights=_count_flights(db),
            flights_today=_count_flights(db, since=day_ago),
            flights_week=_count_flights(db, since=week_ago),
        ),
        # SQLite returns date() as text, Postgres as a date; pydantic takes both
        recent_activity=[DailyActivity(day=row.day, flight_count=row.flight_count) for row in activity],
        popular_routes=[
            RouteCount(route=f"{dep}→{arr}", booking_count=count)
            for dep, arr, count in routes
        ],
        pricing=PricingStats(
            avg_price=_money(avg_price),
            min_price=_money(min_price),
            max_price=_money(max_price),
        ),
    )


def health_metrics(db: Session, now: Optional[datetime] = None) -> HealthMetrics:
    now = now or datetime.utcnow()
    started = time.perf_counter()

    total_flights = _count_flights(db)
    total_users = _count_users(db)
    recent = _count_flights(db, since=now - timedelta(hours=24))

    return HealthMetrics(
        total_flights=total_flights,
        total_users=total_users,
        recent_bookings_24h=recent,
        db_response_time_ms=int((time.perf_counter() - started) * 1000),
    )
