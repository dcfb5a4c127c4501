"""routers/admin.py - Health checks, admin reporting, past flight cleanup and price check trigger."""

import logging
from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Header, HTTPException, Query
from sqlalchemy import text

from config import ADMIN_API_TOKEN, price_checks_enabled
from db import SessionLocal
from errors import SweepFatalError
from schemas.stats import BackendStats
from schemas.trips import AllTripsResponse, Pagination, TrackedFlightOut, TripFilters
from services.price_check_service import deactivate_past_flights, run_price_check_cycle
from services.stats_service import collect_stats, health_metrics
from services.trip_service import MAX_PAGE_SIZE, list_all_trips, total_pages

logger = logging.getLogger(__name__)

router = APIRouter()


def _require_admin_token(x_admin_token: Optional[str]) -> None:
    received = (x_admin_token or "").strip()
    expected = (ADMIN_API_TOKEN or "").strip()

    if received.lower().startswith("bearer "):
        received = received[7:].strip()

    if expected == "":
        raise HTTPException(status_code=500, detail="Admin token not configured")

    if received != expected:
        raise HTTPException(status_code=401, detail="Invalid admin token")


# =====================================================================
# SECTION: HEALTH ROUTES
# =====================================================================

@router.get("/")
def home():
    return {"message": "FareAware backend is running"}


@router.get("/health")
def health():
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        metrics = health_metrics(db)
    except Exception as e:
        logger.error("[health] database check failed: %s", e)
        raise HTTPException(status_code=503, detail="Database unavailable")
    finally:
        db.close()
    return {
        "status": "ok",
        "database": "connected",
        "timestamp": datetime.utcnow().isoformat(),
        "metrics": metrics.model_dump(),
    }


# =====================================================================
# SECTION: ADMIN REPORTING
# =====================================================================

@router.get("/api/trips", response_model=AllTripsResponse)
def list_all_trips_handler(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=MAX_PAGE_SIZE),
    airline: Optional[str] = None,
    from_date: Optional[date] = None,
    to_date: Optional[date] = None,
    x_admin_token: Optional[str] = Header(None, alias="X-Admin-Token"),
):
    _require_admin_token(x_admin_token)

    db = SessionLocal()
    try:
        flights, total, per_page = list_all_trips(
            db, page=page, limit=limit, airline=airline, from_date=from_date, to_date=to_date,
        )
        pages = total_pages(total, per_page)
        return AllTripsResponse(
            message=f"Found {len(flights)} flights (page {page} of {pages})",
            flights=[TrackedFlightOut.model_validate(f) for f in flights],
            pagination=Pagination(
                current_page=page,
                total_pages=pages,
                total_flights=total,
                per_page=per_page,
            ),
            filters=TripFilters(airline=airline, from_date=from_date, to_date=to_date),
        )
    finally:
        db.close()


@router.get("/api/stats", response_model=BackendStats)
def stats(x_admin_token: Optional[str] = Header(None, alias="X-Admin-Token")):
    _require_admin_token(x_admin_token)

    db = SessionLocal()
    try:
        return collect_stats(db)
    finally:
        db.close()


# =====================================================================
# SECTION: ADMIN ACTIONS
# =====================================================================

@router.post("/admin/cleanup-flights")
def cleanup_flights(x_admin_token: Optional[str] = Header(None, alias="X-Admin-Token")):
    _require_admin_token(x_admin_token)

    db = SessionLocal()
    try:
        count = deactivate_past_flights(db, datetime.utcnow().date())
    finally:
        db.close()
    return {"message": f"Deactivated {count} past flights.", "deactivated": count}


def _price_check_job() -> None:
    try:
        run_price_check_cycle()
    except SweepFatalError as e:
        logger.error("[admin] triggered price check aborted: %s", e)


@router.post("/admin/run-price-check")
def trigger_price_check(
    background_tasks: BackgroundTasks,
    x_admin_token: Optional[str] = Header(None, alias="X-Admin-Token"),
):
    _require_admin_token(x_admin_token)

    if not price_checks_enabled():
        return {"status": "disabled", "detail": "PRICE_CHECKS_ENABLED is false"}

    background_tasks.add_task(_price_check_job)
    return {"status": "queued"}
