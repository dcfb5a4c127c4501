"""routers/trips.py - Tracked flight CRUD: create, list, delete."""

from fastapi import APIRouter, HTTPException, Query

from db import SessionLocal
from errors import DuplicateTripError, PlanLimitError, TripNotFoundError, TripValidationError
from schemas.trips import (
    FlightCreate,
    FlightOut,
    Pagination,
    TripCreateResponse,
    TripDeletePayload,
    TripListResponse,
)
from services.trip_service import create_trip, delete_trip, list_trips, total_pages

router = APIRouter()


@router.post("/api/trips", response_model=TripCreateResponse, status_code=201)
def create_trip_handler(payload: FlightCreate):
    db = SessionLocal()
    try:
        try:
            flight = create_trip(db, payload)
        except TripValidationError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except PlanLimitError as e:
            raise HTTPException(status_code=403, detail=str(e))
        except DuplicateTripError as e:
            raise HTTPException(status_code=409, detail=str(e))

        return TripCreateResponse(
            message="Flight saved successfully!",
            flight=FlightOut.model_validate(flight),
        )
    finally:
        db.close()


@router.get("/api/trips/{user_id}", response_model=TripListResponse)
def list_trips_handler(
    user_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1),
):
    db = SessionLocal()
    try:
        flights, total, per_page = list_trips(db, user_id, page=page, limit=limit)
        pages = total_pages(total, per_page)
        return TripListResponse(
            message=f"Found {len(flights)} flights (page {page} of {pages})",
            flights=[FlightOut.model_validate(f) for f in flights],
            pagination=Pagination(
                current_page=page,
                total_pages=pages,
                total_flights=total,
                per_page=per_page,
            ),
        )
    finally:
        db.close()


@router.delete("/api/trips/{flight_id}")
def delete_trip_handler(flight_id: int, payload: TripDeletePayload):
    user_id = (payload.user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=400, detail="User ID is required in the request body.")

    db = SessionLocal()
    try:
        try:
            delete_trip(db, flight_id, user_id)
        except TripNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))
        return {"message": "Flight deleted successfully."}
    finally:
        db.close()
