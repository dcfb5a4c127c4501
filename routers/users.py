"""routers/users.py - User profile endpoint."""

from fastapi import APIRouter, HTTPException

from db import SessionLocal
from errors import UserNotFoundError
from schemas.trips import UserSummary
from services.trip_service import get_user_summary

router = APIRouter()


@router.get("/api/user/me/{user_id}", response_model=UserSummary)
def get_me(user_id: str):
    db = SessionLocal()
    try:
        return get_user_summary(db, user_id)
    except UserNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    finally:
        db.close()
