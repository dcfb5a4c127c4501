"""schemas/fares.py - Fare search request and result shapes used by the Amadeus provider."""

from datetime import date, datetime, time
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class FareLeg(BaseModel):
    carrier_code: str
    departing_at: datetime

    @field_validator("carrier_code")
    @classmethod
    def _upper_carrier(cls, v: str) -> str:
        return v.strip().upper()


class FareOffer(BaseModel):
    """One offer from a flight-offers search. Never persisted."""

    id: Optional[str] = None
    legs: List[FareLeg] = Field(min_length=1)
    total_price: Decimal
    currency: str

    @property
    def first_departure(self) -> datetime:
        return self.legs[0].departing_at

    def operated_only_by(self, carrier_code: str) -> bool:
        code = carrier_code.strip().upper()
        return all(leg.carrier_code == code for leg in self.legs)


class FareQuote(BaseModel):
    current_price: Decimal
    currency: str
    checked_at: datetime


class FareLookupRequest(BaseModel):
    departure_airport: str = Field(pattern=r"^[A-Z]{3}$")
    arrival_airport: str = Field(pattern=r"^[A-Z]{3}$")
    departure_date: date
    return_date: Optional[date] = None
    airline: Optional[str] = None
    preferred_departure_time: Optional[time] = None
    travel_class: Optional[str] = None
    currency: str = "USD"

    @field_validator("airline")
    @classmethod
    def _normalize_airline(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip().upper()
        return v or None
