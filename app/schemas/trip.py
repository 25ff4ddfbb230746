"""
Pydantic schemas for trip search and lookup
"""
from typing import Optional
from datetime import date
from pydantic import AliasChoices, Field

from app.schemas.booking import CamelModel


class TripSearchCriteria(CamelModel):
    """Schema for trip search"""
    origin: Optional[str] = None
    destination: Optional[str] = None
    travel_date: Optional[date] = None


class Trip(CamelModel):
    """Schema for a scheduled trip with its live seat counter"""
    trip_id: str = Field(validation_alias=AliasChoices("dailyTripId", "tripId", "trip_id", "id"))
    origin: Optional[str] = None
    destination: Optional[str] = None
    trip_date: Optional[date] = None
    departure_time: Optional[str] = None
    vehicle_plate_no: Optional[str] = None
    price: float = 0.0
    available_seats: int = 0
