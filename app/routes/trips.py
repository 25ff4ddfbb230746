"""
Trip search endpoints (served by the transport API)
"""
from typing import List
from fastapi import APIRouter, Depends

from app.routes.dependencies import get_booking_workflow
from app.schemas.trip import Trip, TripSearchCriteria
from app.services.booking_workflow import BookingWorkflowService

router = APIRouter(
    prefix="/api/trips",
    tags=["trips"]
)


@router.post("/search", response_model=List[Trip])
async def search_trips(
    criteria: TripSearchCriteria,
    workflow: BookingWorkflowService = Depends(get_booking_workflow)
):
    """Search available trips by origin, destination and travel date"""
    return await workflow.search_trips(criteria)


@router.get("/{trip_id}", response_model=Trip)
async def get_trip(
    trip_id: str,
    workflow: BookingWorkflowService = Depends(get_booking_workflow)
):
    return await workflow.get_trip(trip_id)
