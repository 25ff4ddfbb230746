"""
Booking endpoints
  POST   /api/bookings                        – submit the booking form
  GET    /api/bookings/{attempt_id}           – current attempt state
  POST   /api/bookings/{attempt_id}/refresh   – "check now" for a pending payment
  POST   /api/bookings/{attempt_id}/restart   – "Try Again" after failure/timeout
  DELETE /api/bookings/{attempt_id}           – booking window closed
  GET    /api/bookings/{attempt_id}/events    – progress history
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status

from app.core.logging_config import logger
from app.routes.dependencies import get_booking_workflow
from app.schemas.booking import AttemptEvent, BookingAttemptResponse, BookingRequest
from app.services.booking_workflow import BookingWorkflowService

router = APIRouter(
    prefix="/api/bookings",
    tags=["bookings"]
)


@router.post("", response_model=BookingAttemptResponse, status_code=status.HTTP_201_CREATED)
async def submit_booking(
    body: BookingRequest,
    attempt_id: Optional[str] = Query(default=None, alias="attemptId"),
    workflow: BookingWorkflowService = Depends(get_booking_workflow)
):
    """
    Submit the booking form
    
    Cash, card and staff bookings come back CONFIRMED with a ticket number.
    Mobile money bookings come back PAYMENT_PENDING and are polled in the background.
    Pass ``attemptId`` to resubmit an attempt that was restarted.
    """
    attempt = await workflow.submit_booking(body, attempt_id=attempt_id)
    logger.info(f"Booking attempt {attempt.id} submitted: {attempt.state.value}")
    return workflow.describe(attempt)


@router.get("/{attempt_id}", response_model=BookingAttemptResponse)
async def get_booking_attempt(
    attempt_id: str,
    workflow: BookingWorkflowService = Depends(get_booking_workflow)
):
    return workflow.describe(workflow.get_attempt(attempt_id))


@router.post("/{attempt_id}/refresh", response_model=BookingAttemptResponse)
async def refresh_payment_status(
    attempt_id: str,
    workflow: BookingWorkflowService = Depends(get_booking_workflow)
):
    """Check the payment status right now instead of waiting for the next poll"""
    attempt = await workflow.refresh_payment_status(attempt_id)
    return workflow.describe(attempt)


@router.post("/{attempt_id}/restart", response_model=BookingAttemptResponse)
async def restart_attempt(
    attempt_id: str,
    workflow: BookingWorkflowService = Depends(get_booking_workflow)
):
    attempt = await workflow.restart_attempt(attempt_id)
    return workflow.describe(attempt)


@router.delete("/{attempt_id}", status_code=status.HTTP_204_NO_CONTENT)
async def abandon_attempt(
    attempt_id: str,
    workflow: BookingWorkflowService = Depends(get_booking_workflow)
):
    await workflow.abandon_attempt(attempt_id)


@router.get("/{attempt_id}/events", response_model=List[AttemptEvent])
async def list_attempt_events(
    attempt_id: str,
    workflow: BookingWorkflowService = Depends(get_booking_workflow)
):
    return workflow.events_for(attempt_id)
