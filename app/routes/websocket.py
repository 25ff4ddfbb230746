"""
WebSocket route for live booking progress
"""
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from app.core.exceptions import AttemptNotFound
from app.core.logging_config import logger
from app.routes.dependencies import get_booking_workflow_ws
from app.services.booking_workflow import BookingWorkflowService

router = APIRouter(
    prefix="/ws",
    tags=["booking-websocket"]
)


@router.websocket("/bookings/{attempt_id}")
async def booking_progress(
    websocket: WebSocket,
    attempt_id: str,
    workflow: BookingWorkflowService = Depends(get_booking_workflow_ws)
):
    """
    Stream state transitions, troubleshooting prompts and seat updates
    
    History is replayed on connect, then new events are pushed as they happen.
    """
    await websocket.accept()
    try:
        workflow.get_attempt(attempt_id)
    except AttemptNotFound as e:
        await websocket.close(code=1008, reason=e.message)
        return
    
    logger.info(f"WebSocket connected for booking attempt {attempt_id}")
    try:
        await workflow.events.stream_to(websocket, attempt_id)
    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected for booking attempt {attempt_id}")
