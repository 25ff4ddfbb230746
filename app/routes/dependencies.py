"""
Shared route dependencies
"""
from fastapi import Request, WebSocket

from app.services.booking_workflow import BookingWorkflowService


def get_booking_workflow(request: Request) -> BookingWorkflowService:
    return request.app.state.booking_workflow


def get_booking_workflow_ws(websocket: WebSocket) -> BookingWorkflowService:
    return websocket.app.state.booking_workflow
