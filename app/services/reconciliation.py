"""
Turns an observed payment success into exactly one confirmed, ticketed booking
"""
import asyncio

from app.core.exceptions import ConfirmationAnomaly
from app.core.logging_config import logger
from app.schemas.booking import AttemptState
from app.services.booking_state import BookingAttempt, BookingStateMachine


class ConfirmationService:
    """Dispatches at most one confirm call per booking attempt"""
    
    def __init__(self, inventory, machine: BookingStateMachine):
        self.inventory = inventory
        self.machine = machine
    
    async def confirm(self, attempt: BookingAttempt) -> None:
        """
        Confirm a paid booking with the booking/ticketing API
        
        The attempt must already be in PAYMENT_SUCCESS, which no status check
        or restart acts on, so this is the only writer until it returns.
        A failed or interrupted confirmation is recorded as an anomaly and
        never retried.
        """
        if attempt.state != AttemptState.PAYMENT_SUCCESS or attempt.confirm_dispatched:
            return
        attempt.confirm_dispatched = True
        logger.info(
            f"Confirming booking {attempt.booking_id} for payment {attempt.payment_reference}"
        )
        try:
            record = await self.inventory.confirm_booking(attempt.booking_id, attempt.payment_reference)
        except asyncio.CancelledError:
            self._anomaly(attempt, "confirmation was interrupted before the booking service answered")
            raise
        except Exception as e:
            self._anomaly(attempt, str(e) or e.__class__.__name__)
            return
        
        if not record.ticket_number:
            self._anomaly(attempt, "confirmation returned no ticket number")
            return
        
        if record.seat_number:
            attempt.seat_number = record.seat_number
        self.machine.transition(
            attempt,
            AttemptState.CONFIRMED,
            ticket_number=record.ticket_number,
            message="Payment confirmed",
        )
    
    def _anomaly(self, attempt: BookingAttempt, reason: str) -> None:
        self.machine.record_anomaly(attempt, ConfirmationAnomaly(attempt.payment_reference, reason))
