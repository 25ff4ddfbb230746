"""
Booking attempt entity and its state machine
"""
from typing import Dict, Optional, Set
from dataclasses import dataclass, field
from datetime import datetime
import asyncio
import uuid

from app.core.exceptions import ConfirmationAnomaly, InvalidTransition
from app.core.logging_config import logger
from app.schemas.booking import AttemptEvent, AttemptState, BookingRequest
from app.utils.clock import SystemClock, utcnow
from app.utils.websocket_manager import AttemptEventManager

_ALLOWED_TRANSITIONS: Dict[AttemptState, Set[AttemptState]] = {
    AttemptState.FORM: {
        AttemptState.PAYMENT_PENDING,
        AttemptState.CONFIRMED,
    },
    AttemptState.PAYMENT_PENDING: {
        AttemptState.PAYMENT_SUCCESS,
        AttemptState.PAYMENT_FAILED,
        AttemptState.PAYMENT_TIMEOUT,
    },
    AttemptState.PAYMENT_SUCCESS: {
        AttemptState.CONFIRMED,
    },
    AttemptState.PAYMENT_FAILED: {
        AttemptState.FORM,
    },
    AttemptState.PAYMENT_TIMEOUT: {
        AttemptState.FORM,
    },
    AttemptState.CONFIRMED: set(),
}

RESTARTABLE_STATES = {AttemptState.PAYMENT_FAILED, AttemptState.PAYMENT_TIMEOUT}


def _new_attempt_id() -> str:
    return uuid.uuid4().hex


@dataclass(eq=False)
class BookingAttempt:
    """
    One user's attempt to reserve and pay for a seat.

    Timers, counters and the poll task handle live here so that each attempt
    owns its own workflow state. All state changes go through
    BookingStateMachine.transition while holding ``lock``.
    """
    request: BookingRequest
    id: str = field(default_factory=_new_attempt_id)
    state: AttemptState = AttemptState.FORM
    booking_id: Optional[str] = None
    payment_reference: Optional[str] = None
    poll_attempt_count: int = 0
    seat_number: Optional[str] = None
    amount: Optional[float] = None
    available_seats: Optional[int] = None
    show_troubleshooting: bool = False
    confirmation_error: Optional[str] = None
    confirm_dispatched: bool = False
    created_at: datetime = field(default_factory=utcnow)
    last_polled_at: Optional[datetime] = None
    payment_started_at: Optional[float] = None  # monotonic reading
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)
    poll_task: Optional[asyncio.Task] = field(default=None, repr=False)
    confirm_task: Optional[asyncio.Task] = field(default=None, repr=False)
    settled_at: Optional[float] = None  # monotonic reading; set once the core is done with the attempt
    _ticket_number: Optional[str] = field(default=None, init=False, repr=False)

    @property
    def ticket_number(self) -> Optional[str]:
        return self._ticket_number

    @property
    def is_pending(self) -> bool:
        return self.state == AttemptState.PAYMENT_PENDING

    @property
    def can_restart(self) -> bool:
        return self.state in RESTARTABLE_STATES

    def _assign_ticket(self, ticket_number: str) -> None:
        if self._ticket_number is not None:
            raise InvalidTransition(self.state.value, AttemptState.CONFIRMED.value)
        self._ticket_number = ticket_number

    def _reset_for_retry(self) -> None:
        self.booking_id = None
        self.payment_reference = None
        self.poll_attempt_count = 0
        self.seat_number = None
        self.show_troubleshooting = False
        self.confirmation_error = None
        self.confirm_dispatched = False
        self.last_polled_at = None
        self.payment_started_at = None
        self.poll_task = None
        self.confirm_task = None


class BookingStateMachine:
    """
    Central lifecycle controller for booking attempts.
    Validates every transition, applies its side effects on the attempt and
    publishes the resulting event.
    """

    def __init__(self, events: AttemptEventManager, clock=None):
        self.events = events
        self.clock = clock or SystemClock()

    @staticmethod
    def can_transition(from_state: AttemptState, to_state: AttemptState) -> bool:
        return to_state in _ALLOWED_TRANSITIONS.get(from_state, set())

    def transition(
        self,
        attempt: BookingAttempt,
        to_state: AttemptState,
        *,
        payment_reference: Optional[str] = None,
        ticket_number: Optional[str] = None,
        message: Optional[str] = None,
    ) -> AttemptEvent:
        """
        Move an attempt to ``to_state``

        Args:
            attempt: Attempt to move
            to_state: Target state
            payment_reference: Required when entering PAYMENT_PENDING
            ticket_number: Required when entering CONFIRMED
            message: Free text attached to the published event

        Returns:
            The published transition event
        """
        from_state = attempt.state
        if not self.can_transition(from_state, to_state):
            raise InvalidTransition(from_state.value, to_state.value)

        if to_state == AttemptState.PAYMENT_PENDING:
            if not payment_reference:
                raise ValueError("payment_reference is required to enter PAYMENT_PENDING")
            attempt.payment_reference = payment_reference
            attempt.payment_started_at = self.clock.monotonic()
        elif to_state == AttemptState.CONFIRMED:
            if not ticket_number:
                raise ValueError("ticket_number is required to enter CONFIRMED")
            attempt._assign_ticket(ticket_number)
            attempt.settled_at = self.clock.monotonic()
        elif to_state == AttemptState.PAYMENT_TIMEOUT:
            attempt.show_troubleshooting = True
        elif to_state == AttemptState.FORM:
            attempt._reset_for_retry()

        attempt.state = to_state
        logger.info(f"Booking attempt {attempt.id}: {from_state.value} -> {to_state.value}")

        data = {}
        if attempt.payment_reference:
            data["paymentReference"] = attempt.payment_reference
        if attempt.ticket_number:
            data["ticketNumber"] = attempt.ticket_number
        event = AttemptEvent(
            attempt_id=attempt.id,
            kind="transition",
            from_state=from_state,
            to_state=to_state,
            message=message,
            occurred_at=self.clock.now(),
            data=data,
        )
        self.events.publish(event)
        return event

    def escalate(self, attempt: BookingAttempt) -> None:
        """Show the troubleshooting checklist without changing state"""
        if attempt.show_troubleshooting:
            return
        attempt.show_troubleshooting = True
        logger.warning(
            f"Booking attempt {attempt.id}: payment {attempt.payment_reference} still pending "
            f"after {attempt.poll_attempt_count} checks, showing troubleshooting"
        )
        self.events.publish(AttemptEvent(
            attempt_id=attempt.id,
            kind="troubleshooting",
            from_state=attempt.state,
            to_state=attempt.state,
            occurred_at=self.clock.now(),
            data={"pollAttemptCount": attempt.poll_attempt_count},
        ))

    def record_anomaly(self, attempt: BookingAttempt, anomaly: ConfirmationAnomaly) -> None:
        """Mark a paid-but-unconfirmed attempt for manual follow up"""
        attempt.confirmation_error = anomaly.reason
        attempt.settled_at = self.clock.monotonic()
        logger.error(f"Booking attempt {attempt.id}: {anomaly.message}")
        self.events.publish(AttemptEvent(
            attempt_id=attempt.id,
            kind="anomaly",
            from_state=attempt.state,
            to_state=attempt.state,
            message=anomaly.reason,
            occurred_at=self.clock.now(),
            data={"paymentReference": attempt.payment_reference, "bookingId": attempt.booking_id},
        ))

    def publish_seats(self, attempt: BookingAttempt) -> None:
        self.events.publish(AttemptEvent(
            attempt_id=attempt.id,
            kind="seats",
            from_state=attempt.state,
            to_state=attempt.state,
            occurred_at=self.clock.now(),
            data={"tripId": attempt.request.trip_id, "availableSeats": attempt.available_seats},
        ))
