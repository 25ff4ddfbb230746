"""
Booking-and-payment confirmation workflow
Entry point used by the HTTP layer: submit, refresh, restart and abandon attempts
"""
import re
from typing import Dict, List, Optional

from app.core.config import settings
from app.core.exceptions import (
    AttemptNotFound, BookingError, GatewayUnavailable, InventoryUnavailable,
    InvalidTransition, ValidationError
)
from app.core.logging_config import logger
from app.schemas.booking import (
    AttemptEvent, AttemptState, BookingAttemptResponse, BookingRequest
)
from app.schemas.trip import Trip, TripSearchCriteria
from app.services.booking_state import BookingAttempt, BookingStateMachine
from app.services.payment_poller import PaymentPoller
from app.services.reconciliation import ConfirmationService
from app.services.troubleshooting import MOBILE_MONEY_GUIDE, message_for
from app.utils.clock import SystemClock
from app.utils.tasks import cancel_task
from app.utils.websocket_manager import AttemptEventManager

PHONE_PATTERN = re.compile(r"^[0-9]{10}$")


def validate_booking_request(request: BookingRequest) -> None:
    """
    Check the booking form before anything is sent to the collaborators

    Raises:
        ValidationError: with one entry per offending field
    """
    errors: Dict[str, str] = {}
    if not request.trip_id:
        errors["tripId"] = "a trip must be selected"
    name = request.customer_name
    if not name:
        errors["customerName"] = "full name is required"
    elif len(name) < 2:
        errors["customerName"] = "full name is too short"
    phone = request.customer_phone
    if not phone:
        errors["customerPhone"] = "phone number is required"
    elif not PHONE_PATTERN.match(phone):
        errors["customerPhone"] = "enter a valid 10-digit phone number"
    if errors:
        raise ValidationError(errors)


class BookingWorkflowService:
    """Owns the in-memory booking attempts and wires the workflow components"""

    def __init__(
        self,
        inventory,
        gateway,
        clock=None,
        events: Optional[AttemptEventManager] = None,
        grace_seconds: Optional[float] = None,
        interval_seconds: Optional[float] = None,
        escalation_threshold: Optional[int] = None,
        deadline_seconds: Optional[float] = None,
        retention_seconds: Optional[float] = None
    ):
        self.inventory = inventory
        self.gateway = gateway
        self.clock = clock or SystemClock()
        self.events = events or AttemptEventManager()
        self.machine = BookingStateMachine(self.events, self.clock)
        self.confirmation = ConfirmationService(inventory, self.machine)
        self.poller = PaymentPoller(
            gateway,
            self.machine,
            self.confirmation,
            clock=self.clock,
            grace_seconds=grace_seconds,
            interval_seconds=interval_seconds,
            escalation_threshold=escalation_threshold,
            deadline_seconds=deadline_seconds,
            on_settled=self._reconcile_seats,
        )
        self._attempts: Dict[str, BookingAttempt] = {}
        self._references: Dict[str, str] = {}
        self.retention_seconds = (
            settings.ATTEMPT_RETENTION_SECONDS if retention_seconds is None else retention_seconds
        )

    # ── Trip inventory pass-through ──────────────────────────────────────────

    async def search_trips(self, criteria: TripSearchCriteria) -> List[Trip]:
        return await self.inventory.search_trips(criteria)

    async def get_trip(self, trip_id: str) -> Trip:
        return await self.inventory.get_trip(trip_id)

    # ── Attempt lifecycle ────────────────────────────────────────────────────

    def get_attempt(self, attempt_id: str) -> BookingAttempt:
        attempt = self._attempts.get(attempt_id)
        if attempt is None:
            raise AttemptNotFound(attempt_id)
        return attempt

    def list_attempts(self) -> List[BookingAttempt]:
        self.evict_settled()
        return list(self._attempts.values())

    def evict_settled(self) -> int:
        """
        Drop confirmed and anomaly attempts older than the retention window

        Once an attempt is settled the booking/ticketing API owns the booking;
        only recent ones are kept so the customer can still read the result.

        Returns:
            Number of attempts removed
        """
        cutoff = self.clock.monotonic() - self.retention_seconds
        expired = [
            attempt for attempt in self._attempts.values()
            if attempt.settled_at is not None and attempt.settled_at <= cutoff
        ]
        for attempt in expired:
            self._attempts.pop(attempt.id, None)
            self._references.pop(attempt.payment_reference or "", None)
            self.events.forget(attempt.id)
        if expired:
            logger.info(f"Evicted {len(expired)} settled booking attempts")
        return len(expired)

    def events_for(self, attempt_id: str) -> List[AttemptEvent]:
        self.get_attempt(attempt_id)
        return self.events.history(attempt_id)

    async def submit_booking(
        self,
        request: BookingRequest,
        attempt_id: Optional[str] = None
    ) -> BookingAttempt:
        """
        Reserve a seat and, when required, start the mobile money payment

        Args:
            request: Booking form submission
            attempt_id: Reuse an attempt that was restarted back to FORM

        Returns:
            The attempt in PAYMENT_PENDING or CONFIRMED

        Raises:
            ValidationError, SeatUnavailable, GatewayUnavailable, InventoryUnavailable.
            On any of these no booking is left behind, except a GatewayUnavailable
            carrying ``unreleased_booking_id`` when the compensating release failed.
        """
        validate_booking_request(request)
        self.evict_settled()

        if attempt_id is not None:
            attempt = self.get_attempt(attempt_id)
        else:
            attempt = BookingAttempt(request=request, created_at=self.clock.now())

        async with attempt.lock:
            if attempt.state != AttemptState.FORM:
                target = AttemptState.PAYMENT_PENDING if request.requires_payment else AttemptState.CONFIRMED
                raise InvalidTransition(attempt.state.value, target.value)
            attempt.request = request

            trip = await self.inventory.get_trip(request.trip_id)
            record = await self.inventory.create_booking(request)
            logger.info(
                f"Booking {record.booking_id} created on trip {request.trip_id} "
                f"({request.payment_method.value}, payment required: {request.requires_payment})"
            )
            attempt.booking_id = record.booking_id
            attempt.seat_number = record.seat_number
            attempt.amount = record.price if record.price is not None else trip.price
            attempt.available_seats = max(0, trip.available_seats - 1)

            if request.requires_payment:
                await self._start_payment(attempt)
            else:
                if not record.ticket_number:
                    await self._release(record.booking_id, "booking created without a ticket number")
                    attempt.booking_id = None
                    raise InventoryUnavailable("The booking service did not issue a ticket. Please try again.")
                self.machine.transition(
                    attempt,
                    AttemptState.CONFIRMED,
                    ticket_number=record.ticket_number,
                    message="Booked without online payment",
                )
            self._attempts[attempt.id] = attempt

        if attempt.is_pending:
            self.poller.start(attempt)
        await self._reconcile_seats(attempt)
        return attempt

    async def _start_payment(self, attempt: BookingAttempt) -> None:
        request = attempt.request
        try:
            reference = await self.gateway.initiate_payment(
                attempt.booking_id, request.customer_phone, attempt.amount
            )
            if reference in self._references:
                logger.error(f"Gateway reused payment reference {reference}")
                raise GatewayUnavailable("The payment service returned a duplicate reference. Please try again.")
        except GatewayUnavailable as e:
            booking_id = attempt.booking_id
            released = await self._release(booking_id, "payment initiation failed")
            attempt.booking_id = None
            attempt.seat_number = None
            if not released:
                raise GatewayUnavailable(
                    f"{e.message} Booking {booking_id} could not be released; "
                    f"quote it to {settings.SUPPORT_CONTACT}.",
                    unreleased_booking_id=booking_id,
                ) from e
            raise
        self.machine.transition(
            attempt,
            AttemptState.PAYMENT_PENDING,
            payment_reference=reference,
            message="Payment prompt sent to customer phone",
        )
        self._references[reference] = attempt.id

    async def refresh_payment_status(self, attempt_id: str) -> BookingAttempt:
        """Manual "check now"; outside PAYMENT_PENDING this returns the attempt unchanged"""
        attempt = self.get_attempt(attempt_id)
        if attempt.is_pending:
            await self.poller.check_now(attempt)
        return attempt

    async def restart_attempt(self, attempt_id: str) -> BookingAttempt:
        """Handle "Try Again" after a failed or timed out payment"""
        attempt = self.get_attempt(attempt_id)
        async with attempt.lock:
            if not attempt.can_restart:
                raise InvalidTransition(attempt.state.value, AttemptState.FORM.value)
            await self.poller.stop(attempt)
            booking_id = attempt.booking_id
            self._references.pop(attempt.payment_reference or "", None)
            self.machine.transition(attempt, AttemptState.FORM, message="Restarted by customer")
        if booking_id:
            await self._release(booking_id, "customer restarted booking")
        await self._reconcile_seats(attempt)
        return attempt

    async def abandon_attempt(self, attempt_id: str) -> None:
        """The booking UI was closed; stop polling and forget the attempt"""
        attempt = self.get_attempt(attempt_id)
        async with attempt.lock:
            await self.poller.stop(attempt)
            self._attempts.pop(attempt.id, None)
            self._references.pop(attempt.payment_reference or "", None)
            release = attempt.booking_id if attempt.can_restart else None
        logger.info(f"Booking attempt {attempt.id} abandoned in state {attempt.state.value}")
        if release:
            await self._release(release, "customer abandoned booking")
        self.events.forget(attempt.id)

    async def shutdown(self) -> None:
        """Stop every poll loop and close the collaborator sessions"""
        for attempt in list(self._attempts.values()):
            await cancel_task(attempt.poll_task)
            await cancel_task(attempt.confirm_task)
        for collaborator in (self.inventory, self.gateway):
            close = getattr(collaborator, "close", None)
            if close is not None:
                close()

    # ── Helpers ──────────────────────────────────────────────────────────────

    async def _release(self, booking_id: str, reason: str) -> bool:
        """Cancel a booking row at the collaborator; False when it is still held"""
        try:
            await self.inventory.cancel_booking(booking_id, reason)
        except BookingError as e:
            logger.error(
                f"Could not release booking {booking_id} ({reason}): {e}. "
                f"It must be cancelled manually."
            )
            return False
        logger.info(f"Released booking {booking_id}: {reason}")
        return True

    async def _reconcile_seats(self, attempt: BookingAttempt) -> None:
        """Replace the optimistic seat projection with the inventory's count"""
        try:
            trip = await self.inventory.get_trip(attempt.request.trip_id)
        except BookingError as e:
            logger.warning(f"Seat count refresh failed for trip {attempt.request.trip_id}: {e}")
            return
        if trip.available_seats != attempt.available_seats:
            attempt.available_seats = trip.available_seats
            self.machine.publish_seats(attempt)

    def describe(self, attempt: BookingAttempt) -> BookingAttemptResponse:
        """User-facing view of an attempt"""
        request = attempt.request
        return BookingAttemptResponse(
            id=attempt.id,
            state=attempt.state,
            trip_id=request.trip_id,
            payment_method=request.payment_method,
            requires_payment=request.requires_payment,
            booking_id=attempt.booking_id,
            payment_reference=attempt.payment_reference,
            poll_attempt_count=attempt.poll_attempt_count,
            ticket_number=attempt.ticket_number,
            seat_number=attempt.seat_number,
            amount=attempt.amount,
            available_seats=attempt.available_seats,
            created_at=attempt.created_at,
            last_polled_at=attempt.last_polled_at,
            message=message_for(attempt.state, bool(attempt.confirmation_error)),
            can_restart=attempt.can_restart,
            show_troubleshooting=attempt.show_troubleshooting,
            troubleshooting=MOBILE_MONEY_GUIDE if attempt.show_troubleshooting else None,
            confirmation_error=attempt.confirmation_error,
        )


def create_booking_workflow() -> BookingWorkflowService:
    """Workflow wired to the configured transport API and payment gateway"""
    from app.services.inventory_client import TripInventoryClient
    from app.services.payment_gateway import MobileMoneyGateway

    return BookingWorkflowService(TripInventoryClient(), MobileMoneyGateway())
