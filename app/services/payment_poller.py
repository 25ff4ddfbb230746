"""
Payment status polling for mobile money bookings
"""
from typing import Awaitable, Callable, Optional
import asyncio

from app.core.config import settings
from app.core.exceptions import TransientPollError
from app.core.logging_config import logger
from app.schemas.booking import AttemptState
from app.schemas.payment import GatewayPaymentStatus
from app.services.booking_state import BookingAttempt, BookingStateMachine
from app.services.reconciliation import ConfirmationService
from app.utils.clock import SystemClock
from app.utils.tasks import cancel_task, spawn

SettledHook = Callable[[BookingAttempt], Awaitable[None]]


class PaymentPoller:
    """
    Drives PAYMENT_PENDING exits for booking attempts.

    Each attempt gets one polling task: a grace wait, then a status check on a
    constant interval until the gateway reports a terminal status or the
    absolute deadline passes. Manual checks share the same check path and the
    attempt's lock, so automatic and manual results are applied one at a time.
    Confirmation of a successful payment runs in its own attempt-owned task so
    that cancelling the caller (a dropped HTTP request) cannot strand it.
    """
    
    def __init__(
        self,
        gateway,
        machine: BookingStateMachine,
        confirmation: ConfirmationService,
        clock=None,
        grace_seconds: Optional[float] = None,
        interval_seconds: Optional[float] = None,
        escalation_threshold: Optional[int] = None,
        deadline_seconds: Optional[float] = None,
        on_settled: Optional[SettledHook] = None
    ):
        self.gateway = gateway
        self.machine = machine
        self.confirmation = confirmation
        self.clock = clock or SystemClock()
        self.grace_seconds = settings.PAYMENT_POLL_GRACE_SECONDS if grace_seconds is None else grace_seconds
        self.interval_seconds = (
            settings.PAYMENT_POLL_INTERVAL_SECONDS if interval_seconds is None else interval_seconds
        )
        self.escalation_threshold = (
            settings.PAYMENT_ESCALATION_THRESHOLD if escalation_threshold is None else escalation_threshold
        )
        self.deadline_seconds = settings.PAYMENT_DEADLINE_SECONDS if deadline_seconds is None else deadline_seconds
        self.on_settled = on_settled
    
    def start(self, attempt: BookingAttempt) -> None:
        """Start the polling task for a pending attempt (no-op if already running)"""
        if not attempt.is_pending:
            return
        if attempt.poll_task is not None and not attempt.poll_task.done():
            return
        attempt.poll_task = spawn(self._run(attempt), name=f"payment-poll-{attempt.id}")
    
    async def stop(self, attempt: BookingAttempt) -> None:
        await cancel_task(attempt.poll_task)
    
    async def check_now(self, attempt: BookingAttempt) -> BookingAttempt:
        """Out-of-band status check requested by the user"""
        await self._check(attempt, scheduled=False)
        return attempt
    
    def deadline_for(self, attempt: BookingAttempt) -> float:
        return (attempt.payment_started_at or self.clock.monotonic()) + self.deadline_seconds
    
    async def _run(self, attempt: BookingAttempt) -> None:
        deadline = self.deadline_for(attempt)
        await self._wait(self.grace_seconds, deadline)
        while attempt.is_pending:
            if self.clock.monotonic() >= deadline:
                await self._expire(attempt)
                return
            await self._check(attempt, scheduled=True)
            if not attempt.is_pending:
                return
            await self._wait(self.interval_seconds, deadline)
    
    async def _wait(self, seconds: float, deadline: float) -> None:
        remaining = max(0.0, deadline - self.clock.monotonic())
        await self.clock.sleep(min(seconds, remaining))
    
    async def _check(self, attempt: BookingAttempt, scheduled: bool) -> None:
        async with attempt.lock:
            if not attempt.is_pending:
                return
            remaining = self.deadline_for(attempt) - self.clock.monotonic()
            if remaining <= 0:
                self._time_out(attempt)
                await cancel_task(attempt.poll_task)
                settled = True
            else:
                settled = await self._poll_gateway(attempt, scheduled, remaining)
        
        if settled:
            await self._settled(attempt)
    
    async def _poll_gateway(self, attempt: BookingAttempt, scheduled: bool, remaining: float) -> bool:
        """One status call bounded by the time left before the deadline. Caller holds the lock."""
        if scheduled:
            attempt.poll_attempt_count += 1
        
        status = None
        try:
            status = await self.clock.wait_for(
                self.gateway.get_payment_status(attempt.payment_reference), remaining
            )
        except TransientPollError as e:
            logger.warning(f"Booking attempt {attempt.id}: {e}. Retrying on next tick")
        except asyncio.TimeoutError:
            logger.warning(
                f"Booking attempt {attempt.id}: status check for {attempt.payment_reference} "
                f"still running at the payment deadline"
            )
        attempt.last_polled_at = self.clock.now()
        
        if status is GatewayPaymentStatus.SUCCESSFUL:
            await self._confirm(attempt)
            return False
        if status is GatewayPaymentStatus.FAILED:
            self.machine.transition(attempt, AttemptState.PAYMENT_FAILED, message="Payment declined by the gateway")
            await cancel_task(attempt.poll_task)
            return True
        if scheduled and attempt.poll_attempt_count >= self.escalation_threshold:
            self.machine.escalate(attempt)
        return False
    
    async def _confirm(self, attempt: BookingAttempt) -> None:
        # state change and task hand-off happen with no await in between
        self.machine.transition(attempt, AttemptState.PAYMENT_SUCCESS, message="Payment received")
        attempt.confirm_task = spawn(self._confirm_and_settle(attempt), name=f"confirm-{attempt.id}")
        await cancel_task(attempt.poll_task)
        await asyncio.shield(attempt.confirm_task)
    
    async def _confirm_and_settle(self, attempt: BookingAttempt) -> None:
        await self.confirmation.confirm(attempt)
        await self._settled(attempt)
    
    async def _expire(self, attempt: BookingAttempt) -> None:
        async with attempt.lock:
            if not attempt.is_pending:
                return
            self._time_out(attempt)
        await self._settled(attempt)
    
    def _time_out(self, attempt: BookingAttempt) -> None:
        logger.warning(
            f"Booking attempt {attempt.id}: payment {attempt.payment_reference} timed out "
            f"after {attempt.poll_attempt_count} checks"
        )
        self.machine.transition(
            attempt,
            AttemptState.PAYMENT_TIMEOUT,
            message=f"No payment confirmation within {int(self.deadline_seconds)} seconds",
        )
    
    async def _settled(self, attempt: BookingAttempt) -> None:
        if self.on_settled is None:
            return
        try:
            await self.on_settled(attempt)
        except Exception as e:
            logger.warning(f"Post-settlement hook failed for attempt {attempt.id}: {e}")
