"""
Shared fakes for the booking workflow tests
"""
import asyncio
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import pytest

from app.core.exceptions import GatewayUnavailable, SeatUnavailable
from app.schemas.booking import BookingRecord, BookingRequest, PaymentMethod
from app.schemas.payment import GatewayPaymentStatus
from app.schemas.trip import Trip
from app.services.booking_workflow import BookingWorkflowService


class FakeClock:
    """Virtual time: every sleep advances the clock instantly"""

    def __init__(self):
        self.elapsed = 0.0
        self.epoch = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self.epoch + timedelta(seconds=self.elapsed)

    def monotonic(self) -> float:
        return self.elapsed

    async def sleep(self, seconds: float) -> None:
        self.elapsed += max(0.0, seconds)
        await asyncio.sleep(0)

    async def wait_for(self, awaitable, seconds: float):
        return await awaitable


class HoldingClock(FakeClock):
    """Virtual time that never wakes sleepers, so the poll loop stays parked"""

    async def sleep(self, seconds: float) -> None:
        await asyncio.Event().wait()


class FakeInventory:
    def __init__(self, seats: int = 10, price: float = 5000.0):
        self.trip = Trip(
            trip_id="trip-1",
            origin="Kigali",
            destination="Huye",
            departure_time="08:30",
            vehicle_plate_no="RAB 123A",
            price=price,
            available_seats=seats,
        )
        self.created: List[BookingRequest] = []
        self.confirm_calls: List[tuple] = []
        self.cancelled: List[tuple] = []
        self.get_trip_calls = 0
        self.seat_unavailable = False
        self.confirm_error: Optional[Exception] = None
        self.confirm_gate: Optional[asyncio.Event] = None
        self.cancel_error: Optional[Exception] = None
        self.issue_ticket_on_create = True
        self._counter = 0

    async def search_trips(self, criteria):
        return [self.trip]

    async def get_trip(self, trip_id: str) -> Trip:
        self.get_trip_calls += 1
        return self.trip

    async def create_booking(self, request: BookingRequest) -> BookingRecord:
        if self.seat_unavailable or self.trip.available_seats <= 0:
            raise SeatUnavailable(request.trip_id)
        self._counter += 1
        self.created.append(request)
        self.trip = self.trip.model_copy(update={"available_seats": self.trip.available_seats - 1})
        ticket = None
        if not request.requires_payment and self.issue_ticket_on_create:
            ticket = f"TKT-{self._counter:05d}"
        return BookingRecord(
            booking_id=f"bk-{self._counter}",
            ticket_number=ticket,
            seat_number=str(self._counter),
            price=self.trip.price,
        )

    async def confirm_booking(self, booking_id: str, payment_reference: str) -> BookingRecord:
        self.confirm_calls.append((booking_id, payment_reference))
        if self.confirm_gate is not None:
            await self.confirm_gate.wait()
        if self.confirm_error is not None:
            raise self.confirm_error
        return BookingRecord(
            booking_id=booking_id,
            ticket_number=f"TKT-{booking_id}",
            seat_number="12",
            payment_status="PAID",
        )

    async def cancel_booking(self, booking_id: str, reason: str) -> None:
        self.cancelled.append((booking_id, reason))
        if self.cancel_error is not None:
            raise self.cancel_error
        self.trip = self.trip.model_copy(update={"available_seats": self.trip.available_seats + 1})


class FakeGateway:
    """
    Scripted gateway. ``statuses`` is consumed one item per status check and
    the last item repeats; an Exception instance in the script is raised.
    """

    def __init__(self, statuses=None):
        self.statuses = list(statuses or ["pending"])
        self.initiate_calls: List[tuple] = []
        self.status_calls: List[str] = []
        self.initiate_error: Optional[Exception] = None
        self.references: List[str] = []
        self.status_gate: Optional[asyncio.Event] = None

    async def initiate_payment(self, booking_id: str, phone: str, amount: float) -> str:
        self.initiate_calls.append((booking_id, phone, amount))
        if self.initiate_error is not None:
            raise self.initiate_error
        reference = self.references.pop(0) if self.references else f"PAY-{len(self.initiate_calls):04d}"
        return reference

    async def get_payment_status(self, payment_reference: str) -> GatewayPaymentStatus:
        self.status_calls.append(payment_reference)
        if self.status_gate is not None:
            await self.status_gate.wait()
        index = min(len(self.status_calls), len(self.statuses)) - 1
        outcome = self.statuses[index]
        if isinstance(outcome, Exception):
            raise outcome
        return GatewayPaymentStatus.normalize(outcome)


def make_request(**overrides) -> BookingRequest:
    data = {
        "trip_id": "trip-1",
        "customer_name": "Aline Uwase",
        "customer_phone": "0781234567",
        "payment_method": PaymentMethod.MOBILE_MONEY,
    }
    data.update(overrides)
    return BookingRequest(**data)


async def settle(attempt) -> None:
    """Wait until the attempt's poll loop has finished or been cancelled"""
    if attempt.poll_task is not None:
        await asyncio.wait({attempt.poll_task})


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def inventory():
    return FakeInventory()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def workflow(inventory, gateway, clock):
    return BookingWorkflowService(
        inventory,
        gateway,
        clock=clock,
        grace_seconds=3,
        interval_seconds=3,
        escalation_threshold=20,
        deadline_seconds=180,
    )


@pytest.fixture
def parked_workflow(inventory, gateway):
    """Workflow whose automatic poller never fires; only manual checks run"""
    return BookingWorkflowService(inventory, gateway, clock=HoldingClock())
