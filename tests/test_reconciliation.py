import asyncio

import pytest

from app.core.exceptions import InvalidTransition, InventoryUnavailable
from app.schemas.booking import AttemptState, BookingRecord

from conftest import make_request, settle


async def wait_for(condition, rounds: int = 200):
    for _ in range(rounds):
        if condition():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition never became true")


@pytest.mark.asyncio
async def test_manual_check_waits_for_automatic_success(workflow, gateway, inventory):
    gateway.statuses = ["successful"]
    gateway.status_gate = asyncio.Event()
    attempt = await workflow.submit_booking(make_request())

    # automatic check is inside the gateway call
    await wait_for(lambda: len(gateway.status_calls) == 1)
    manual = asyncio.create_task(workflow.refresh_payment_status(attempt.id))
    for _ in range(5):
        await asyncio.sleep(0)

    gateway.status_gate.set()
    await manual
    await settle(attempt)

    assert attempt.state == AttemptState.CONFIRMED
    assert len(gateway.status_calls) == 1
    assert len(inventory.confirm_calls) == 1
    assert attempt.poll_attempt_count == 1


@pytest.mark.asyncio
async def test_automatic_check_waits_for_manual_success(parked_workflow, gateway, inventory):
    gateway.statuses = ["successful"]
    gateway.status_gate = asyncio.Event()
    attempt = await parked_workflow.submit_booking(make_request())
    poll_task = attempt.poll_task

    manual = asyncio.create_task(parked_workflow.refresh_payment_status(attempt.id))
    await wait_for(lambda: len(gateway.status_calls) == 1)
    # a scheduled check racing the manual one
    scheduled = asyncio.create_task(parked_workflow.poller._check(attempt, scheduled=True))
    for _ in range(5):
        await asyncio.sleep(0)

    gateway.status_gate.set()
    await manual
    await scheduled

    assert attempt.state == AttemptState.CONFIRMED
    assert len(gateway.status_calls) == 1
    assert len(inventory.confirm_calls) == 1
    assert attempt.poll_attempt_count == 0
    assert poll_task.cancelled()


@pytest.mark.asyncio
async def test_refresh_during_confirmation_does_not_confirm_twice(workflow, gateway, inventory):
    gateway.statuses = ["successful"]
    inventory.confirm_gate = asyncio.Event()
    attempt = await workflow.submit_booking(make_request())

    await wait_for(lambda: len(inventory.confirm_calls) == 1)
    assert attempt.state == AttemptState.PAYMENT_SUCCESS
    await workflow.refresh_payment_status(attempt.id)

    inventory.confirm_gate.set()
    await settle(attempt)

    assert attempt.state == AttemptState.CONFIRMED
    assert len(inventory.confirm_calls) == 1
    assert len(gateway.status_calls) == 1


@pytest.mark.asyncio
async def test_confirmation_failure_is_an_anomaly(workflow, gateway, inventory):
    gateway.statuses = ["successful"]
    inventory.confirm_error = InventoryUnavailable("Failed to confirm booking bk-1: boom")
    attempt = await workflow.submit_booking(make_request())

    await settle(attempt)

    assert attempt.state == AttemptState.PAYMENT_SUCCESS
    assert attempt.ticket_number is None
    assert "boom" in attempt.confirmation_error
    assert len(inventory.confirm_calls) == 1
    assert [e.kind for e in workflow.events_for(attempt.id)][-1] == "anomaly"

    await workflow.refresh_payment_status(attempt.id)
    assert len(gateway.status_calls) == 1
    assert len(inventory.confirm_calls) == 1
    with pytest.raises(InvalidTransition):
        await workflow.restart_attempt(attempt.id)

    view = workflow.describe(attempt)
    assert view.confirmation_error
    assert "support" in view.message.lower()


@pytest.mark.asyncio
async def test_confirmation_without_ticket_is_an_anomaly(workflow, gateway, inventory):
    gateway.statuses = ["successful"]

    async def confirm_without_ticket(booking_id, payment_reference):
        inventory.confirm_calls.append((booking_id, payment_reference))
        return BookingRecord(booking_id=booking_id)

    inventory.confirm_booking = confirm_without_ticket
    attempt = await workflow.submit_booking(make_request())

    await settle(attempt)

    assert attempt.state == AttemptState.PAYMENT_SUCCESS
    assert attempt.confirmation_error == "confirmation returned no ticket number"
    assert len(inventory.confirm_calls) == 1


@pytest.mark.asyncio
async def test_confirm_is_dispatched_once_per_attempt(workflow, inventory):
    attempt = await workflow.submit_booking(make_request())
    await workflow.poller.stop(attempt)
    async with attempt.lock:
        workflow.machine.transition(attempt, AttemptState.PAYMENT_SUCCESS)
        attempt.confirm_dispatched = True
        await workflow.confirmation.confirm(attempt)

    assert inventory.confirm_calls == []
    assert attempt.state == AttemptState.PAYMENT_SUCCESS


@pytest.mark.asyncio
async def test_cancelled_refresh_still_confirms(parked_workflow, gateway, inventory):
    gateway.statuses = ["successful"]
    inventory.confirm_gate = asyncio.Event()
    attempt = await parked_workflow.submit_booking(make_request())

    refresh = asyncio.create_task(parked_workflow.refresh_payment_status(attempt.id))
    await wait_for(lambda: len(inventory.confirm_calls) == 1)
    # the HTTP client goes away while the booking service is confirming
    refresh.cancel()
    await asyncio.wait({refresh})
    assert refresh.cancelled()

    inventory.confirm_gate.set()
    await attempt.confirm_task

    assert attempt.state == AttemptState.CONFIRMED
    assert attempt.ticket_number == "TKT-bk-1"
    assert attempt.confirmation_error is None
    assert attempt.poll_task.done()
    assert not attempt.lock.locked()
    assert len(inventory.confirm_calls) == 1


@pytest.mark.asyncio
async def test_interrupted_confirmation_is_an_anomaly(parked_workflow, gateway, inventory):
    gateway.statuses = ["successful"]
    inventory.confirm_gate = asyncio.Event()
    attempt = await parked_workflow.submit_booking(make_request())

    refresh = asyncio.create_task(parked_workflow.refresh_payment_status(attempt.id))
    await wait_for(lambda: len(inventory.confirm_calls) == 1)
    attempt.confirm_task.cancel()
    await asyncio.wait({refresh, attempt.confirm_task})

    assert attempt.state == AttemptState.PAYMENT_SUCCESS
    assert attempt.ticket_number is None
    assert "interrupted" in attempt.confirmation_error
    assert parked_workflow.events_for(attempt.id)[-1].kind == "anomaly"
    assert "support" in parked_workflow.describe(attempt).message.lower()
