import asyncio
from datetime import datetime, timezone

import pytest
from fastapi import WebSocketDisconnect

from app.schemas.booking import AttemptEvent, AttemptState
from app.utils import websocket_manager
from app.utils.websocket_manager import AttemptEventManager


def make_event(attempt_id="a1", to_state=AttemptState.PAYMENT_PENDING, kind="transition"):
    return AttemptEvent(
        attempt_id=attempt_id,
        kind=kind,
        from_state=AttemptState.FORM,
        to_state=to_state,
        occurred_at=datetime(2026, 3, 2, tzinfo=timezone.utc),
    )


class RecordingWebSocket:
    """Accepts ``limit`` messages, then behaves like a closed socket"""

    def __init__(self, limit):
        self.limit = limit
        self.sent = []

    async def send_json(self, data):
        if len(self.sent) >= self.limit:
            raise WebSocketDisconnect(code=1001)
        self.sent.append(data)


def test_history_is_per_attempt_and_capped(monkeypatch):
    monkeypatch.setattr(websocket_manager, "MAX_HISTORY", 3)
    manager = AttemptEventManager()
    for _ in range(5):
        manager.publish(make_event("a1"))
    manager.publish(make_event("a2"))

    assert len(manager.history("a1")) == 3
    assert len(manager.history("a2")) == 1

    manager.forget("a1")
    assert manager.history("a1") == []


@pytest.mark.asyncio
async def test_subscribers_receive_new_events():
    manager = AttemptEventManager()
    queue = manager.subscribe("a1")

    manager.publish(make_event("a1", AttemptState.PAYMENT_FAILED))
    manager.publish(make_event("a2"))

    event = queue.get_nowait()
    assert event.to_state == AttemptState.PAYMENT_FAILED
    assert queue.empty()

    manager.unsubscribe("a1", queue)
    manager.publish(make_event("a1"))
    assert queue.empty()


@pytest.mark.asyncio
async def test_stream_replays_history_then_forwards_live_events():
    manager = AttemptEventManager()
    manager.publish(make_event("a1"))
    websocket = RecordingWebSocket(limit=2)

    streaming = asyncio.create_task(manager.stream_to(websocket, "a1"))
    await asyncio.sleep(0)
    manager.publish(make_event("a1", AttemptState.CONFIRMED))
    manager.publish(make_event("a1", AttemptState.CONFIRMED, kind="seats"))

    with pytest.raises(WebSocketDisconnect):
        await streaming

    assert [m["toState"] for m in websocket.sent] == ["PAYMENT_PENDING", "CONFIRMED"]
    assert websocket.sent[0]["attemptId"] == "a1"
    # the subscription is dropped once the socket goes away
    manager.publish(make_event("a1"))
