"""
Per-attempt event fan-out for progress displays (websocket and polling clients)
"""
from typing import Dict, List, Set
from collections import defaultdict
from fastapi import WebSocket
import asyncio

from app.core.logging_config import logger
from app.schemas.booking import AttemptEvent

MAX_HISTORY = 200


class AttemptEventManager:
    """Keeps event history per attempt and pushes new events to subscribers"""
    
    def __init__(self):
        self._history: Dict[str, List[AttemptEvent]] = defaultdict(list)
        self._subscribers: Dict[str, Set[asyncio.Queue]] = defaultdict(set)
    
    def publish(self, event: AttemptEvent) -> None:
        """Record an event and hand it to every subscriber of the attempt"""
        history = self._history[event.attempt_id]
        history.append(event)
        if len(history) > MAX_HISTORY:
            del history[: len(history) - MAX_HISTORY]
        for queue in list(self._subscribers.get(event.attempt_id, ())):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning(f"Dropping event for slow subscriber of attempt {event.attempt_id}")
    
    def history(self, attempt_id: str) -> List[AttemptEvent]:
        return list(self._history.get(attempt_id, ()))
    
    def subscribe(self, attempt_id: str, maxsize: int = 100) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._subscribers[attempt_id].add(queue)
        return queue
    
    def unsubscribe(self, attempt_id: str, queue: asyncio.Queue) -> None:
        subscribers = self._subscribers.get(attempt_id)
        if not subscribers:
            return
        subscribers.discard(queue)
        if not subscribers:
            self._subscribers.pop(attempt_id, None)
    
    def forget(self, attempt_id: str) -> None:
        """Drop history for a discarded attempt; live subscribers keep their queues"""
        self._history.pop(attempt_id, None)
    
    async def stream_to(self, websocket: WebSocket, attempt_id: str) -> None:
        """Replay history, then forward live events until the socket goes away"""
        queue = self.subscribe(attempt_id)
        try:
            for event in self.history(attempt_id):
                await websocket.send_json(event.model_dump(mode="json", by_alias=True))
            while True:
                event = await queue.get()
                await websocket.send_json(event.model_dump(mode="json", by_alias=True))
        finally:
            self.unsubscribe(attempt_id, queue)
