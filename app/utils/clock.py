"""
Time source for the booking workflow
"""
import asyncio
import time
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SystemClock:
    """Wall clock plus monotonic readings for deadlines"""
    
    def now(self) -> datetime:
        return utcnow()
    
    def monotonic(self) -> float:
        return time.monotonic()
    
    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(max(0.0, seconds))
    
    async def wait_for(self, awaitable, seconds: float):
        """Await with an upper bound; raises asyncio.TimeoutError when it runs out"""
        return await asyncio.wait_for(awaitable, timeout=max(0.0, seconds))
