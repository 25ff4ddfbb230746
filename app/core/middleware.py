"""
Request logging middleware
"""
from typing import Callable
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response
import time

from app.core.logging_config import logger


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs method, path, status code and duration of every request"""
    
    EXEMPTED_PATHS = {"/health"}
    
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in self.EXEMPTED_PATHS:
            return await call_next(request)
        
        started = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - started) * 1000
        logger.info(
            f"{request.method} {request.url.path} -> {response.status_code} ({duration_ms:.1f} ms)"
        )
        return response
