"""
Shared JSON-over-HTTP plumbing for external collaborators
"""
from typing import Any, Dict, Optional
import requests

from app.core.config import settings
from app.core.logging_config import logger


class ApiError(Exception):
    """Non-2xx response from a collaborator API"""
    
    def __init__(self, status_code: int, message: str, payload: Any = None):
        self.status_code = status_code
        self.payload = payload
        super().__init__(f"HTTP {status_code}: {message}")
        self.message = message


class JsonApiClient:
    """Blocking JSON client; async callers go through app.utils.tasks.run_blocking"""
    
    def __init__(
        self,
        base_url: str,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECONDS
        self.session = session or requests.Session()
        self.session.headers.update({"Content-Type": "application/json", "Accept": "application/json"})
        if headers:
            self.session.headers.update(headers)
    
    def request(self, method: str, path: str, **kwargs: Any) -> Any:
        """
        Send a request and return the decoded body
        
        Raises:
            requests.RequestException: transport level failure
            ApiError: the collaborator answered with an error status
        """
        url = f"{self.base_url}{path}"
        kwargs.setdefault("timeout", self.timeout)
        logger.debug(f"{method} {url}")
        response = self.session.request(method, url, **kwargs)
        
        content_type = response.headers.get("content-type", "")
        if "application/json" in content_type:
            try:
                data = response.json()
            except ValueError:
                data = response.text
        else:
            data = response.text
        
        if not response.ok:
            message = data.get("message") if isinstance(data, dict) else None
            raise ApiError(response.status_code, message or str(data) or "Request failed", data)
        return data
    
    def close(self) -> None:
        self.session.close()
