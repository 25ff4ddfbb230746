"""
Trip inventory and booking/ticketing API client
Searches trips, reads seat counters, creates, confirms and releases booking rows
"""
from typing import Any, List, Optional
from urllib.parse import quote
import requests

from app.core.config import settings
from app.core.exceptions import InventoryUnavailable, SeatUnavailable, ValidationError
from app.core.logging_config import logger
from app.schemas.booking import BookingRecord, BookingRequest
from app.schemas.trip import Trip, TripSearchCriteria
from app.services.api_client import ApiError, JsonApiClient
from app.utils.tasks import run_blocking


def _looks_like_seat_error(exc: ApiError) -> bool:
    text = (exc.message or "").lower()
    return exc.status_code == 409 or "seat" in text or "fully booked" in text


class TripInventoryClient:
    """Client for the transport API that owns trips, seats and booking rows"""
    
    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        session: Optional[requests.Session] = None
    ):
        token = token if token is not None else settings.TRANSPORT_API_TOKEN
        headers = {"Authorization": f"Bearer {token}"} if token else None
        self.api = JsonApiClient(base_url or settings.TRANSPORT_API_URL, headers=headers, session=session)
        logger.info(f"Trip inventory client initialized for {self.api.base_url}")
    
    async def _call(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            return await run_blocking(self.api.request, method, path, **kwargs)
        except requests.RequestException as e:
            logger.error(f"Transport API {method} {path} failed: {e}")
            raise InventoryUnavailable("The booking service is unavailable. Please try again shortly.") from e
    
    async def search_trips(self, criteria: TripSearchCriteria) -> List[Trip]:
        payload = criteria.model_dump(mode="json", by_alias=True, exclude_none=True)
        try:
            data = await self._call("POST", "/bookings/search", json=payload)
        except ApiError as e:
            raise InventoryUnavailable(f"Failed to search trips: {e.message}") from e
        return [Trip.model_validate(item) for item in data or []]
    
    async def get_trip(self, trip_id: str) -> Trip:
        try:
            data = await self._call("GET", f"/bookings/trips/{quote(trip_id)}")
        except ApiError as e:
            if e.status_code == 404:
                raise ValidationError({"tripId": f"trip {trip_id} does not exist"}) from e
            raise InventoryUnavailable(f"Failed to load trip {trip_id}: {e.message}") from e
        return Trip.model_validate(data)
    
    async def create_booking(self, request: BookingRequest) -> BookingRecord:
        """
        Create a booking row for one seat
        
        Raises:
            SeatUnavailable: the trip has no seats left
            ValidationError: the API rejected the passenger details
        """
        payload = {
            "dailyTripId": request.trip_id,
            "customerName": request.customer_name,
            "customerPhone": request.customer_phone,
            "paymentMethod": request.payment_method.value,
            "requiresPayment": request.requires_payment,
        }
        try:
            data = await self._call("POST", "/bookings", json=payload)
        except ApiError as e:
            if _looks_like_seat_error(e):
                raise SeatUnavailable(request.trip_id, e.message) from e
            if e.status_code in (400, 404, 422):
                raise ValidationError({"booking": e.message}) from e
            raise InventoryUnavailable(f"Failed to create booking: {e.message}") from e
        return BookingRecord.model_validate(data)
    
    async def confirm_booking(self, booking_id: str, payment_reference: str) -> BookingRecord:
        """Confirm a paid booking; the API treats repeats for one reference as no-ops"""
        try:
            data = await self._call(
                "POST",
                f"/bookings/{quote(booking_id)}/confirm-payment",
                json={"paymentReference": payment_reference},
            )
        except ApiError as e:
            raise InventoryUnavailable(f"Failed to confirm booking {booking_id}: {e.message}") from e
        return BookingRecord.model_validate(data)
    
    async def cancel_booking(self, booking_id: str, reason: str) -> None:
        try:
            await self._call("PUT", f"/bookings/{quote(booking_id)}/cancel", params={"reason": reason})
        except ApiError as e:
            raise InventoryUnavailable(f"Failed to cancel booking {booking_id}: {e.message}") from e
    
    def close(self) -> None:
        self.api.close()
