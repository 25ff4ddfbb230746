"""
Booking workflow error taxonomy
"""
from typing import Dict, Optional


class BookingError(Exception):
    """Base class for all booking workflow errors"""
    
    code = "booking_error"
    
    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(BookingError):
    """Booking form input is missing or malformed"""
    
    code = "validation_error"
    
    def __init__(self, errors: Dict[str, str]):
        self.errors = errors
        details = "; ".join(f"{field}: {reason}" for field, reason in errors.items())
        super().__init__(f"Invalid booking details - {details}")


class SeatUnavailable(BookingError):
    """No seats left on the requested trip"""
    
    code = "seat_unavailable"
    
    def __init__(self, trip_id: str, message: Optional[str] = None):
        self.trip_id = trip_id
        super().__init__(message or f"No seats available on trip {trip_id}. Please search again.")


class GatewayUnavailable(BookingError):
    """
    Payment initiation failed. Normally nothing was booked; when the booking
    row could not be released, ``unreleased_booking_id`` names it.
    """
    
    code = "gateway_unavailable"
    
    def __init__(self, message: str, unreleased_booking_id: Optional[str] = None):
        self.unreleased_booking_id = unreleased_booking_id
        super().__init__(message)


class TransientPollError(BookingError):
    """A single payment status check failed (network, bad payload)"""

    code = "transient_poll_error"


class ConfirmationAnomaly(BookingError):
    """Gateway reported success but the booking could not be confirmed"""
    
    code = "confirmation_anomaly"
    
    def __init__(self, payment_reference: str, reason: str):
        self.payment_reference = payment_reference
        self.reason = reason
        super().__init__(
            f"Payment {payment_reference} succeeded but booking confirmation failed: {reason}"
        )


class AttemptNotFound(BookingError):
    code = "attempt_not_found"
    
    def __init__(self, attempt_id: str):
        self.attempt_id = attempt_id
        super().__init__(f"Booking attempt {attempt_id} not found")


class InvalidTransition(BookingError):
    """Raised when an illegal booking state transition is attempted"""
    
    code = "invalid_transition"
    
    def __init__(self, from_state: str, to_state: str):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Illegal state transition attempted: {from_state} -> {to_state}")


class InventoryUnavailable(BookingError):
    """The trip inventory / booking API could not be reached or failed"""
    
    code = "inventory_unavailable"
