"""
Pydantic schemas for Booking operations
"""
from __future__ import annotations
from enum import Enum
from typing import Any, Dict, List, Optional
from datetime import datetime
from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.core.config import settings


class PaymentMethod(str, Enum):
    """Payment methods accepted at the booking desk"""
    CASH = "CASH"
    MOBILE_MONEY = "MOBILE_MONEY"
    CARD = "CARD"


class AttemptState(str, Enum):
    """Lifecycle states of one booking attempt"""
    FORM = "FORM"
    PAYMENT_PENDING = "PAYMENT_PENDING"
    PAYMENT_SUCCESS = "PAYMENT_SUCCESS"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    PAYMENT_TIMEOUT = "PAYMENT_TIMEOUT"
    CONFIRMED = "CONFIRMED"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, coerce_numbers_to_str=True)


class BookingRequest(CamelModel):
    """Booking form submission. Never mutated after creation."""
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True, str_strip_whitespace=True
    )
    
    trip_id: str = Field(default="", validation_alias=AliasChoices("dailyTripId", "tripId", "trip_id"))
    customer_name: str = ""
    customer_phone: str = ""
    payment_method: PaymentMethod = PaymentMethod.CASH
    caller_role: Optional[str] = None
    
    @property
    def is_staff(self) -> bool:
        return (self.caller_role or "") in settings.STAFF_ROLES
    
    @property
    def requires_payment(self) -> bool:
        """Only non-staff callers paying by mobile money go through the gateway"""
        return self.payment_method == PaymentMethod.MOBILE_MONEY and not self.is_staff


class BookingRecord(CamelModel):
    """Booking row as returned by the booking/ticketing API"""
    booking_id: str = Field(validation_alias=AliasChoices("id", "bookingId", "booking_id"))
    ticket_number: Optional[str] = None
    seat_number: Optional[str] = None
    price: Optional[float] = None
    payment_status: Optional[str] = None


class TroubleshootingGuide(CamelModel):
    """Checklist shown when a mobile money payment is slow or timed out"""
    title: str
    likely_causes: List[str]
    remediation_steps: List[str]


class AttemptEvent(CamelModel):
    """One entry of an attempt's progress stream"""
    attempt_id: str
    kind: str  # transition, troubleshooting, anomaly, seats
    from_state: Optional[AttemptState] = None
    to_state: Optional[AttemptState] = None
    message: Optional[str] = None
    occurred_at: datetime
    data: Dict[str, Any] = Field(default_factory=dict)


class BookingAttemptResponse(CamelModel):
    """Schema for booking attempt response"""
    id: str
    state: AttemptState
    trip_id: str
    payment_method: PaymentMethod
    requires_payment: bool
    booking_id: Optional[str] = None
    payment_reference: Optional[str] = None
    poll_attempt_count: int = 0
    ticket_number: Optional[str] = None
    seat_number: Optional[str] = None
    amount: Optional[float] = None
    currency: str = settings.CURRENCY
    available_seats: Optional[int] = None
    created_at: datetime
    last_polled_at: Optional[datetime] = None
    message: str
    can_restart: bool = False
    show_troubleshooting: bool = False
    troubleshooting: Optional[TroubleshootingGuide] = None
    confirmation_error: Optional[str] = None
