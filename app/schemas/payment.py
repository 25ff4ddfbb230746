"""
Pydantic schemas for the mobile money gateway
"""
from enum import Enum
from typing import Optional
from pydantic import AliasChoices, BaseModel, Field

_SUCCESS_VALUES = {"successful", "success", "completed", "paid"}
_FAILURE_VALUES = {"failed", "failure", "rejected", "cancelled", "declined"}


class GatewayPaymentStatus(str, Enum):
    """Normalised payment status reported by the gateway"""
    PENDING = "pending"
    SUCCESSFUL = "successful"
    FAILED = "failed"
    
    @classmethod
    def normalize(cls, raw: Optional[str]) -> "GatewayPaymentStatus":
        value = (raw or "").strip().lower()
        if value in _SUCCESS_VALUES:
            return cls.SUCCESSFUL
        if value in _FAILURE_VALUES:
            return cls.FAILED
        return cls.PENDING
    
    @property
    def is_terminal(self) -> bool:
        return self is not GatewayPaymentStatus.PENDING


class PaymentInitiation(BaseModel):
    """Schema for gateway initiation response"""
    payment_reference: str = Field(
        validation_alias=AliasChoices("paymentReference", "reference", "transactionId", "payment_reference")
    )
    status: Optional[str] = None


class PaymentStatusReport(BaseModel):
    """Schema for gateway status response"""
    status: Optional[str] = None
    message: Optional[str] = None
    
    @property
    def normalized(self) -> GatewayPaymentStatus:
        return GatewayPaymentStatus.normalize(self.status)
