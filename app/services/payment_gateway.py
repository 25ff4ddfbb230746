"""
Mobile money payment gateway service
Handles payment initiation and status checks
"""
from typing import Optional
import requests

from app.core.config import settings
from app.core.exceptions import GatewayUnavailable, TransientPollError
from app.core.logging_config import logger
from app.schemas.payment import GatewayPaymentStatus, PaymentInitiation, PaymentStatusReport
from app.services.api_client import ApiError, JsonApiClient
from app.utils.tasks import run_blocking


class MobileMoneyGateway:
    """Mobile money gateway reachable only through initiate + poll-status calls"""
    
    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        session: Optional[requests.Session] = None
    ):
        api_key = api_key if api_key is not None else settings.PAYMENT_GATEWAY_API_KEY
        if not api_key:
            logger.warning("Payment gateway API key not configured. Mobile money payments may not work.")
        self.api = JsonApiClient(
            base_url or settings.payment_gateway_base_url,
            headers={"X-API-Key": api_key} if api_key else None,
            session=session,
        )
        logger.info(f"Mobile money gateway initialized with environment: {settings.PAYMENT_GATEWAY_ENVIRONMENT}")
    
    async def initiate_payment(self, booking_id: str, phone: str, amount: float) -> str:
        """
        Ask the gateway to push a payment prompt to the customer's phone
        
        Returns:
            Gateway payment reference
            
        Raises:
            GatewayUnavailable: the gateway could not accept the request
        """
        payload = {
            "externalId": booking_id,
            "phoneNumber": phone,
            "amount": str(amount),
            "currency": settings.CURRENCY,
        }
        try:
            data = await run_blocking(self.api.request, "POST", "/payments", json=payload)
            initiation = PaymentInitiation.model_validate(data)
        except (requests.RequestException, ApiError, ValueError) as e:
            logger.error(f"Payment initiation failed for booking {booking_id}: {e}")
            raise GatewayUnavailable("The payment service is unavailable. Please try again shortly.") from e
        logger.info(f"Payment {initiation.payment_reference} initiated for booking {booking_id}")
        return initiation.payment_reference
    
    async def get_payment_status(self, payment_reference: str) -> GatewayPaymentStatus:
        """
        Get payment status from the gateway
        
        Raises:
            TransientPollError: the status could not be read this time
        """
        try:
            data = await run_blocking(self.api.request, "GET", f"/payments/{payment_reference}/status")
            report = PaymentStatusReport.model_validate(data)
        except (requests.RequestException, ApiError, ValueError) as e:
            raise TransientPollError(f"Status check for {payment_reference} failed: {e}") from e
        return report.normalized
    
    def close(self) -> None:
        self.api.close()
