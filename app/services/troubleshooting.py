"""
User-facing guidance for each booking attempt state
"""
from app.core.config import settings
from app.schemas.booking import AttemptState, TroubleshootingGuide

MOBILE_MONEY_GUIDE = TroubleshootingGuide(
    title="Your mobile money payment is taking longer than usual",
    likely_causes=[
        "The phone number entered is wrong or belongs to someone else",
        "The mobile money line is inactive or not registered",
        "Insufficient balance on the mobile money account",
        "Network delay between your operator and the payment gateway",
    ],
    remediation_steps=[
        "Check your phone for a payment prompt and enter your PIN",
        "Confirm the phone number on the booking form is correct",
        "Make sure your mobile money wallet has enough balance for the fare and fees",
        "Dial your operator's mobile money menu to confirm the line is active",
        "Press 'Check now' once you have approved the payment",
        "If nothing arrives, use 'Try Again' to start a new payment",
    ],
)

_STATE_MESSAGES = {
    AttemptState.FORM: "Fill in the passenger details and confirm the booking.",
    AttemptState.PAYMENT_PENDING: "Waiting for payment. Approve the prompt sent to your phone.",
    AttemptState.PAYMENT_SUCCESS: "Payment received. Confirming your booking...",
    AttemptState.PAYMENT_FAILED: "The payment was declined. No seat was booked. Press 'Try Again' to retry.",
    AttemptState.PAYMENT_TIMEOUT: (
        "We did not receive a payment confirmation in time. "
        "Check the troubleshooting tips and press 'Try Again'."
    ),
    AttemptState.CONFIRMED: "Booking confirmed! Present your ticket number when boarding.",
}


def anomaly_message() -> str:
    return (
        "Your payment succeeded but we could not confirm the booking. "
        f"Please contact {settings.SUPPORT_CONTACT} with your payment reference. "
        "Do not pay again."
    )


def message_for(state: AttemptState, confirmation_error: bool = False) -> str:
    if confirmation_error:
        return anomaly_message()
    return _STATE_MESSAGES[state]
