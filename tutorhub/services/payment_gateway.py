import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

import stripe

from tutorhub.core.datetimes import ensure_utc
from tutorhub.core.exceptions import SignatureError, UpstreamError
from tutorhub.db.models import Booking, User

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED_EVENT = "checkout.session.completed"


@dataclass(frozen=True)
class CheckoutSession:
    session_id: str
    url: str


def to_minor_units(amount: Decimal | float | int | str) -> int:
    """Convert a major-unit amount to integer cents, rounding half away from zero.

    Floats go through ``str`` first so 49.995 is treated as written rather than
    as its binary approximation 49.99499999...
    """
    value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    return int((value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class PaymentGateway(ABC):
    @abstractmethod
    def create_checkout_session(
        self,
        booking: Booking,
        tutor: User,
        unit_amount: int,
        success_url: str,
        cancel_url: str,
        metadata: dict[str, str],
        customer_email: str | None = None,
    ) -> CheckoutSession:
        raise NotImplementedError

    @abstractmethod
    def verify_webhook(self, raw_body: bytes, signature_header: str | None) -> dict[str, Any]:
        """Return the event as a plain dict or raise SignatureError."""
        raise NotImplementedError


class StripePaymentGateway(PaymentGateway):
    def __init__(
        self,
        secret_key: str,
        webhook_secret: str,
        currency: str = "usd",
        tolerance_seconds: int = 300,
    ) -> None:
        self._secret_key = secret_key
        self._webhook_secret = webhook_secret
        self._currency = currency
        self._tolerance_seconds = tolerance_seconds

    def create_checkout_session(
        self,
        booking: Booking,
        tutor: User,
        unit_amount: int,
        success_url: str,
        cancel_url: str,
        metadata: dict[str, str],
        customer_email: str | None = None,
    ) -> CheckoutSession:
        if not self._secret_key:
            raise UpstreamError("Payment provider is not configured")

        session_start = ensure_utc(booking.session_date)
        try:
            session = stripe.checkout.Session.create(
                api_key=self._secret_key,
                idempotency_key=f"checkout-booking-{booking.id}",
                mode="payment",
                payment_method_types=["card"],
                line_items=[
                    {
                        "price_data": {
                            "currency": self._currency,
                            "product_data": {
                                "name": f"Tutoring Session: {booking.subject}",
                                "description": (
                                    f"1-hour session with {tutor.name} on "
                                    f"{session_start:%b %d, %Y at %H:%M} UTC."
                                ),
                            },
                            "unit_amount": unit_amount,
                        },
                        "quantity": 1,
                    }
                ],
                success_url=success_url,
                cancel_url=cancel_url,
                metadata=metadata,
                client_reference_id=str(booking.id),
                customer_email=customer_email,
            )
        except stripe.StripeError as exc:
            logger.error("stripe_checkout_failed booking_id=%s error=%s", booking.id, exc)
            raise UpstreamError("Failed to create payment session") from exc

        return CheckoutSession(session_id=session.id, url=session.url)

    def verify_webhook(self, raw_body: bytes, signature_header: str | None) -> dict[str, Any]:
        if not signature_header:
            raise SignatureError("Missing Stripe-Signature header")
        try:
            stripe.Webhook.construct_event(
                raw_body,
                signature_header,
                self._webhook_secret,
                tolerance=self._tolerance_seconds,
            )
        except stripe.SignatureVerificationError as exc:
            raise SignatureError("Invalid webhook signature") from exc
        except ValueError as exc:
            raise SignatureError("Invalid webhook payload") from exc
        return json.loads(raw_body)
