import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from sqlalchemy.orm import Session

from tutorhub.api.deps import get_mailer, get_meeting_provider, get_payment_gateway
from tutorhub.core.config import settings
from tutorhub.core.exceptions import SignatureError
from tutorhub.core.metrics import WEBHOOK_EVENTS
from tutorhub.db.session import get_db
from tutorhub.schemas.booking import WebhookAckResponse
from tutorhub.services.fulfillment_service import process_payment_event
from tutorhub.services.meeting_provider import MeetingProvider
from tutorhub.services.notification_service import Mailer
from tutorhub.services.payment_gateway import PaymentGateway

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


async def raw_body(request: Request) -> bytes:
    return await request.body()


@router.post("/stripe", response_model=WebhookAckResponse, status_code=status.HTTP_200_OK)
def stripe_webhook(
    body: bytes = Depends(raw_body),
    stripe_signature: Annotated[str | None, Header(alias="Stripe-Signature")] = None,
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    meeting_provider: MeetingProvider = Depends(get_meeting_provider),
    mailer: Mailer = Depends(get_mailer),
) -> WebhookAckResponse:
    if not settings.stripe_webhook_secret:
        logger.error("stripe_webhook_secret_missing")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook secret is not configured",
        )

    try:
        event = gateway.verify_webhook(body, stripe_signature)
    except SignatureError:
        WEBHOOK_EVENTS.labels(event_type="unknown", result="rejected").inc()
        logger.warning("stripe_webhook_rejected signature_present=%s", stripe_signature is not None)
        raise

    logger.info("stripe_webhook_received event_id=%s event_type=%s", event.get("id"), event.get("type"))
    outcome = process_payment_event(db, event, meeting_provider, mailer)
    if outcome is not None:
        logger.info("stripe_webhook_processed event_id=%s outcome=%s", event.get("id"), outcome.value)
    return WebhookAckResponse()
