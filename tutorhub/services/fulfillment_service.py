import logging
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any
from uuid import uuid4

from sqlalchemy import or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tutorhub.core.config import settings
from tutorhub.core.exceptions import UpstreamError
from tutorhub.core.metrics import FULFILLMENT_OUTCOMES, FULFILLMENT_STEP_FAILURES, WEBHOOK_EVENTS
from tutorhub.db.models import Booking, BookingStatus, User
from tutorhub.services.availability_service import remove_slot
from tutorhub.services.meeting_provider import MeetingDetails, MeetingProvider
from tutorhub.services.notification_service import Mailer, send_booking_confirmation
from tutorhub.services.payment_gateway import CHECKOUT_COMPLETED_EVENT

logger = logging.getLogger(__name__)

# Statuses a booking can only reach after its payment was fulfilled once.
FULFILLED_STATUSES = (
    BookingStatus.SCHEDULED.value,
    BookingStatus.RESCHEDULE_REQUESTED.value,
    BookingStatus.COMPLETED.value,
)


class FulfillmentOutcome(str, Enum):
    FULFILLED = "fulfilled"
    ALREADY_SCHEDULED = "already_scheduled"
    BOOKING_NOT_FOUND = "booking_not_found"
    MISSING_PARTICIPANTS = "missing_participants"
    IN_PROGRESS = "in_progress"


def _finish(outcome: FulfillmentOutcome) -> FulfillmentOutcome:
    FULFILLMENT_OUTCOMES.labels(outcome=outcome.value).inc()
    return outcome


def _reconcile_availability(db: Session, booking: Booking, start_time: str | None) -> None:
    if not start_time:
        logger.warning("fulfillment_slot_skipped booking_id=%s reason=missing_start_time", booking.id)
        return
    try:
        removed = remove_slot(db, tutor_id=booking.tutor_id, on=booking.session_date, start_time=start_time)
    except SQLAlchemyError:
        db.rollback()
        FULFILLMENT_STEP_FAILURES.labels(step="availability").inc()
        logger.exception(
            "fulfillment_slot_removal_failed booking_id=%s tutor_id=%s start_time=%s",
            booking.id,
            booking.tutor_id,
            start_time,
        )
        return
    if not removed:
        logger.warning(
            "fulfillment_slot_not_found booking_id=%s tutor_id=%s start_time=%s",
            booking.id,
            booking.tutor_id,
            start_time,
        )


def _provision_meeting(
    meeting_provider: MeetingProvider,
    booking: Booking,
    tutor: User,
) -> MeetingDetails | None:
    try:
        return meeting_provider.create_meeting(booking, tutor)
    except UpstreamError as exc:
        FULFILLMENT_STEP_FAILURES.labels(step="meeting").inc()
        logger.error("fulfillment_meeting_failed booking_id=%s error=%s", booking.id, exc.message)
        return None


def _claim(db: Session, booking_id: int) -> str | None:
    """Take ownership of fulfillment for one booking, or return None if another delivery holds it."""
    token = uuid4().hex
    now = datetime.now(UTC)
    stale_before = now - timedelta(seconds=settings.fulfillment_claim_ttl_seconds)
    result = db.execute(
        update(Booking)
        .where(
            Booking.id == booking_id,
            Booking.status.notin_(FULFILLED_STATUSES),
            or_(
                Booking.fulfillment_claim_token.is_(None),
                Booking.fulfillment_claimed_at < stale_before,
            ),
        )
        .values(fulfillment_claim_token=token, fulfillment_claimed_at=now)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return token if result.rowcount == 1 else None


def fulfill_booking(
    db: Session,
    booking_id: int,
    start_time: str | None,
    meeting_provider: MeetingProvider,
    mailer: Mailer,
) -> FulfillmentOutcome:
    """Turn a paid ``pending_payment`` booking into a scheduled session.

    Safe to call any number of times for the same booking, concurrently or
    not. A delivery first claims the booking; only the claim holder removes
    the slot, creates a meeting and commits the status, so at most one
    meeting exists per booking. Concurrent deliveries that find a live
    claim report ``in_progress``. A claim older than
    ``fulfillment_claim_ttl_seconds`` can be taken over by a later delivery.
    Steps after the claim fail independently and are never compensated;
    failures are logged and counted for manual follow-up.
    """
    booking = db.get(Booking, booking_id)
    if not booking:
        logger.error("fulfillment_booking_not_found booking_id=%s", booking_id)
        return _finish(FulfillmentOutcome.BOOKING_NOT_FOUND)

    if booking.status in FULFILLED_STATUSES:
        logger.info("fulfillment_skipped booking_id=%s status=%s", booking.id, booking.status)
        return _finish(FulfillmentOutcome.ALREADY_SCHEDULED)

    student = db.get(User, booking.student_id)
    tutor = db.get(User, booking.tutor_id)
    if not student or not tutor:
        logger.critical(
            "fulfillment_missing_participants booking_id=%s student_found=%s tutor_found=%s",
            booking.id,
            student is not None,
            tutor is not None,
        )
        return _finish(FulfillmentOutcome.MISSING_PARTICIPANTS)

    claim_token = _claim(db, booking.id)
    if claim_token is None:
        db.refresh(booking)
        if booking.status in FULFILLED_STATUSES:
            logger.info("fulfillment_skipped booking_id=%s status=%s", booking.id, booking.status)
            return _finish(FulfillmentOutcome.ALREADY_SCHEDULED)
        logger.info("fulfillment_claimed_elsewhere booking_id=%s", booking.id)
        return _finish(FulfillmentOutcome.IN_PROGRESS)

    _reconcile_availability(db, booking, start_time)
    meeting = _provision_meeting(meeting_provider, booking, tutor)

    result = db.execute(
        update(Booking)
        .where(
            Booking.id == booking.id,
            Booking.status.notin_(FULFILLED_STATUSES),
            Booking.fulfillment_claim_token == claim_token,
        )
        .values(
            status=BookingStatus.SCHEDULED.value,
            meeting_url=meeting.join_url if meeting else None,
            meeting_start_url=meeting.start_url if meeting else None,
            meeting_id=meeting.meeting_id if meeting else None,
            meeting_password=meeting.password if meeting else None,
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()

    if result.rowcount != 1:
        if meeting:
            FULFILLMENT_STEP_FAILURES.labels(step="orphan_meeting").inc()
            logger.warning(
                "fulfillment_orphan_meeting booking_id=%s meeting_id=%s",
                booking.id,
                meeting.meeting_id,
            )
        logger.info("fulfillment_lost_race booking_id=%s", booking.id)
        return _finish(FulfillmentOutcome.ALREADY_SCHEDULED)

    db.refresh(booking)
    logger.info(
        "fulfillment_scheduled booking_id=%s meeting_id=%s",
        booking.id,
        booking.meeting_id,
    )

    try:
        send_booking_confirmation(mailer, booking, student, tutor)
    except UpstreamError as exc:
        FULFILLMENT_STEP_FAILURES.labels(step="notification").inc()
        logger.error("fulfillment_notification_failed booking_id=%s error=%s", booking.id, exc.message)

    return _finish(FulfillmentOutcome.FULFILLED)


def process_payment_event(
    db: Session,
    event: dict[str, Any],
    meeting_provider: MeetingProvider,
    mailer: Mailer,
) -> FulfillmentOutcome | None:
    """Dispatch a verified payment event. Returns None for events that are not acted on."""
    event_type = event.get("type", "unknown")
    if event_type != CHECKOUT_COMPLETED_EVENT:
        WEBHOOK_EVENTS.labels(event_type=event_type, result="ignored").inc()
        logger.info("payment_event_ignored event_type=%s event_id=%s", event_type, event.get("id"))
        return None

    session = (event.get("data") or {}).get("object") or {}
    metadata = session.get("metadata") or {}
    try:
        booking_id = int(metadata["booking_id"])
    except (KeyError, TypeError, ValueError):
        WEBHOOK_EVENTS.labels(event_type=event_type, result="invalid_metadata").inc()
        logger.error(
            "payment_event_missing_booking event_id=%s session_id=%s",
            event.get("id"),
            session.get("id"),
        )
        return None

    WEBHOOK_EVENTS.labels(event_type=event_type, result="processed").inc()
    return fulfill_booking(
        db,
        booking_id=booking_id,
        start_time=metadata.get("start_time"),
        meeting_provider=meeting_provider,
        mailer=mailer,
    )
