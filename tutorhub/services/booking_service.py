import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tutorhub.core.config import settings
from tutorhub.core.datetimes import ensure_utc, is_time_of_day, normalize_time_of_day
from tutorhub.core.exceptions import (
    AuthorizationError,
    DuplicateError,
    InvalidStateError,
    NotFoundError,
    UpstreamError,
    ValidationError,
)
from tutorhub.core.metrics import CHECKOUT_SESSIONS
from tutorhub.db.models import Booking, BookingStatus, Feedback, RequesterRole, TutorProfile, User
from tutorhub.services.availability_service import has_slot
from tutorhub.services.notification_service import Mailer, send_reschedule_request
from tutorhub.services.payment_gateway import CheckoutSession, PaymentGateway, to_minor_units

logger = logging.getLogger(__name__)

BOOKING_NOT_FOUND_DETAIL = "Booking not found"
SLOT_UNAVAILABLE_DETAIL = "The selected time slot is not available"
FEEDBACK_ALREADY_SUBMITTED_DETAIL = "Feedback already submitted for this booking"
RATING_RANGE = (1, 5)

MY_CLASSES_STATUSES = (
    BookingStatus.SCHEDULED.value,
    BookingStatus.COMPLETED.value,
    BookingStatus.RESCHEDULE_REQUESTED.value,
)
FEEDBACK_STATUSES = (BookingStatus.SCHEDULED.value, BookingStatus.COMPLETED.value)


@dataclass
class MyClasses:
    upcoming: list[Booking]
    past: list[Booking]


def _get_booking(db: Session, booking_id: int) -> Booking:
    booking = db.get(Booking, booking_id)
    if not booking:
        raise NotFoundError(BOOKING_NOT_FOUND_DETAIL)
    return booking


def _feedback_exists(db: Session, booking_id: int) -> bool:
    return db.scalar(select(Feedback.id).where(Feedback.booking_id == booking_id)) is not None


def start_checkout(
    db: Session,
    student: User,
    tutor_id: int,
    subject: str,
    session_date_time: datetime,
    start_time: str,
    gateway: PaymentGateway,
) -> CheckoutSession:
    if tutor_id == student.id:
        raise ValidationError("You cannot book a session with yourself")

    tutor = db.get(User, tutor_id)
    if not tutor:
        raise NotFoundError("Tutor not found")
    profile = db.scalar(select(TutorProfile).where(TutorProfile.user_id == tutor_id))
    if not profile:
        raise NotFoundError("Tutor profile not found")

    if not profile.hourly_rate or profile.hourly_rate <= 0:
        raise ValidationError("Tutor hourly rate is not set")

    if not is_time_of_day(start_time):
        raise ValidationError("Start time must be in HH:MM format")
    session_date = ensure_utc(session_date_time)
    start_time = normalize_time_of_day(start_time)
    if f"{session_date:%H:%M}" != start_time:
        raise ValidationError(
            "Session time does not match the selected start time",
            detail={"session_time": f"{session_date:%H:%M}", "start_time": start_time},
        )
    if not has_slot(db, tutor_id, session_date, start_time):
        raise ValidationError(SLOT_UNAVAILABLE_DETAIL)

    booking = Booking(
        student_id=student.id,
        tutor_id=tutor.id,
        subject=subject,
        session_date=session_date,
        status=BookingStatus.PENDING_PAYMENT.value,
    )
    db.add(booking)
    db.commit()
    db.refresh(booking)

    try:
        checkout = gateway.create_checkout_session(
            booking=booking,
            tutor=tutor,
            unit_amount=to_minor_units(profile.hourly_rate),
            success_url=f"{settings.app_base_url}/my-classes?booking_success=true&booking_id={booking.id}",
            cancel_url=f"{settings.app_base_url}/tutors/{tutor.id}?booking_cancelled=true",
            metadata={
                "booking_id": str(booking.id),
                "student_id": str(student.id),
                "tutor_id": str(tutor.id),
                "start_time": start_time,
            },
            customer_email=student.email,
        )
    except UpstreamError:
        CHECKOUT_SESSIONS.labels(result="failed").inc()
        booking.cancel()
        db.commit()
        logger.error("checkout_session_failed booking_id=%s", booking.id)
        raise

    booking.payment_session_id = checkout.session_id
    db.commit()
    CHECKOUT_SESSIONS.labels(result="created").inc()
    logger.info(
        "checkout_session_created booking_id=%s session_id=%s tutor_id=%s",
        booking.id,
        checkout.session_id,
        tutor.id,
    )
    return checkout


def request_reschedule(
    db: Session,
    booking_id: int,
    requester_id: int,
    reason: str,
    mailer: Mailer,
) -> Booking:
    booking = _get_booking(db, booking_id)

    role = booking.participant_role(requester_id)
    if role is None:
        raise AuthorizationError("Only the booking's student or tutor can request a reschedule")

    if not booking.can_transition_to(BookingStatus.RESCHEDULE_REQUESTED):
        raise InvalidStateError(
            "Only scheduled bookings can be rescheduled",
            detail={"status": booking.status},
        )

    reason = reason.strip()
    if len(reason) < settings.reschedule_reason_min_length:
        raise ValidationError(
            f"Reason must be at least {settings.reschedule_reason_min_length} characters"
        )

    booking.request_reschedule(role)
    db.commit()
    db.refresh(booking)
    logger.info("reschedule_requested booking_id=%s requester_role=%s", booking.id, role.value)

    if role == RequesterRole.STUDENT:
        requester, recipient = booking.student, booking.tutor
    else:
        requester, recipient = booking.tutor, booking.student
    try:
        send_reschedule_request(mailer, booking, requester, recipient, reason)
    except UpstreamError as exc:
        logger.error("reschedule_notification_failed booking_id=%s error=%s", booking.id, exc.message)

    return booking


def submit_feedback(
    db: Session,
    booking_id: int,
    student_id: int,
    rating: int,
    comment: str | None = None,
) -> Feedback:
    booking = _get_booking(db, booking_id)

    if booking.student_id != student_id:
        raise AuthorizationError("Only the booking's student can leave feedback")

    if booking.status not in FEEDBACK_STATUSES:
        raise InvalidStateError(
            "Feedback can only be left for scheduled or completed sessions",
            detail={"status": booking.status},
        )

    low, high = RATING_RANGE
    if not low <= rating <= high:
        raise ValidationError(f"Rating must be between {low} and {high}", detail={"rating": rating})

    if booking.feedback_submitted or _feedback_exists(db, booking.id):
        raise DuplicateError(FEEDBACK_ALREADY_SUBMITTED_DETAIL)

    feedback = Feedback(
        booking_id=booking.id,
        student_id=booking.student_id,
        tutor_id=booking.tutor_id,
        subject=booking.subject,
        rating=rating,
        comment=comment,
    )
    db.add(feedback)
    booking.feedback_submitted = True
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        # only a concurrent insert for the same booking counts as a duplicate
        if _feedback_exists(db, booking_id):
            raise DuplicateError(FEEDBACK_ALREADY_SUBMITTED_DETAIL) from None
        raise

    db.refresh(feedback)
    logger.info("feedback_submitted booking_id=%s rating=%s", booking.id, rating)
    return feedback


def list_my_classes(db: Session, user_id: int, now: datetime | None = None) -> MyClasses:
    current_time = now or datetime.now(UTC)
    bookings = db.scalars(
        select(Booking)
        .where(
            or_(Booking.student_id == user_id, Booking.tutor_id == user_id),
            Booking.status.in_(MY_CLASSES_STATUSES),
        )
        .order_by(Booking.session_date, Booking.id)
    ).all()

    upcoming: list[Booking] = []
    past: list[Booking] = []
    for booking in bookings:
        started = ensure_utc(booking.session_date) < current_time
        if booking.status == BookingStatus.COMPLETED.value or (
            booking.status == BookingStatus.SCHEDULED.value and started
        ):
            past.append(booking)
        else:
            upcoming.append(booking)

    past.reverse()
    return MyClasses(upcoming=upcoming, past=past)


def get_booking_for_participant(db: Session, booking_id: int, user: User) -> Booking:
    booking = _get_booking(db, booking_id)
    if not user.is_admin and booking.participant_role(user.id) is None:
        raise AuthorizationError("Not enough permissions")
    return booking
