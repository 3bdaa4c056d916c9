import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from tutorhub.core.exceptions import NotFoundError, UpstreamError, ValidationError
from tutorhub.db.models import TutorProfile, TutorStatus, User, UserRole
from tutorhub.schemas.tutor import TutorProfileUpsertRequest
from tutorhub.services.availability_service import replace_all_slots
from tutorhub.services.notification_service import (
    Mailer,
    send_tutor_application_received,
    send_tutor_status_update,
)

logger = logging.getLogger(__name__)

REJECTION_REASON_MIN_LENGTH = 10


def get_profile(db: Session, user_id: int) -> TutorProfile:
    profile = db.scalar(select(TutorProfile).where(TutorProfile.user_id == user_id))
    if not profile:
        raise NotFoundError("Tutor profile not found")
    return profile


def get_public_tutor(db: Session, tutor_id: int) -> tuple[User, TutorProfile]:
    tutor = db.get(User, tutor_id)
    if not tutor or not tutor.is_approved_tutor:
        raise NotFoundError("Tutor not found")
    return tutor, get_profile(db, tutor_id)


def save_tutor_profile(
    db: Session,
    user: User,
    payload: TutorProfileUpsertRequest,
    mailer: Mailer,
) -> TutorProfile:
    """Create or update the caller's profile and (re)submit it for review."""
    profile = db.scalar(select(TutorProfile).where(TutorProfile.user_id == user.id))
    if not profile:
        profile = TutorProfile(user_id=user.id)
        db.add(profile)

    profile.bio = payload.bio
    profile.hourly_rate = payload.hourly_rate
    profile.subjects = [subject.strip() for subject in payload.subjects if subject.strip()]
    profile.qualifications = [item.strip() for item in payload.qualifications if item.strip()]
    profile.experience_years = payload.experience_years
    profile.teaching_style = payload.teaching_style
    profile.is_online = payload.is_online
    profile.is_in_person = payload.is_in_person
    db.flush()

    if payload.availability is not None:
        replace_all_slots(db, user.id, payload.availability, commit=False)

    user.tutor_status = TutorStatus.PENDING.value
    user.rejection_reason = None
    db.commit()
    db.refresh(profile)
    logger.info("tutor_profile_saved user_id=%s profile_id=%s", user.id, profile.id)

    try:
        send_tutor_application_received(mailer, user)
    except UpstreamError as exc:
        logger.error("tutor_application_notification_failed user_id=%s error=%s", user.id, exc.message)
    return profile


def review_tutor_application(
    db: Session,
    tutor_id: int,
    status: str,
    rejection_reason: str | None,
    mailer: Mailer,
) -> User:
    applicant = db.get(User, tutor_id)
    if not applicant:
        raise NotFoundError("User not found")
    get_profile(db, tutor_id)

    if status == TutorStatus.APPROVED.value:
        applicant.role = UserRole.TUTOR.value
        applicant.tutor_status = TutorStatus.APPROVED.value
        applicant.rejection_reason = None
    else:
        reason = (rejection_reason or "").strip()
        if len(reason) < REJECTION_REASON_MIN_LENGTH:
            raise ValidationError(
                f"A rejection reason of at least {REJECTION_REASON_MIN_LENGTH} characters is required"
            )
        applicant.role = UserRole.STUDENT.value
        applicant.tutor_status = TutorStatus.REJECTED.value
        applicant.rejection_reason = reason

    db.commit()
    db.refresh(applicant)
    logger.info("tutor_application_reviewed user_id=%s status=%s", applicant.id, applicant.tutor_status)

    try:
        send_tutor_status_update(mailer, applicant)
    except UpstreamError as exc:
        logger.error("tutor_status_notification_failed user_id=%s error=%s", applicant.id, exc.message)
    return applicant
