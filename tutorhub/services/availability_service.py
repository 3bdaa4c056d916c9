import logging
from collections.abc import Iterable
from datetime import date, datetime

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from tutorhub.core.datetimes import (
    is_time_of_day,
    midnight_utc,
    minutes_since_midnight,
    normalize_time_of_day,
    utc_day_bounds,
)
from tutorhub.core.exceptions import NotFoundError, ValidationError
from tutorhub.db.models import AvailabilitySlot, TutorProfile
from tutorhub.schemas.tutor import SlotCreateRequest

logger = logging.getLogger(__name__)

INVALID_TIME_DETAIL = "Time must be a 24-hour HH:MM value"
DUPLICATE_SLOT_DETAIL = "A slot starting at this time already exists for this date"
PROFILE_NOT_FOUND_DETAIL = "Tutor profile not found"


def _get_profile(db: Session, tutor_id: int) -> TutorProfile:
    profile = db.scalar(select(TutorProfile).where(TutorProfile.user_id == tutor_id))
    if not profile:
        raise NotFoundError(PROFILE_NOT_FOUND_DETAIL)
    return profile


def _normalize_slot(slot: SlotCreateRequest) -> tuple[datetime, str, str]:
    if not is_time_of_day(slot.start_time) or not is_time_of_day(slot.end_time):
        raise ValidationError(INVALID_TIME_DETAIL)
    start_time = normalize_time_of_day(slot.start_time)
    end_time = normalize_time_of_day(slot.end_time)
    if minutes_since_midnight(end_time) <= minutes_since_midnight(start_time):
        raise ValidationError("end_time must be later than start_time")
    return midnight_utc(slot.date), start_time, end_time


def _find_slot_id(db: Session, profile_id: int, on: date | datetime, start_time: str) -> int | None:
    day_start, day_end = utc_day_bounds(midnight_utc(on))
    return db.scalar(
        select(AvailabilitySlot.id)
        .where(
            AvailabilitySlot.tutor_profile_id == profile_id,
            AvailabilitySlot.start_time == start_time,
            AvailabilitySlot.date >= day_start,
            AvailabilitySlot.date <= day_end,
        )
        .order_by(AvailabilitySlot.id)
        .limit(1)
    )


def list_slots(db: Session, tutor_id: int, from_date: date | None = None) -> list[AvailabilitySlot]:
    profile = _get_profile(db, tutor_id)
    query = select(AvailabilitySlot).where(AvailabilitySlot.tutor_profile_id == profile.id)
    if from_date:
        query = query.where(AvailabilitySlot.date >= midnight_utc(from_date))
    return list(db.scalars(query.order_by(AvailabilitySlot.date, AvailabilitySlot.start_time, AvailabilitySlot.id)))


def has_slot(db: Session, tutor_id: int, on: datetime, start_time: str) -> bool:
    profile = _get_profile(db, tutor_id)
    return _find_slot_id(db, profile.id, on, normalize_time_of_day(start_time)) is not None


def add_slot(db: Session, tutor_id: int, slot: SlotCreateRequest) -> AvailabilitySlot:
    profile = _get_profile(db, tutor_id)
    slot_date, start_time, end_time = _normalize_slot(slot)

    if _find_slot_id(db, profile.id, slot_date, start_time) is not None:
        raise ValidationError(DUPLICATE_SLOT_DETAIL)

    created = AvailabilitySlot(
        tutor_profile_id=profile.id,
        date=slot_date,
        start_time=start_time,
        end_time=end_time,
    )
    db.add(created)
    db.commit()
    db.refresh(created)
    return created


def replace_all_slots(
    db: Session,
    tutor_id: int,
    slots: Iterable[SlotCreateRequest],
    commit: bool = True,
) -> list[AvailabilitySlot]:
    """Overwrite a tutor's whole availability.

    Only the tutor's own editing workflow calls this. Booking fulfillment
    must go through :func:`remove_slot` so it never clobbers a concurrent edit.
    """
    profile = _get_profile(db, tutor_id)

    normalized = []
    seen: set[tuple[datetime, str]] = set()
    for slot in slots:
        slot_date, start_time, end_time = _normalize_slot(slot)
        if (slot_date, start_time) in seen:
            raise ValidationError(
                DUPLICATE_SLOT_DETAIL,
                detail={"date": slot_date.date().isoformat(), "start_time": start_time},
            )
        seen.add((slot_date, start_time))
        normalized.append((slot_date, start_time, end_time))

    db.execute(delete(AvailabilitySlot).where(AvailabilitySlot.tutor_profile_id == profile.id))
    replaced = [
        AvailabilitySlot(tutor_profile_id=profile.id, date=slot_date, start_time=start_time, end_time=end_time)
        for slot_date, start_time, end_time in normalized
    ]
    db.add_all(replaced)
    if commit:
        db.commit()
    else:
        db.flush()
    return replaced


def remove_slot(db: Session, tutor_id: int, on: datetime, start_time: str) -> bool:
    """Remove at most one slot on the UTC day of ``on`` starting at ``start_time``.

    Returns True only when this call deleted the row, so a concurrent or
    repeated caller can tell "already gone" apart from success.
    """
    profile = db.scalar(select(TutorProfile).where(TutorProfile.user_id == tutor_id))
    if not profile:
        logger.warning("availability_remove_no_profile tutor_id=%s", tutor_id)
        return False
    if not is_time_of_day(start_time):
        logger.warning("availability_remove_bad_time tutor_id=%s start_time=%r", tutor_id, start_time)
        return False

    slot_id = _find_slot_id(db, profile.id, on, normalize_time_of_day(start_time))
    if slot_id is None:
        return False

    result = db.execute(
        delete(AvailabilitySlot)
        .where(AvailabilitySlot.id == slot_id)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount == 1


def delete_slot(db: Session, tutor_id: int, slot_id: int) -> None:
    profile = _get_profile(db, tutor_id)
    slot = db.scalar(
        select(AvailabilitySlot).where(
            AvailabilitySlot.id == slot_id,
            AvailabilitySlot.tutor_profile_id == profile.id,
        )
    )
    if not slot:
        raise NotFoundError("Slot not found")
    db.delete(slot)
    db.commit()
