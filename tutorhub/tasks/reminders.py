from datetime import UTC, datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from tutorhub.core.config import settings
from tutorhub.db.models import Booking, BookingStatus
from tutorhub.db.session import SessionLocal
from tutorhub.tasks.celery_app import celery_app


def count_upcoming_sessions_for_reminder(db: Session, now: datetime | None = None) -> int:
    current_time = now or datetime.now(UTC)
    reminder_until = current_time + timedelta(minutes=settings.reminder_lookahead_minutes)

    return db.scalar(
        select(func.count(Booking.id)).where(
            Booking.status == BookingStatus.SCHEDULED.value,
            Booking.session_date >= current_time,
            Booking.session_date < reminder_until,
        )
    ) or 0


@celery_app.task(name="bookings.remind_upcoming_sessions")
def remind_upcoming_sessions_task() -> dict[str, int]:
    db = SessionLocal()
    try:
        reminder_count = count_upcoming_sessions_for_reminder(db=db)
        return {"to_remind": reminder_count}
    finally:
        db.close()
