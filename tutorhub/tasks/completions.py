import logging
from datetime import UTC, datetime, timedelta

from sqlalchemy import update
from sqlalchemy.orm import Session

from tutorhub.core.config import settings
from tutorhub.db.models import Booking, BookingStatus
from tutorhub.db.session import SessionLocal
from tutorhub.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


def complete_finished_sessions(db: Session, now: datetime | None = None) -> int:
    current_time = now or datetime.now(UTC)
    started_before = current_time - timedelta(minutes=settings.session_duration_minutes)

    result = db.execute(
        update(Booking)
        .where(
            Booking.status == BookingStatus.SCHEDULED.value,
            Booking.session_date <= started_before,
        )
        .values(status=BookingStatus.COMPLETED.value)
        .execution_options(synchronize_session=False)
    )
    db.commit()

    if result.rowcount:
        logger.info("sessions_completed count=%s", result.rowcount)
    return result.rowcount


@celery_app.task(name="bookings.complete_finished_sessions")
def complete_finished_sessions_task() -> dict[str, int]:
    db = SessionLocal()
    try:
        completed_count = complete_finished_sessions(db=db)
        return {"completed": completed_count}
    finally:
        db.close()
