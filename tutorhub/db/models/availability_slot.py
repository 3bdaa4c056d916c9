from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tutorhub.db.base import Base


class AvailabilitySlot(Base):
    """A tutor-declared bookable interval.

    ``date`` is always midnight UTC of the calendar day; the time of day lives
    in ``start_time``/``end_time`` as ``HH:MM`` strings. Uniqueness of
    (date, start_time) per tutor is enforced by the availability service.
    """

    __tablename__ = "availability_slots"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    tutor_profile_id: Mapped[int] = mapped_column(
        ForeignKey("tutor_profiles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    tutor_profile = relationship("TutorProfile", back_populates="availability")
