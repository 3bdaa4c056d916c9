from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, DateTime, ForeignKey, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tutorhub.core.exceptions import InvalidStateError
from tutorhub.db.base import Base


class BookingStatus(str, Enum):
    PENDING_PAYMENT = "pending_payment"
    SCHEDULED = "scheduled"
    RESCHEDULE_REQUESTED = "reschedule_requested"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class RequesterRole(str, Enum):
    STUDENT = "student"
    TUTOR = "tutor"


# Forward-only lifecycle; scheduled -> reschedule_requested is recorded here,
# its resolution happens outside the system. Cancellation is reachable from
# every non-terminal state.
ALLOWED_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING_PAYMENT: frozenset({BookingStatus.SCHEDULED, BookingStatus.CANCELLED}),
    BookingStatus.SCHEDULED: frozenset(
        {BookingStatus.RESCHEDULE_REQUESTED, BookingStatus.COMPLETED, BookingStatus.CANCELLED}
    ),
    BookingStatus.RESCHEDULE_REQUESTED: frozenset({BookingStatus.SCHEDULED, BookingStatus.CANCELLED}),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
}


class Booking(Base):
    __tablename__ = "bookings"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    student_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    tutor_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    subject: Mapped[str] = mapped_column(String(120), nullable=False)
    session_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    status: Mapped[str] = mapped_column(
        String(30), nullable=False, default=BookingStatus.PENDING_PAYMENT.value, index=True
    )
    reschedule_requester_role: Mapped[str | None] = mapped_column(String(20), nullable=True)
    payment_session_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    feedback_submitted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    meeting_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    meeting_start_url: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    meeting_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    meeting_password: Mapped[str | None] = mapped_column(String(64), nullable=True)
    # set by the webhook delivery that owns fulfillment; expires after fulfillment_claim_ttl_seconds
    fulfillment_claim_token: Mapped[str | None] = mapped_column(String(36), nullable=True)
    fulfillment_claimed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    student = relationship("User", foreign_keys=[student_id])
    tutor = relationship("User", foreign_keys=[tutor_id])
    feedback = relationship("Feedback", back_populates="booking", uselist=False)

    def can_transition_to(self, target: BookingStatus) -> bool:
        return target in ALLOWED_TRANSITIONS[BookingStatus(self.status)]

    def _transition(self, target: BookingStatus) -> None:
        if not self.can_transition_to(target):
            raise InvalidStateError(
                f"Cannot move booking from {self.status} to {target.value}",
                detail={"status": self.status, "target": target.value},
            )
        self.status = target.value

    def participant_role(self, user_id: int) -> RequesterRole | None:
        if user_id == self.student_id:
            return RequesterRole.STUDENT
        if user_id == self.tutor_id:
            return RequesterRole.TUTOR
        return None

    def request_reschedule(self, role: RequesterRole) -> None:
        self._transition(BookingStatus.RESCHEDULE_REQUESTED)
        self.reschedule_requester_role = role.value

    def cancel(self) -> None:
        self._transition(BookingStatus.CANCELLED)
        self.reschedule_requester_role = None
