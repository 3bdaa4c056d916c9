from datetime import datetime
from typing import Literal

from pydantic import AwareDatetime, BaseModel, Field

from tutorhub.schemas.tutor import TimeOfDay
from tutorhub.schemas.user import UserSummary


class CheckoutRequest(BaseModel):
    tutor_id: int
    subject: str = Field(min_length=1, max_length=120)
    session_date_time: AwareDatetime
    start_time: TimeOfDay


class CheckoutResponse(BaseModel):
    session_id: str
    url: str


class WebhookAckResponse(BaseModel):
    received: bool = True


class BookingResponse(BaseModel):
    id: int
    student_id: int
    tutor_id: int
    subject: str
    session_date: datetime
    status: str
    reschedule_requester_role: str | None
    feedback_submitted: bool
    meeting_url: str | None
    meeting_id: str | None
    meeting_password: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


class ParticipantBookingResponse(BookingResponse):
    student: UserSummary
    tutor: UserSummary
    # the host link is only exposed to the tutor
    meeting_start_url: str | None = None


class MyClassesResponse(BaseModel):
    upcoming: list[ParticipantBookingResponse]
    past: list[ParticipantBookingResponse]


class RescheduleRequest(BaseModel):
    reason: str = Field(max_length=500)


class FeedbackCreateRequest(BaseModel):
    rating: int = Field(ge=1, le=5)
    comment: str | None = Field(default=None, max_length=1000)


class FeedbackResponse(BaseModel):
    status: Literal["submitted", "already_submitted"]
    feedback_id: int | None = None
