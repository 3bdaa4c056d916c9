from datetime import UTC, datetime

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from tutorhub.api.deps import get_current_user, get_mailer
from tutorhub.core.exceptions import DuplicateError
from tutorhub.db.models import Booking, User
from tutorhub.db.session import get_db
from tutorhub.schemas.booking import (
    FeedbackCreateRequest,
    FeedbackResponse,
    MyClassesResponse,
    ParticipantBookingResponse,
    RescheduleRequest,
)
from tutorhub.services import booking_service
from tutorhub.services.notification_service import Mailer

router = APIRouter(prefix="/bookings", tags=["bookings"])


def _for_viewer(booking: Booking, viewer: User) -> ParticipantBookingResponse:
    response = ParticipantBookingResponse.model_validate(booking)
    if viewer.id != booking.tutor_id:
        response.meeting_start_url = None
    return response


@router.get("/me", response_model=MyClassesResponse, status_code=status.HTTP_200_OK)
def list_my_classes(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MyClassesResponse:
    classes = booking_service.list_my_classes(db, current_user.id, now=datetime.now(UTC))
    return MyClassesResponse(
        upcoming=[_for_viewer(booking, current_user) for booking in classes.upcoming],
        past=[_for_viewer(booking, current_user) for booking in classes.past],
    )


@router.get("/{booking_id}", response_model=ParticipantBookingResponse, status_code=status.HTTP_200_OK)
def get_booking(
    booking_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ParticipantBookingResponse:
    booking = booking_service.get_booking_for_participant(db, booking_id, current_user)
    return _for_viewer(booking, current_user)


@router.post(
    "/{booking_id}/reschedule",
    response_model=ParticipantBookingResponse,
    status_code=status.HTTP_200_OK,
)
def request_reschedule(
    booking_id: int,
    payload: RescheduleRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
) -> ParticipantBookingResponse:
    booking = booking_service.request_reschedule(
        db=db,
        booking_id=booking_id,
        requester_id=current_user.id,
        reason=payload.reason,
        mailer=mailer,
    )
    return _for_viewer(booking, current_user)


@router.post(
    "/{booking_id}/feedback",
    response_model=FeedbackResponse,
    status_code=status.HTTP_201_CREATED,
    responses={200: {"model": FeedbackResponse, "description": "Feedback was already submitted"}},
)
def submit_feedback(
    booking_id: int,
    payload: FeedbackCreateRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        feedback = booking_service.submit_feedback(
            db=db,
            booking_id=booking_id,
            student_id=current_user.id,
            rating=payload.rating,
            comment=payload.comment,
        )
    except DuplicateError:
        return JSONResponse(
            status_code=status.HTTP_200_OK,
            content=FeedbackResponse(status="already_submitted").model_dump(),
        )
    return FeedbackResponse(status="submitted", feedback_id=feedback.id)
