from datetime import date

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import Response
from sqlalchemy.orm import Session

from tutorhub.api.deps import get_current_user, get_mailer, require_approved_tutor
from tutorhub.db.models import User
from tutorhub.db.session import get_db
from tutorhub.schemas.tutor import (
    AvailabilityReplaceRequest,
    PublicTutorResponse,
    SlotCreateRequest,
    SlotResponse,
    TutorApplicationResponse,
    TutorProfileResponse,
    TutorProfileUpsertRequest,
)
from tutorhub.services import availability_service, tutor_service
from tutorhub.services.notification_service import Mailer

router = APIRouter(prefix="/tutors", tags=["tutors"])


@router.get("/me/profile", response_model=TutorApplicationResponse, status_code=status.HTTP_200_OK)
def get_my_profile(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> TutorApplicationResponse:
    profile = tutor_service.get_profile(db, current_user.id)
    return TutorApplicationResponse(
        profile=TutorProfileResponse.model_validate(profile),
        tutor_status=current_user.tutor_status,
    )


@router.put("/me/profile", response_model=TutorApplicationResponse, status_code=status.HTTP_200_OK)
def save_my_profile(
    payload: TutorProfileUpsertRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
) -> TutorApplicationResponse:
    profile = tutor_service.save_tutor_profile(db, current_user, payload, mailer)
    return TutorApplicationResponse(
        profile=TutorProfileResponse.model_validate(profile),
        tutor_status=current_user.tutor_status,
    )


@router.get("/me/availability", response_model=list[SlotResponse], status_code=status.HTTP_200_OK)
def list_my_availability(
    current_user: User = Depends(require_approved_tutor),
    db: Session = Depends(get_db),
) -> list[SlotResponse]:
    slots = availability_service.list_slots(db, current_user.id)
    return [SlotResponse.model_validate(slot) for slot in slots]


@router.post("/me/availability", response_model=SlotResponse, status_code=status.HTTP_201_CREATED)
def add_my_slot(
    payload: SlotCreateRequest,
    current_user: User = Depends(require_approved_tutor),
    db: Session = Depends(get_db),
) -> SlotResponse:
    slot = availability_service.add_slot(db, current_user.id, payload)
    return SlotResponse.model_validate(slot)


@router.put("/me/availability", response_model=list[SlotResponse], status_code=status.HTTP_200_OK)
def replace_my_availability(
    payload: AvailabilityReplaceRequest,
    current_user: User = Depends(require_approved_tutor),
    db: Session = Depends(get_db),
) -> list[SlotResponse]:
    availability_service.replace_all_slots(db, current_user.id, payload.slots)
    slots = availability_service.list_slots(db, current_user.id)
    return [SlotResponse.model_validate(slot) for slot in slots]


@router.delete("/me/availability/{slot_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_my_slot(
    slot_id: int,
    current_user: User = Depends(require_approved_tutor),
    db: Session = Depends(get_db),
) -> Response:
    availability_service.delete_slot(db, current_user.id, slot_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{tutor_id}", response_model=PublicTutorResponse, status_code=status.HTTP_200_OK)
def get_tutor(tutor_id: int, db: Session = Depends(get_db)) -> PublicTutorResponse:
    tutor, profile = tutor_service.get_public_tutor(db, tutor_id)
    return PublicTutorResponse(
        tutor_id=tutor.id,
        name=tutor.name,
        profile=TutorProfileResponse.model_validate(profile),
    )


@router.get("/{tutor_id}/availability", response_model=list[SlotResponse], status_code=status.HTTP_200_OK)
def list_tutor_availability(
    tutor_id: int,
    from_date: date | None = Query(default=None),
    db: Session = Depends(get_db),
) -> list[SlotResponse]:
    tutor_service.get_public_tutor(db, tutor_id)
    slots = availability_service.list_slots(db, tutor_id, from_date=from_date)
    return [SlotResponse.model_validate(slot) for slot in slots]
