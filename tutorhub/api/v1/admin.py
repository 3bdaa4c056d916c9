from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from tutorhub.api.deps import get_mailer, require_roles
from tutorhub.db.models import User, UserRole
from tutorhub.db.session import get_db
from tutorhub.schemas.admin import TutorStatusUpdateRequest
from tutorhub.schemas.user import UserResponse
from tutorhub.services.notification_service import Mailer
from tutorhub.services.tutor_service import review_tutor_application

router = APIRouter(prefix="/admin", tags=["admin"])


@router.patch("/tutors/{tutor_id}/status", response_model=UserResponse, status_code=status.HTTP_200_OK)
def update_tutor_status(
    tutor_id: int,
    payload: TutorStatusUpdateRequest,
    _: User = Depends(require_roles(UserRole.ADMIN)),
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
) -> UserResponse:
    applicant = review_tutor_application(
        db=db,
        tutor_id=tutor_id,
        status=payload.status,
        rejection_reason=payload.rejection_reason,
        mailer=mailer,
    )
    return UserResponse.model_validate(applicant)
