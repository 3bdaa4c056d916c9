from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from tutorhub.api.deps import get_current_user, require_roles
from tutorhub.api.pagination import LimitParam, OffsetParam
from tutorhub.db.models.user import TutorStatus, User, UserRole
from tutorhub.db.session import get_db
from tutorhub.schemas.user import UserResponse

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me", response_model=UserResponse, status_code=status.HTTP_200_OK)
def get_me(current_user: User = Depends(get_current_user)) -> UserResponse:
    return UserResponse.model_validate(current_user)


@router.get("", response_model=list[UserResponse], status_code=status.HTTP_200_OK)
def list_users(
    _: User = Depends(require_roles(UserRole.ADMIN)),
    tutor_status: TutorStatus | None = None,
    limit: LimitParam = 20,
    offset: OffsetParam = 0,
    db: Session = Depends(get_db),
) -> list[UserResponse]:
    query = select(User)
    if tutor_status:
        query = query.where(User.tutor_status == tutor_status.value)
    users = db.scalars(query.order_by(User.id).limit(limit).offset(offset)).all()
    return [UserResponse.model_validate(user) for user in users]
