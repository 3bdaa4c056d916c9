import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tutorhub.core.exceptions import AuthenticationError, ConflictError
from tutorhub.core.security import create_access_token, get_password_hash, verify_password
from tutorhub.db.models.user import TutorStatus, User, UserRole
from tutorhub.schemas.auth import LoginRequest, RegisterRequest, TokenResponse

logger = logging.getLogger(__name__)

EMAIL_TAKEN_DETAIL = "User with this email already exists"


def register_user(payload: RegisterRequest, db: Session) -> User:
    email = payload.email.lower()
    existing_user = db.scalar(select(User).where(User.email == email))
    if existing_user:
        raise ConflictError(EMAIL_TAKEN_DETAIL)

    user = User(
        email=email,
        name=payload.name.strip(),
        hashed_password=get_password_hash(payload.password),
        role=UserRole.STUDENT.value,
        tutor_status=TutorStatus.UNVERIFIED.value,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError(EMAIL_TAKEN_DETAIL) from None
    db.refresh(user)
    logger.info("user_registered user_id=%s", user.id)
    return user


def login_user(payload: LoginRequest, db: Session) -> TokenResponse:
    email = payload.email.lower()
    user = db.scalar(select(User).where(User.email == email))
    if not user or not verify_password(payload.password, user.hashed_password):
        raise AuthenticationError("Invalid email or password")
    if not user.is_active:
        raise AuthenticationError("Account is disabled")

    token = create_access_token(user_id=user.id, role=user.role, email=user.email)
    return TokenResponse(access_token=token)
