from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from tutorhub.api.deps import get_current_user, get_mailer, rate_limited
from tutorhub.api.pagination import LimitParam, OffsetParam
from tutorhub.db.models import User
from tutorhub.db.session import get_db
from tutorhub.schemas.message import (
    ConversationResponse,
    MessageCreateRequest,
    MessageResponse,
    UnreadCountResponse,
)
from tutorhub.schemas.user import UserSummary
from tutorhub.services import messaging_service
from tutorhub.services.notification_service import Mailer

router = APIRouter(prefix="/messages", tags=["messages"])


@router.post(
    "",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limited("message"))],
)
def send_message(
    payload: MessageCreateRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
) -> MessageResponse:
    message = messaging_service.send_message(db, current_user, payload.receiver_id, payload.message_text, mailer)
    return MessageResponse.model_validate(message)


@router.get("/conversations", response_model=list[ConversationResponse], status_code=status.HTTP_200_OK)
def list_conversations(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[ConversationResponse]:
    return [
        ConversationResponse(
            other_user=UserSummary.model_validate(conversation.other_user),
            last_message=MessageResponse.model_validate(conversation.last_message),
            unread_count=conversation.unread_count,
        )
        for conversation in messaging_service.list_conversations(db, current_user.id)
    ]


@router.get("/unread-count", response_model=UnreadCountResponse, status_code=status.HTTP_200_OK)
def unread_count(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> UnreadCountResponse:
    return UnreadCountResponse(unread_count=messaging_service.count_unread(db, current_user.id))


@router.get("/{other_user_id}", response_model=list[MessageResponse], status_code=status.HTTP_200_OK)
def get_thread(
    other_user_id: int,
    limit: LimitParam = 50,
    offset: OffsetParam = 0,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[MessageResponse]:
    messages = messaging_service.get_thread(db, current_user.id, other_user_id, limit=limit, offset=offset)
    return [MessageResponse.model_validate(message) for message in messages]
