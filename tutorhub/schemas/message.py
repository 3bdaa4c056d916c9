from datetime import datetime

from pydantic import BaseModel, Field

from tutorhub.schemas.user import UserSummary


class MessageCreateRequest(BaseModel):
    receiver_id: int
    message_text: str = Field(min_length=10, max_length=1000)


class MessageResponse(BaseModel):
    id: int
    sender_id: int
    receiver_id: int
    message_text: str
    is_read: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class ConversationResponse(BaseModel):
    other_user: UserSummary
    last_message: MessageResponse
    unread_count: int


class UnreadCountResponse(BaseModel):
    unread_count: int
