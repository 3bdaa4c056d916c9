from datetime import datetime

from pydantic import BaseModel, EmailStr

from tutorhub.db.models.user import TutorStatus, UserRole


class UserResponse(BaseModel):
    id: int
    email: EmailStr
    name: str
    role: UserRole
    tutor_status: TutorStatus
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class UserSummary(BaseModel):
    id: int
    name: str

    model_config = {"from_attributes": True}
