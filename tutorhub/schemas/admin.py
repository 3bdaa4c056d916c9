from typing import Literal

from pydantic import BaseModel, Field


class TutorStatusUpdateRequest(BaseModel):
    status: Literal["approved", "rejected"]
    rejection_reason: str | None = Field(default=None, max_length=500)
