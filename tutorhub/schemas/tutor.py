from datetime import date, datetime
from decimal import Decimal
from typing import Annotated

from pydantic import BaseModel, Field, model_validator

from tutorhub.core.datetimes import TIME_OF_DAY_RE, minutes_since_midnight

TimeOfDay = Annotated[str, Field(pattern=TIME_OF_DAY_RE.pattern, examples=["14:00"])]


class SlotCreateRequest(BaseModel):
    date: date
    start_time: TimeOfDay
    end_time: TimeOfDay

    @model_validator(mode="after")
    def validate_interval(self) -> "SlotCreateRequest":
        if minutes_since_midnight(self.end_time) <= minutes_since_midnight(self.start_time):
            raise ValueError("end_time must be later than start_time")
        return self


class AvailabilityReplaceRequest(BaseModel):
    slots: list[SlotCreateRequest] = Field(max_length=500)


class SlotResponse(BaseModel):
    id: int
    date: datetime
    start_time: str
    end_time: str

    model_config = {"from_attributes": True}


class TutorProfileUpsertRequest(BaseModel):
    bio: str = Field(min_length=20, max_length=5000)
    hourly_rate: Decimal = Field(gt=0, max_digits=10, decimal_places=2)
    subjects: list[str] = Field(min_length=1, max_length=20)
    qualifications: list[str] = Field(default_factory=list, max_length=20)
    experience_years: int | None = Field(default=None, ge=0, le=80)
    teaching_style: str | None = Field(default=None, max_length=1000)
    is_online: bool = False
    is_in_person: bool = False
    availability: list[SlotCreateRequest] | None = None


class TutorProfileResponse(BaseModel):
    id: int
    user_id: int
    bio: str
    hourly_rate: Decimal
    subjects: list[str]
    qualifications: list[str]
    experience_years: int | None
    teaching_style: str | None
    is_online: bool
    is_in_person: bool

    model_config = {"from_attributes": True}


class TutorApplicationResponse(BaseModel):
    profile: TutorProfileResponse
    tutor_status: str


class PublicTutorResponse(BaseModel):
    tutor_id: int
    name: str
    profile: TutorProfileResponse
