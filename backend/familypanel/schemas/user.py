import uuid

from pydantic import BaseModel, ConfigDict, Field


class KidResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    email: str
    name: str
    role: str
    screen_time_daily_minutes: int = Field(serialization_alias="screenTimeDailyMinutes")


class KidListResponse(BaseModel):
    kids: list[KidResponse]


class SetPinRequest(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    pin: str
