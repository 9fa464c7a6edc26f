from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class LoginRequest(BaseModel):
    email: str
    password: str


class PinLoginRequest(BaseModel):
    """Kid PIN login body.

    Both fields are optional here so that missing values reach the handler
    and produce its own 400 message instead of a schema validation error.
    """

    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    user_id: str | None = Field(default=None, alias="userId")
    pin: str | None = None


class UserPayload(BaseModel):
    id: str
    email: str
    name: str
    role: str


class PinLoginResponse(BaseModel):
    success: bool = True
    token: str
    user: UserPayload


class VerifyOtpRequest(BaseModel):
    token_hash: str
    type: str = "magiclink"


class RefreshRequest(BaseModel):
    refresh_token: str


class SessionUser(BaseModel):
    id: str
    email: str
    user_metadata: dict = Field(default_factory=dict)


class SessionResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    expires_at: datetime
    user: SessionUser
