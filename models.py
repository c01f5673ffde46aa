from datetime import datetime
from typing import List

from pydantic import BaseModel, ConfigDict


class SignupOTPRequest(BaseModel):
    email: str
    password: str
    name: str
    role: str = "user"


class SigninOTPRequest(BaseModel):
    email: str
    password: str


class VerifyOTPRequest(BaseModel):
    email: str
    code: str


class UpdateProfileRequest(BaseModel):
    name: str | None = None
    email: str | None = None
    profile_picture: str | None = None


class OTPSentResponse(BaseModel):
    email: str
    message: str


class UserResponse(BaseModel):
    """Public view of a user; never carries the password hash."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    name: str
    role: str
    profile_picture: str | None = None
    created_at: datetime


class AuthResponse(BaseModel):
    message: str
    user: UserResponse
    token: str


class UsersResponse(BaseModel):
    users: List[UserResponse]


class MessageResponse(BaseModel):
    message: str
