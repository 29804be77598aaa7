"""Pydantic schemas for account and session endpoints."""

from datetime import datetime
from typing import Optional

from pydantic import Field

from homekrypto.schemas.base import CamelModel, NormalizedEmail


class _EmailField(CamelModel):
    email: NormalizedEmail


class RegisterRequest(_EmailField):
    password: str = Field(min_length=8, max_length=128)
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    referral_code: Optional[str] = Field(None, max_length=16)


class LoginRequest(_EmailField):
    password: str = Field(min_length=1)
    remember_me: Optional[bool] = None


class ForgotPasswordRequest(_EmailField):
    pass


class ResendVerificationRequest(_EmailField):
    pass


class ResetPasswordRequest(CamelModel):
    token: str = Field(min_length=1)
    password: str = Field(min_length=8, max_length=128)


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(min_length=1)
    new_password: str = Field(min_length=8, max_length=128)


class UpdateProfileRequest(CamelModel):
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    username: Optional[str] = Field(
        None, min_length=3, max_length=50, pattern=r"^[A-Za-z0-9_.-]+$"
    )


class UserSummary(CamelModel):
    id: int
    email: str


class UserRead(CamelModel):
    id: int
    email: str
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: str
    is_email_verified: bool
    referral_code: str
    wallet_address: Optional[str] = None
    created_at: datetime
    last_login_at: Optional[datetime] = None


class RegisterResponse(CamelModel):
    message: str
    user: UserSummary


class UserEnvelope(CamelModel):
    message: str
    user: UserRead


class MessageResponse(CamelModel):
    message: str


class TokenValidity(CamelModel):
    valid: bool
