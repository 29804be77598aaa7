"""Pydantic schemas for admin user management."""

from datetime import datetime
from typing import Literal, Optional

from homekrypto.schemas.base import CamelModel


class AdminUserRead(CamelModel):
    id: int
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: str
    is_email_verified: bool
    created_at: datetime
    last_login_at: Optional[datetime] = None
    agent_count: int = 0


class RoleUpdate(CamelModel):
    role: Literal["user", "agent", "admin"]


class UserDeleted(CamelModel):
    message: str
    agent_count: int
