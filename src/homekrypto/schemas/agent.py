"""Pydantic schemas for agents and their public pages."""

from datetime import datetime
from typing import Optional

from pydantic import Field, field_validator

from homekrypto.schemas.base import CamelModel, NormalizedEmail


class AgentRegister(CamelModel):
    """Self-registration. Only email is required."""

    email: NormalizedEmail
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    phone: Optional[str] = Field(None, max_length=50)
    company: Optional[str] = Field(None, max_length=200)
    license_number: Optional[str] = Field(None, max_length=100)
    license_state: Optional[str] = Field(None, max_length=100)
    city: Optional[str] = Field(None, max_length=100)
    state: Optional[str] = Field(None, max_length=100)
    zip_code: Optional[str] = Field(None, max_length=20)
    country: Optional[str] = Field(None, max_length=100)
    website: Optional[str] = Field(None, max_length=500)
    linked_in: Optional[str] = Field(None, max_length=500)
    bio: Optional[str] = Field(None, max_length=5000)
    specializations: list[str] = Field(default_factory=list)
    years_experience: int = Field(0, ge=0, le=80)
    languages_spoken: list[str] = Field(default_factory=list)
    photo_url: Optional[str] = Field(None, max_length=500)
    seo_backlink_url: Optional[str] = Field(None, max_length=500)

    @field_validator("specializations")
    @classmethod
    def _dedupe(cls, v: list[str]) -> list[str]:
        # a set, but keep first-seen order for display
        seen: dict[str, None] = {}
        for item in v:
            item = item.strip()
            if item:
                seen.setdefault(item, None)
        return list(seen)


class AgentRead(CamelModel):
    id: int
    first_name: str
    last_name: str
    email: str
    phone: Optional[str] = None
    company: Optional[str] = None
    license_number: Optional[str] = None
    license_state: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: str
    website: Optional[str] = None
    linked_in: Optional[str] = Field(None, validation_alias="linkedin")
    bio: Optional[str] = None
    specializations: list[str]
    years_experience: int
    languages_spoken: list[str]
    photo_url: Optional[str] = None
    referral_link: Optional[str] = None
    status: str
    is_approved: bool
    is_active: bool
    approved_by: Optional[int] = None
    approved_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    created_at: datetime


class PublicAgent(CamelModel):
    """Directory entry. Omits review metadata."""

    id: int
    first_name: str
    last_name: str
    email: str
    phone: Optional[str] = None
    company: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: str
    bio: Optional[str] = None
    specializations: list[str]
    years_experience: int
    languages_spoken: list[str]
    photo_url: Optional[str] = None
    website: Optional[str] = None
    linked_in: Optional[str] = Field(None, validation_alias="linkedin")
    referral_link: Optional[str] = None


class AgentPageRead(CamelModel):
    id: int
    agent_id: int
    slug: str
    title: str
    meta_description: str
    is_active: bool
    created_at: datetime


class AgentPageDetail(AgentPageRead):
    url: str
    agent: PublicAgent


class AgentDeny(CamelModel):
    reason: Optional[str] = Field(None, max_length=2000)


class AgentActivation(CamelModel):
    is_active: bool


class AgentApproval(CamelModel):
    message: str
    agent: AgentRead
    page: AgentPageRead
    url: str


class AgentStats(CamelModel):
    total_agents: int
    pending_agents: int
    approved_agents: int
    denied_agents: int


class CountryCount(CamelModel):
    country: str
    count: int


class AgentEnvelope(CamelModel):
    message: str
    agent: AgentRead
