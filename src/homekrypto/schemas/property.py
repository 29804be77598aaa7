"""Pydantic schemas for properties and fractional shares."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import Field, model_validator
from pydantic.alias_generators import to_camel

from homekrypto.schemas.base import CamelModel

_PRICE = dict(ge=0, max_digits=12, decimal_places=2)


class PropertyCreate(CamelModel):
    id: str = Field(..., min_length=1, max_length=64, pattern=r"^[A-Za-z0-9_-]+$")
    name: str = Field(..., min_length=1, max_length=200)
    location: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    price_per_night: Decimal = Field(..., **_PRICE)
    total_shares: int = Field(..., ge=1, le=52)
    share_price: Decimal = Field(..., **_PRICE)
    images: list[str] = Field(default_factory=list)
    amenities: list[str] = Field(default_factory=list)
    max_guests: int = Field(..., ge=1)
    bedrooms: int = Field(..., ge=1)
    bathrooms: int = Field(..., ge=1)
    is_active: bool = True
    agent_id: Optional[int] = None


class PropertyUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    location: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, min_length=1)
    price_per_night: Optional[Decimal] = Field(None, **_PRICE)
    total_shares: Optional[int] = Field(None, ge=1, le=52)
    share_price: Optional[Decimal] = Field(None, **_PRICE)
    images: Optional[list[str]] = None
    amenities: Optional[list[str]] = None
    max_guests: Optional[int] = Field(None, ge=1)
    bedrooms: Optional[int] = Field(None, ge=1)
    bathrooms: Optional[int] = Field(None, ge=1)
    is_active: Optional[bool] = None
    agent_id: Optional[int] = None

    @model_validator(mode="after")
    def _no_nulls(self):
        # Omitted means unchanged; null only clears the agent
        for name in self.model_fields_set:
            if name != "agent_id" and getattr(self, name) is None:
                raise ValueError(f"{to_camel(name)} cannot be null")
        return self


class PropertyRead(CamelModel):
    id: str
    name: str
    location: str
    description: str
    price_per_night: Decimal
    total_shares: int
    share_price: Decimal
    images: list[str]
    amenities: list[str]
    max_guests: int
    bedrooms: int
    bathrooms: int
    is_active: bool
    agent_id: Optional[int] = None
    created_at: datetime


class PropertyWithAgent(PropertyRead):
    agent_name: Optional[str] = None
    agent_last_name: Optional[str] = None
    agent_email: Optional[str] = None
    agent_phone: Optional[str] = None
    agent_location: Optional[str] = None
    shares_sold: int = 0


class AgentOption(CamelModel):
    id: int
    first_name: str
    last_name: str
    email: str
    location: Optional[str] = None
    phone: Optional[str] = None


class SharePurchase(CamelModel):
    property_id: str = Field(..., min_length=1)
    shares_count: int = Field(..., ge=1, le=52)
    wallet_address: str = Field(..., pattern=r"^0x[a-fA-F0-9]{40}$")


class ShareRead(CamelModel):
    property_id: str
    shares_owned: int
    user_wallet: str
    created_at: datetime


class PurchaseResult(CamelModel):
    message: str
    shares: ShareRead
    total_shares: int
