"""
API Request and Response Schemas

This module defines all Pydantic models for API requests and responses.
Separated from endpoints to keep concerns separated and enable reuse.

Request models ignore unknown fields: a client cannot grant itself a tier
or feature flags by adding them to a body.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from shortcut.core.setting import settings
from shortcut.db.models import Account, Link


# Links


class ShortenRequest(BaseModel):
    """Request model for link creation."""
    original_url: str = Field(..., max_length=2048, description="The long URL to shorten")
    custom_alias: Optional[str] = Field(None, description="Custom short code (premium)")
    expires_in_days: Optional[int] = Field(
        None, ge=1, le=3650, description="Days until the link expires (premium)"
    )
    password: Optional[str] = Field(
        None, min_length=1, max_length=72, description="Access password (premium)"
    )
    recaptcha_token: Optional[str] = Field(
        None, description="Human verification token, required for anonymous requests"
    )


class LinkResponse(BaseModel):
    """A short link as returned to its creator."""
    id: int
    short_code: str
    short_url: str
    original_url: str
    is_custom: bool
    clicks: int
    created_at: datetime
    expires_at: Optional[datetime] = None
    is_expired: bool
    is_password_protected: bool

    @classmethod
    def from_link(cls, link: Link) -> "LinkResponse":
        return cls(
            id=link.id,
            short_code=link.short_code,
            short_url=f"{settings.BASE_URL}/{link.short_code}",
            original_url=link.original_url,
            is_custom=link.is_custom,
            clicks=link.clicks,
            created_at=link.created_at,
            expires_at=link.expires_at,
            is_expired=link.is_expired,
            is_password_protected=link.is_password_protected,
        )


class BucketCount(BaseModel):
    label: str
    count: int


class LinkAnalyticsResponse(BaseModel):
    short_code: str
    original_url: str
    created_at: datetime
    clicks: int
    referrers: list[BucketCount]
    browsers: list[BucketCount]
    devices: list[BucketCount]


class GlobalStatsResponse(BaseModel):
    total_links: int
    total_clicks: int


class MessageResponse(BaseModel):
    message: str


# Accounts


class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=72)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=72)


class ProfileUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(None, min_length=6, max_length=72)


class FeaturesResponse(BaseModel):
    custom_aliases_enabled: bool
    analytics_enabled: bool
    expiry_enabled: bool
    password_protection_enabled: bool
    max_links: int


class AccountResponse(BaseModel):
    id: str
    name: str
    email: str
    subscription: str
    subscription_expiry: Optional[datetime] = None
    features: FeaturesResponse
    created_at: datetime

    @classmethod
    def from_account(cls, account: Account) -> "AccountResponse":
        return cls(
            id=account.id,
            name=account.name,
            email=account.email,
            subscription=account.tier.value,
            subscription_expiry=account.subscription_expiry,
            features=FeaturesResponse(**account.entitlements.as_dict()),
            created_at=account.created_at,
        )


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    account: AccountResponse


class AccountStatsResponse(BaseModel):
    total_links: int
    total_clicks: int
    max_links: int
    remaining_links: int


# Subscriptions


class PlanResponse(BaseModel):
    id: str
    name: str
    description: str
    price: float
    currency: str
    interval: str
    features: list[str]
    max_links: int


class CheckoutRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    plan_id: str = Field(..., alias="planId")


class CheckoutResponse(BaseModel):
    session_id: Optional[str] = None
    url: Optional[str] = None
    success: Optional[bool] = None
    simulated: bool = False
    message: Optional[str] = None
    redirect_url: Optional[str] = None


class SubscriptionResponse(BaseModel):
    subscription: str
    subscription_expiry: Optional[datetime] = None
    features: FeaturesResponse


class WebhookAck(BaseModel):
    received: bool = True
    simulated: bool = False
