"""
Database Models for the URL Shortener Service

This module defines the SQLModel database schemas for:
- Account: Registered users, their credentials and subscription state
- Link: Short code to destination mapping with embedded analytics counters
- ProcessedBillingEvent: Payment-provider events already applied

Design Decisions:
- Feature flags and quota are not columns: they are derived from ``tier``
  through ``shortcut.core.tiers`` so they can never drift from it
- Analytics aggregates live on the link row as JSON label -> count maps
  (read-modify-write; lost updates under concurrent clicks are tolerated)
- Timestamps are stored as naive UTC
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import JSON, Boolean, DateTime, Enum as SAEnum, ForeignKey, Integer, String, Text
from sqlmodel import Column, Field, SQLModel

from shortcut.core.tiers import Entitlements, Tier, entitlements_for


def utcnow() -> datetime:
    """Current time as naive UTC, the form every timestamp column uses."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_account_id() -> str:
    return uuid.uuid4().hex


class Account(SQLModel, table=True):
    """
    Registered user account.

    Fields:
    - id: Opaque identifier (uuid4 hex)
    - email: Unique, stored lower-cased
    - password_hash: bcrypt hash
    - tier: Current subscription tier
    - subscription_expiry: When the paid tier lapses (None for free)
    - billing_customer_id: Payment-provider customer reference
    """
    __tablename__ = "accounts"

    id: str = Field(
        default_factory=new_account_id,
        sa_column=Column(String(32), primary_key=True)
    )
    name: str = Field(sa_column=Column(String(100), nullable=False))
    email: str = Field(
        sa_column=Column(String(255), nullable=False, unique=True, index=True)
    )
    password_hash: str = Field(sa_column=Column(String(100), nullable=False))
    tier: Tier = Field(
        default=Tier.FREE,
        sa_column=Column(
            SAEnum(
                Tier,
                name="subscription_tier",
                native_enum=False,
                length=20,
                values_callable=lambda tiers: [t.value for t in tiers],
            ),
            nullable=False,
            default=Tier.FREE,
        )
    )
    subscription_expiry: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime, nullable=True)
    )
    billing_customer_id: Optional[str] = Field(
        default=None,
        sa_column=Column(String(255), nullable=True, index=True)
    )
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime, nullable=False)
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime, nullable=False)
    )

    @property
    def entitlements(self) -> Entitlements:
        return entitlements_for(self.tier)

    def subscription_lapsed(self, now: datetime) -> bool:
        return self.subscription_expiry is not None and self.subscription_expiry <= now

    def activate(self, tier: Tier, expiry: datetime) -> None:
        self.tier = tier
        self.subscription_expiry = expiry
        self.updated_at = utcnow()

    def downgrade(self) -> None:
        self.tier = Tier.FREE
        self.subscription_expiry = None
        self.updated_at = utcnow()


class Link(SQLModel, table=True):
    """
    Short link with embedded analytics.

    Fields:
    - short_code: Unique across random codes and custom aliases
    - is_custom: Whether short_code is a user-chosen alias
    - owner_id: Owning account, None for anonymous links
    - clicks: Redirect counter, only ever incremented
    - expires_at / is_expired: Optional expiry and its lazily persisted flag
    - password_hash: bcrypt hash when the link is password protected
    - referrer_counts / browser_counts / device_counts: label -> count
    """
    __tablename__ = "links"

    id: Optional[int] = Field(default=None, primary_key=True)
    short_code: str = Field(
        sa_column=Column(String(30), nullable=False, unique=True, index=True),
        max_length=30
    )
    is_custom: bool = Field(
        default=False,
        sa_column=Column(Boolean, nullable=False, default=False)
    )
    original_url: str = Field(sa_column=Column(Text, nullable=False))
    owner_id: Optional[str] = Field(
        default=None,
        sa_column=Column(
            String(32),
            ForeignKey("accounts.id", ondelete="CASCADE"),
            nullable=True,
            index=True,
        )
    )
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime, nullable=False, index=True)
    )
    clicks: int = Field(default=0, sa_column=Column(Integer, nullable=False, default=0))
    expires_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime, nullable=True)
    )
    is_expired: bool = Field(
        default=False,
        sa_column=Column(Boolean, nullable=False, default=False)
    )
    password_hash: Optional[str] = Field(
        default=None,
        sa_column=Column(String(100), nullable=True)
    )
    referrer_counts: dict = Field(
        default_factory=dict,
        sa_column=Column(JSON, nullable=False, default=dict)
    )
    browser_counts: dict = Field(
        default_factory=dict,
        sa_column=Column(JSON, nullable=False, default=dict)
    )
    device_counts: dict = Field(
        default_factory=dict,
        sa_column=Column(JSON, nullable=False, default=dict)
    )

    @property
    def is_password_protected(self) -> bool:
        return self.password_hash is not None

    def has_expired(self, now: datetime) -> bool:
        return self.is_expired or (self.expires_at is not None and self.expires_at <= now)


class ProcessedBillingEvent(SQLModel, table=True):
    """
    Payment-provider events that have already been applied.

    The event id primary key makes a concurrent duplicate delivery fail on
    insert instead of being applied twice.
    """
    __tablename__ = "billing_events"

    event_id: str = Field(sa_column=Column(String(255), primary_key=True))
    event_type: str = Field(sa_column=Column(String(100), nullable=False))
    processed_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime, nullable=False)
    )
