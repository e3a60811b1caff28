"""
URL Shortening Service

This service handles the core business logic for link creation:
- Validating destination URLs
- Human verification for anonymous requesters, quota for authenticated ones
- Gating premium options (custom alias, expiry, password)
- Allocating a unique short code

Design Decisions:
- Base62 alphabet: [0-9a-zA-Z] for maximum URL compatibility
- Random codes from ``secrets``: not guessable from neighbouring links
- Uniqueness is enforced by the store's unique index; a random code that
  collides is simply replaced and the insert retried
"""

import logging
import secrets
from datetime import timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from shortcut.core.exceptions import (
    AliasTakenError,
    DatabaseError,
    InvalidURLError,
    LinkNotFoundError,
    NotLinkOwnerError,
    QuotaExceededError,
    VerificationProviderError,
)
from shortcut.core.security import hash_password
from shortcut.core.setting import settings
from shortcut.core.validators import RESERVED_CODES, is_valid_url, validate_alias
from shortcut.db.models import Account, Link, utcnow
from shortcut.services.account_service import AccountService
from shortcut.services.feature_gate import Capability, FeatureGate
from shortcut.services.human_verification import RecaptchaVerifier

logger = logging.getLogger(__name__)

BASE62_CHARS = "0123456789abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ"


def generate_short_code(length: int = settings.SHORT_CODE_LENGTH) -> str:
    """Random fixed-length base62 code."""
    return "".join(secrets.choice(BASE62_CHARS) for _ in range(length))


class URLShorteningService:
    """
    Core business logic for link creation and management.

    Separated from API layer for testability and maintainability.
    """

    def __init__(
        self,
        session: AsyncSession,
        verifier: Optional[RecaptchaVerifier] = None,
        feature_gate: Optional[FeatureGate] = None,
    ):
        self.session = session
        self.verifier = verifier
        self.feature_gate = feature_gate or FeatureGate()
        self.accounts = AccountService(session)

    async def create_short_url(
        self,
        original_url: str,
        owner: Optional[Account] = None,
        custom_alias: Optional[str] = None,
        expires_in_days: Optional[int] = None,
        password: Optional[str] = None,
        verification_token: Optional[str] = None,
        remote_ip: Optional[str] = None,
    ) -> Link:
        """
        Create a new short link.

        Args:
            original_url: The destination URL
            owner: Authenticated requester, None for anonymous requests
            custom_alias: Requested alias instead of a random code (premium)
            expires_in_days: Link lifetime in days (premium)
            password: Access password (premium)
            verification_token: Human-verification token, required when anonymous
            remote_ip: Requester address forwarded to the verification provider

        Returns:
            The persisted Link

        Raises:
            InvalidURLError: If URL format is invalid
            HumanVerificationError: Anonymous request without a valid token
            QuotaExceededError: Owner already at their tier's link limit
            PremiumRequiredError: A requested option is outside the tier
            AliasTakenError: The custom alias is already in use
            DatabaseError: If the link cannot be persisted
        """
        if not is_valid_url(original_url):
            raise InvalidURLError(
                original_url,
                reason="Invalid URL format. URL must use http:// or https:// and name a host"
            )

        if owner is None:
            await self._verify_human(verification_token, remote_ip)
        else:
            await self._check_quota(owner)

        requested = []
        if custom_alias:
            requested.append(Capability.CUSTOM_ALIAS)
        if expires_in_days:
            requested.append(Capability.EXPIRY)
        if password:
            requested.append(Capability.PASSWORD_PROTECTION)
        self.feature_gate.require(owner, requested)

        created_at = utcnow()
        link_fields = {
            "original_url": original_url,
            "owner_id": owner.id if owner is not None else None,
            "created_at": created_at,
            "expires_at": (
                created_at + timedelta(days=expires_in_days) if expires_in_days else None
            ),
            "password_hash": hash_password(password) if password else None,
        }

        if custom_alias:
            link = await self._insert_with_alias(validate_alias(custom_alias), link_fields)
        else:
            link = await self._insert_with_random_code(link_fields)

        logger.info(
            "Created link %s (owner=%s, custom=%s, expires_at=%s, protected=%s)",
            link.short_code, link.owner_id, link.is_custom,
            link.expires_at, link.is_password_protected,
        )
        return link

    async def get_link_by_code(self, short_code: str) -> Optional[Link]:
        statement = select(Link).where(Link.short_code == short_code)
        result = await self.session.execute(statement)
        return result.scalar_one_or_none()

    async def get_owned_link(self, link_id: int, owner: Account) -> Link:
        """
        Raises:
            LinkNotFoundError: No link with this id
            NotLinkOwnerError: The link belongs to someone else or nobody
        """
        link = await self.session.get(Link, link_id)
        if link is None:
            raise LinkNotFoundError(link_id)
        if link.owner_id != owner.id:
            raise NotLinkOwnerError(link_id)
        return link

    async def list_links(self, owner: Account) -> list[Link]:
        statement = (
            select(Link)
            .where(Link.owner_id == owner.id)
            .order_by(Link.created_at.desc(), Link.id.desc())
        )
        result = await self.session.execute(statement)
        return list(result.scalars().all())

    async def delete_link(self, link_id: int, owner: Account) -> None:
        link = await self.get_owned_link(link_id, owner)
        short_code = link.short_code
        await self.session.delete(link)
        await self.session.commit()
        logger.info("Deleted link %s (%s)", link_id, short_code)

    async def _verify_human(self, token: Optional[str], remote_ip: Optional[str]) -> None:
        if self.verifier is None:
            raise VerificationProviderError("human verification is not configured")
        await self.verifier.verify(token, remote_ip)

    async def _check_quota(self, owner: Account) -> None:
        limit = owner.entitlements.max_links
        current = await self.accounts.count_links(owner.id)
        if current >= limit:
            logger.info("Account %s hit its link quota (%d/%d)", owner.id, current, limit)
            raise QuotaExceededError(limit)

    async def _insert_with_alias(self, alias: str, link_fields: dict) -> Link:
        if await self.get_link_by_code(alias) is not None:
            raise AliasTakenError(alias)

        link = Link(short_code=alias, is_custom=True, **link_fields)
        self.session.add(link)
        try:
            await self.session.commit()
        except IntegrityError:
            # Another request claimed the alias between the check and the insert
            await self.session.rollback()
            raise AliasTakenError(alias)
        await self.session.refresh(link)
        return link

    async def _insert_with_random_code(self, link_fields: dict) -> Link:
        attempts = settings.SHORT_CODE_MAX_ATTEMPTS
        last_error = None
        for attempt in range(1, attempts + 1):
            short_code = generate_short_code()
            if short_code.lower() in RESERVED_CODES:
                continue

            link = Link(short_code=short_code, is_custom=False, **link_fields)
            self.session.add(link)
            try:
                await self.session.commit()
            except IntegrityError as e:
                await self.session.rollback()
                logger.warning(
                    "Short code collision on %s (attempt %d/%d)", short_code, attempt, attempts
                )
                last_error = e
                continue
            await self.session.refresh(link)
            return link

        raise DatabaseError(
            f"Could not allocate a unique short code after {attempts} attempts",
            original_error=last_error,
        )
