"""
Redirect Service

This service resolves a short code to its destination and records the visit.

Order of checks for a visit:
1. Unknown code -> not found
2. Expired -> flag persisted, gone
3. Password protected -> password required / wrong password
4. Owner has analytics -> referrer, browser and device buckets incremented
5. Click counter incremented and the row persisted before redirecting

Analytics are best effort: a failure there is logged and never blocks the
redirect. A failure persisting the visit aborts the redirect.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from shortcut.core.exceptions import (
    AccountNotFoundError,
    DatabaseError,
    InvalidLinkPasswordError,
    LinkExpiredError,
    PasswordRequiredError,
    ShortCodeNotFoundError,
)
from shortcut.core.security import verify_password
from shortcut.db.models import Link, utcnow
from shortcut.services.account_service import AccountService
from shortcut.services.feature_gate import Capability, FeatureGate
from shortcut.services.url_service import URLShorteningService
from shortcut.services.visit_classifier import classify_visit, increment_bucket

logger = logging.getLogger(__name__)


class RedirectService:
    """Service for handling URL redirections."""

    def __init__(self, session: AsyncSession, feature_gate: Optional[FeatureGate] = None):
        self.session = session
        self.url_service = URLShorteningService(session)
        self.accounts = AccountService(session)
        self.feature_gate = feature_gate or FeatureGate()

    async def get_redirect_url(
        self,
        short_code: str,
        password: Optional[str] = None,
        referrer: Optional[str] = None,
        user_agent: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> str:
        """
        Resolve a short code for redirection and record the visit.

        Returns:
            The destination URL

        Raises:
            ShortCodeNotFoundError: Unknown short code
            LinkExpiredError: The link's expiry has passed
            PasswordRequiredError: Protected link, no password supplied
            InvalidLinkPasswordError: Protected link, wrong password
            DatabaseError: The visit could not be persisted
        """
        now = now or utcnow()

        link = await self.url_service.get_link_by_code(short_code)
        if link is None:
            raise ShortCodeNotFoundError(short_code)

        if link.has_expired(now):
            await self._mark_expired(link)
            raise LinkExpiredError(short_code)

        if link.is_password_protected:
            if not password:
                raise PasswordRequiredError(short_code)
            if not verify_password(password, link.password_hash):
                raise InvalidLinkPasswordError(short_code)

        await self._record_analytics(link, referrer, user_agent, now)
        link.clicks = (link.clicks or 0) + 1

        destination = link.original_url
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise DatabaseError(f"Failed to record visit for '{short_code}'", original_error=e)

        return destination

    async def _mark_expired(self, link: Link) -> None:
        if link.is_expired:
            return
        short_code = link.short_code
        link.is_expired = True
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise DatabaseError(f"Failed to flag '{short_code}' as expired", original_error=e)
        logger.info("Link %s flagged as expired", short_code)

    async def _record_analytics(
        self,
        link: Link,
        referrer: Optional[str],
        user_agent: Optional[str],
        now: datetime,
    ) -> None:
        if link.owner_id is None:
            return

        try:
            owner = await self.accounts.get_account(link.owner_id, now=now)
        except AccountNotFoundError:
            return

        if not self.feature_gate.evaluate(owner, Capability.ANALYTICS).allowed:
            return

        try:
            visit = classify_visit(referrer, user_agent)
            link.referrer_counts = increment_bucket(link.referrer_counts, visit.referrer)
            link.browser_counts = increment_bucket(link.browser_counts, visit.browser)
            link.device_counts = increment_bucket(link.device_counts, visit.device)
        except Exception:
            logger.warning("Failed to classify visit for %s", link.short_code, exc_info=True)
