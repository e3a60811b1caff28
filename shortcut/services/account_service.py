"""
Account Service

Registration, authentication and profile management for user accounts.

Every account read goes through ``get_account`` (or one of the lookups built
on it), which applies the lazy subscription expiry check: an account whose
paid period has lapsed is downgraded to free and persisted before it is
returned.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from shortcut.core.exceptions import (
    AccountNotFoundError,
    AuthenticationError,
    EmailTakenError,
)
from shortcut.core.security import hash_password, verify_password
from shortcut.db.models import Account, Link, utcnow

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    return email.strip().lower()


class AccountService:
    """Account store operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def register(self, name: str, email: str, password: str) -> Account:
        """
        Create a free-tier account.

        Raises:
            EmailTakenError: If the email is already registered
        """
        email = normalize_email(email)
        if await self._find_by_email(email) is not None:
            raise EmailTakenError(email)

        account = Account(
            name=name.strip(),
            email=email,
            password_hash=hash_password(password),
        )
        self.session.add(account)
        try:
            await self.session.commit()
        except IntegrityError:
            # Lost a race with a concurrent registration for the same email
            await self.session.rollback()
            raise EmailTakenError(email)
        await self.session.refresh(account)

        logger.info("Registered account %s", account.id)
        return account

    async def authenticate(self, email: str, password: str) -> Account:
        """
        Raises:
            AuthenticationError: Unknown email or wrong password
        """
        account = await self._find_by_email(normalize_email(email))
        if account is None or not verify_password(password, account.password_hash):
            raise AuthenticationError("Invalid email or password")
        return await self._apply_lazy_expiry(account, utcnow())

    async def get_account(self, account_id: str, now: Optional[datetime] = None) -> Account:
        """
        Load an account, downgrading it first if its subscription has lapsed.

        Raises:
            AccountNotFoundError: If no account has this id
        """
        account = await self.session.get(Account, account_id)
        if account is None:
            raise AccountNotFoundError(account_id)
        return await self._apply_lazy_expiry(account, now or utcnow())

    async def find_by_billing_customer(self, customer_id: str) -> Optional[Account]:
        statement = select(Account).where(Account.billing_customer_id == customer_id).limit(1)
        result = await self.session.execute(statement)
        account = result.scalars().first()
        if account is None:
            return None
        return await self._apply_lazy_expiry(account, utcnow())

    async def update_profile(
        self,
        account: Account,
        name: Optional[str] = None,
        email: Optional[str] = None,
        password: Optional[str] = None,
    ) -> Account:
        """
        Raises:
            EmailTakenError: If the new email belongs to another account
        """
        if name:
            account.name = name.strip()

        if email:
            email = normalize_email(email)
            if email != account.email:
                existing = await self._find_by_email(email)
                if existing is not None and existing.id != account.id:
                    raise EmailTakenError(email)
                account.email = email

        if password:
            account.password_hash = hash_password(password)

        account.updated_at = utcnow()
        try:
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            raise EmailTakenError(email)
        await self.session.refresh(account)
        return account

    async def delete_account(self, account: Account) -> int:
        """
        Delete an account together with every link it owns.

        Returns:
            Number of links removed
        """
        account_id = account.id
        result = await self.session.execute(delete(Link).where(Link.owner_id == account_id))
        await self.session.delete(account)
        await self.session.commit()

        logger.info("Deleted account %s and %d links", account_id, result.rowcount)
        return result.rowcount

    async def count_links(self, account_id: str) -> int:
        statement = select(func.count()).select_from(Link).where(Link.owner_id == account_id)
        result = await self.session.execute(statement)
        return result.scalar_one()

    async def get_usage(self, account: Account) -> dict:
        """Link count, click total and remaining quota for an account."""
        statement = (
            select(func.count(Link.id), func.coalesce(func.sum(Link.clicks), 0))
            .where(Link.owner_id == account.id)
        )
        result = await self.session.execute(statement)
        total_links, total_clicks = result.one()
        max_links = account.entitlements.max_links
        return {
            "total_links": total_links,
            "total_clicks": total_clicks,
            "max_links": max_links,
            "remaining_links": max(max_links - total_links, 0),
        }

    async def _find_by_email(self, email: str) -> Optional[Account]:
        statement = select(Account).where(Account.email == email).limit(1)
        result = await self.session.execute(statement)
        return result.scalars().first()

    async def _apply_lazy_expiry(self, account: Account, now: datetime) -> Account:
        if account.subscription_lapsed(now):
            logger.info(
                "Subscription of account %s (%s) lapsed at %s, downgrading to free",
                account.id, account.tier.value, account.subscription_expiry,
            )
            account.downgrade()
            await self.session.commit()
            await self.session.refresh(account)
        return account
