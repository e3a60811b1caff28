"""
Tests for the Account Service.
"""

from datetime import timedelta

import pytest
from sqlalchemy import func, select

from shortcut.core.exceptions import AccountNotFoundError, AuthenticationError, EmailTakenError
from shortcut.core.security import verify_password
from shortcut.core.tiers import Tier
from shortcut.db.models import Account, Link, utcnow
from shortcut.services.account_service import AccountService
from shortcut.services.url_service import URLShorteningService


class TestRegistration:
    @pytest.mark.asyncio
    async def test_register_free_account(self, session):
        account = await AccountService(session).register(" Ada ", " Ada@Example.COM ", "s3cret!")

        assert account.name == "Ada"
        assert account.email == "ada@example.com"
        assert account.tier == Tier.FREE
        assert account.subscription_expiry is None
        assert account.password_hash != "s3cret!"
        assert account.entitlements.max_links == 10

    @pytest.mark.asyncio
    async def test_duplicate_email(self, session):
        service = AccountService(session)
        await service.register("Ada", "ada@example.com", "s3cret!")

        with pytest.raises(EmailTakenError):
            await service.register("Other Ada", "ADA@example.com", "different")


class TestAuthentication:
    @pytest.mark.asyncio
    async def test_login(self, session, make_account):
        account = await make_account(password="correct-horse")
        authenticated = await AccountService(session).authenticate(
            "USER@example.com", "correct-horse"
        )
        assert authenticated.id == account.id

    @pytest.mark.asyncio
    async def test_wrong_password(self, session, make_account):
        await make_account(password="correct-horse")
        with pytest.raises(AuthenticationError):
            await AccountService(session).authenticate("user@example.com", "battery-staple")

    @pytest.mark.asyncio
    async def test_unknown_email(self, session):
        with pytest.raises(AuthenticationError):
            await AccountService(session).authenticate("ghost@example.com", "whatever")


class TestLazyExpiry:
    """A paid account is downgraded as soon as it is read after its expiry."""

    @pytest.mark.asyncio
    async def test_expiry_equal_to_now_downgrades(self, session, make_account):
        expiry = utcnow() + timedelta(days=3)
        account = await make_account(tier=Tier.PREMIUM, expiry=expiry)

        loaded = await AccountService(session).get_account(account.id, now=expiry)

        assert loaded.tier == Tier.FREE
        assert loaded.subscription_expiry is None
        assert loaded.entitlements.custom_aliases_enabled is False

    @pytest.mark.asyncio
    async def test_active_subscription_kept(self, session, make_account):
        expiry = utcnow() + timedelta(days=3)
        account = await make_account(tier=Tier.ENTERPRISE, expiry=expiry)

        loaded = await AccountService(session).get_account(
            account.id, now=expiry - timedelta(seconds=1)
        )

        assert loaded.tier == Tier.ENTERPRISE
        assert loaded.subscription_expiry == expiry

    @pytest.mark.asyncio
    async def test_downgrade_persisted(self, session, session_maker, make_account):
        account = await make_account(
            tier=Tier.PREMIUM, expiry=utcnow() - timedelta(minutes=1)
        )
        await AccountService(session).get_account(account.id)

        async with session_maker() as fresh:
            result = await fresh.execute(
                select(Account.tier).where(Account.id == account.id)
            )
            assert result.scalar_one() == Tier.FREE

    @pytest.mark.asyncio
    async def test_login_applies_expiry(self, session, make_account):
        await make_account(
            tier=Tier.PREMIUM, expiry=utcnow() - timedelta(days=1), password="correct-horse"
        )
        account = await AccountService(session).authenticate("user@example.com", "correct-horse")
        assert account.tier == Tier.FREE

    @pytest.mark.asyncio
    async def test_unknown_account(self, session):
        with pytest.raises(AccountNotFoundError):
            await AccountService(session).get_account("0" * 32)


class TestProfile:
    @pytest.mark.asyncio
    async def test_update_profile(self, session, make_account):
        account = await make_account()
        service = AccountService(session)

        updated = await service.update_profile(
            account, name="Grace", email="Grace@Example.com", password="new-password"
        )

        assert updated.name == "Grace"
        assert updated.email == "grace@example.com"
        assert verify_password("new-password", updated.password_hash)

    @pytest.mark.asyncio
    async def test_update_to_taken_email(self, session, make_account):
        await make_account(email="taken@example.com")
        account = await make_account(email="mine@example.com")

        with pytest.raises(EmailTakenError):
            await AccountService(session).update_profile(account, email="taken@example.com")

    @pytest.mark.asyncio
    async def test_delete_account_removes_links(self, session, make_account):
        account = await make_account()
        other = await make_account(email="other@example.com")
        urls = URLShorteningService(session)
        await urls.create_short_url("https://example.com/1", owner=account)
        await urls.create_short_url("https://example.com/2", owner=account)
        kept = await urls.create_short_url("https://example.com/3", owner=other)

        removed = await AccountService(session).delete_account(account)

        assert removed == 2
        remaining = await session.execute(select(func.count()).select_from(Link))
        assert remaining.scalar_one() == 1
        assert await urls.get_link_by_code(kept.short_code) is not None


class TestUsage:
    @pytest.mark.asyncio
    async def test_usage_counts(self, session, make_account):
        account = await make_account(tier=Tier.PREMIUM, expiry=utcnow() + timedelta(days=30))
        urls = URLShorteningService(session)
        first = await urls.create_short_url("https://example.com/1", owner=account)
        await urls.create_short_url("https://example.com/2", owner=account)
        first.clicks = 5
        await session.commit()

        usage = await AccountService(session).get_usage(account)

        assert usage == {
            "total_links": 2,
            "total_clicks": 5,
            "max_links": 100,
            "remaining_links": 98,
        }
