"""
Shared FastAPI dependencies.

Process-wide collaborators (billing client, human verifier) are built once
at startup and kept on ``app.state``; endpoints receive them through these
functions, which tests override.
"""

from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from shortcut.core.exceptions import AccountNotFoundError, AuthenticationError
from shortcut.core.security import decode_access_token
from shortcut.db.models import Account
from shortcut.db.session import get_session
from shortcut.services.account_service import AccountService
from shortcut.services.billing import StripeBillingClient
from shortcut.services.human_verification import RecaptchaVerifier

bearer_scheme = HTTPBearer(auto_error=False)


def get_client_ip(request: Request) -> str:
    """
    Extract client IP address from request.

    Handles proxies and load balancers by checking X-Forwarded-For header.
    """
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # X-Forwarded-For can contain multiple IPs, take the first one
        return forwarded_for.split(",")[0].strip()

    return request.client.host if request.client else "unknown"


def get_billing_client(request: Request) -> StripeBillingClient:
    return request.app.state.billing_client


def get_human_verifier(request: Request) -> RecaptchaVerifier:
    return request.app.state.human_verifier


async def get_optional_account(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    session: AsyncSession = Depends(get_session),
) -> Optional[Account]:
    """
    The authenticated account, or None for anonymous requests.

    A token that is present but invalid is an error, not an anonymous request.
    """
    if credentials is None:
        return None

    account_id = decode_access_token(credentials.credentials)
    try:
        return await AccountService(session).get_account(account_id)
    except AccountNotFoundError:
        raise AuthenticationError("Not authorized, account no longer exists")


async def get_current_account(
    account: Optional[Account] = Depends(get_optional_account),
) -> Account:
    if account is None:
        raise AuthenticationError("Not authorized, no token")
    return account
