"""
FastAPI Endpoints for User Accounts

Registration, login and profile management. Tokens are returned as bearer
tokens and sent back in the ``Authorization`` header.
"""

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from shortcut.api.deps import get_current_account
from shortcut.api.schemas import (
    AccountResponse,
    AccountStatsResponse,
    LoginRequest,
    MessageResponse,
    ProfileUpdateRequest,
    RegisterRequest,
    TokenResponse,
)
from shortcut.core.rate_limit import RATE_LIMITS, limiter
from shortcut.core.security import create_access_token
from shortcut.db.models import Account
from shortcut.db.session import get_session
from shortcut.services.account_service import AccountService

router = APIRouter(prefix="/api/users")


@router.post(
    "",
    response_model=TokenResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new account"
)
@limiter.limit(RATE_LIMITS["auth"])
async def register(
    request: Request,
    body: RegisterRequest,
    session: AsyncSession = Depends(get_session),
) -> TokenResponse:
    account = await AccountService(session).register(body.name, body.email, body.password)
    return TokenResponse(
        access_token=create_access_token(account.id),
        account=AccountResponse.from_account(account),
    )


@router.post(
    "/login",
    response_model=TokenResponse,
    summary="Exchange credentials for a bearer token"
)
@limiter.limit(RATE_LIMITS["auth"])
async def login(
    request: Request,
    body: LoginRequest,
    session: AsyncSession = Depends(get_session),
) -> TokenResponse:
    account = await AccountService(session).authenticate(body.email, body.password)
    return TokenResponse(
        access_token=create_access_token(account.id),
        account=AccountResponse.from_account(account),
    )


@router.get("/profile", response_model=AccountResponse)
async def get_profile(account: Account = Depends(get_current_account)) -> AccountResponse:
    return AccountResponse.from_account(account)


@router.put("/profile", response_model=AccountResponse)
async def update_profile(
    body: ProfileUpdateRequest,
    session: AsyncSession = Depends(get_session),
    account: Account = Depends(get_current_account),
) -> AccountResponse:
    account = await AccountService(session).update_profile(
        account, name=body.name, email=body.email, password=body.password
    )
    return AccountResponse.from_account(account)


@router.delete("/profile", response_model=MessageResponse)
async def delete_profile(
    session: AsyncSession = Depends(get_session),
    account: Account = Depends(get_current_account),
) -> MessageResponse:
    await AccountService(session).delete_account(account)
    return MessageResponse(message="User removed")


@router.get("/stats", response_model=AccountStatsResponse)
async def get_account_stats(
    session: AsyncSession = Depends(get_session),
    account: Account = Depends(get_current_account),
) -> AccountStatsResponse:
    usage = await AccountService(session).get_usage(account)
    return AccountStatsResponse(**usage)
