"""
FastAPI Endpoints for Links and Redirects

This module defines the link REST API and the public redirect route with
minimal logic. Endpoints only handle:
- Request validation (Pydantic models)
- Rate limiting
- Delegating to the service layer

Domain errors raised by services are turned into HTTP responses by the
exception handlers registered in ``shortcut.main``.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from shortcut.api.deps import (
    get_client_ip,
    get_current_account,
    get_human_verifier,
    get_optional_account,
)
from shortcut.api.schemas import (
    GlobalStatsResponse,
    LinkAnalyticsResponse,
    LinkResponse,
    MessageResponse,
    ShortenRequest,
)
from shortcut.core.rate_limit import RATE_LIMITS, limiter
from shortcut.core.validators import sanitize_short_code
from shortcut.db.models import Account
from shortcut.db.session import get_session
from shortcut.services.human_verification import RecaptchaVerifier
from shortcut.services.redirect_service import RedirectService
from shortcut.services.stats_service import StatsService
from shortcut.services.url_service import URLShorteningService

router = APIRouter(prefix="/api/urls")
redirect_router = APIRouter()


@router.post(
    "",
    response_model=LinkResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a short URL",
    description="Takes a long URL and returns a shortened version with a unique code"
)
@limiter.limit(RATE_LIMITS["shorten"])
async def create_short_url(
    request: Request,  # Required for rate limiting (slowapi expects parameter named 'request')
    body: ShortenRequest,
    session: AsyncSession = Depends(get_session),
    account: Optional[Account] = Depends(get_optional_account),
    verifier: RecaptchaVerifier = Depends(get_human_verifier),
) -> LinkResponse:
    url_service = URLShorteningService(session, verifier=verifier)
    link = await url_service.create_short_url(
        body.original_url.strip(),
        owner=account,
        custom_alias=body.custom_alias,
        expires_in_days=body.expires_in_days,
        password=body.password,
        verification_token=body.recaptcha_token,
        remote_ip=get_client_ip(request),
    )
    return LinkResponse.from_link(link)


@router.get(
    "",
    response_model=list[LinkResponse],
    summary="List the caller's links"
)
async def list_urls(
    session: AsyncSession = Depends(get_session),
    account: Account = Depends(get_current_account),
) -> list[LinkResponse]:
    links = await URLShorteningService(session).list_links(account)
    return [LinkResponse.from_link(link) for link in links]


@router.get(
    "/stats",
    response_model=GlobalStatsResponse,
    summary="Global statistics"
)
@limiter.limit(RATE_LIMITS["stats"])
async def get_global_stats(
    request: Request,
    session: AsyncSession = Depends(get_session),
) -> GlobalStatsResponse:
    stats = await StatsService(session).get_global_stats()
    return GlobalStatsResponse(**stats)


@router.delete(
    "/{link_id}",
    response_model=MessageResponse,
    summary="Delete one of the caller's links"
)
async def delete_url(
    link_id: int,
    session: AsyncSession = Depends(get_session),
    account: Account = Depends(get_current_account),
) -> MessageResponse:
    await URLShorteningService(session).delete_link(link_id, account)
    return MessageResponse(message="URL removed")


@router.get(
    "/{link_id}/analytics",
    response_model=LinkAnalyticsResponse,
    summary="Click analytics for one of the caller's links"
)
@limiter.limit(RATE_LIMITS["stats"])
async def get_url_analytics(
    link_id: int,
    request: Request,
    session: AsyncSession = Depends(get_session),
    account: Account = Depends(get_current_account),
) -> LinkAnalyticsResponse:
    analytics = await StatsService(session).get_link_analytics(link_id, account)
    return LinkAnalyticsResponse(**analytics)


@redirect_router.get(
    "/{short_code}",
    status_code=status.HTTP_302_FOUND,
    summary="Redirect to original URL",
    description="Takes a short code and redirects to the original long URL"
)
@limiter.limit(RATE_LIMITS["redirect"])
async def redirect_to_url(
    short_code: str,
    request: Request,
    password: Optional[str] = Query(None, description="Password for protected links"),
    link_password: Optional[str] = Header(None, alias="X-Link-Password"),
    session: AsyncSession = Depends(get_session),
) -> RedirectResponse:
    """
    Redirect to the original URL for a given short code.

    Raises:
        HTTPException 400: If short code format is invalid
        404 / 410 / 401: Unknown, expired, or password-protected link
        HTTPException 429: If rate limit exceeded
    """
    sanitized_code = sanitize_short_code(short_code)
    if not sanitized_code:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid short code format: '{short_code}'."
        )

    redirect_service = RedirectService(session)
    original_url = await redirect_service.get_redirect_url(
        sanitized_code,
        password=password or link_password,
        referrer=request.headers.get("Referer"),
        user_agent=request.headers.get("User-Agent"),
    )

    return RedirectResponse(
        url=original_url,
        status_code=status.HTTP_302_FOUND
    )
