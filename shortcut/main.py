"""
FastAPI Application Entry Point

This module initializes the FastAPI application and configures:
- API routes
- Middleware (logging, CORS, rate limiting)
- Domain exception to HTTP response translation
- Process-wide collaborators (billing client, human verifier)

Design Decisions:
- Clean separation: Routes, middleware, and app config are separate
- Collaborators are built once in the lifespan and stored on app.state,
  never mutated afterwards
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from shortcut.api import accounts, endpoints, subscriptions
from shortcut.core.exceptions import ShortcutError
from shortcut.core.rate_limit import limiter
from shortcut.core.setting import settings
from shortcut.db.session import create_schema, engine
from shortcut.middleware.logging import add_logging_middleware
from shortcut.services.billing import StripeBillingClient
from shortcut.services.human_verification import RecaptchaVerifier

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build shared collaborators on startup; release them and the engine on shutdown."""
    app.state.billing_client = StripeBillingClient.from_settings(settings)
    app.state.human_verifier = RecaptchaVerifier(settings)
    if not app.state.billing_client.is_configured:
        logger.warning("Stripe is not configured; checkout runs in simulated mode")

    if settings.AUTO_CREATE_SCHEMA and not settings.is_production:
        await create_schema()

    yield

    await app.state.human_verifier.aclose()
    await engine.dispose()


app = FastAPI(
    title="ShortcutURL API",
    description="URL shortening with accounts, analytics and subscription tiers",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(ShortcutError)
async def shortcut_error_handler(request: Request, exc: ShortcutError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(
            "%s %s failed: %s", request.method, request.url.path, exc,
            exc_info=getattr(exc, "original_error", None),
        )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code, **exc.extra()},
    )


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    detail = "Internal server error" if settings.is_production else f"{type(exc).__name__}: {exc}"
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": detail, "code": "internal_error"},
    )


add_logging_middleware(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_URL] if settings.is_production else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Health endpoints defined before the redirect router to match before its catch-all route
@app.get("/", tags=["Health"])
async def root():
    return {
        "message": "Welcome to ShortcutURL API",
        "version": "1.0.0",
        "docs": "/docs"
    }


@app.get("/health", tags=["Health"])
async def health_check():
    return {"status": "healthy"}


app.include_router(accounts.router, tags=["Users"])
app.include_router(endpoints.router, tags=["URLs"])
app.include_router(subscriptions.router, tags=["Subscriptions"])
app.include_router(endpoints.redirect_router, tags=["Redirect"])
