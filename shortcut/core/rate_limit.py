"""
Rate Limiting Configuration

This module provides rate limiting functionality for API endpoints.
Rate limiting is a boundary concern: it throttles link creation and
redirects per client address to bound abuse.

Design Decisions:
- Uses slowapi for rate limiting (lightweight, FastAPI-compatible)
- Different limits for different endpoints
- IP-based limiting
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from shortcut.core.setting import settings

limiter = Limiter(key_func=get_remote_address, enabled=settings.RATE_LIMIT_ENABLED)

# Format: "count/period" (e.g., "10/minute" means 10 requests per minute)
RATE_LIMITS = {
    "shorten": "10/minute",
    "redirect": "100/minute",
    "auth": "20/minute",
    "stats": "30/minute",
}
