"""
Statistics Service

Read-only views over the link store:
- Global totals shown on the public landing page
- Per-link analytics for the link's owner (analytics capability required)
"""

from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from shortcut.db.models import Account, Link
from shortcut.services.feature_gate import Capability, FeatureGate
from shortcut.services.url_service import URLShorteningService


def _ranked(counts: dict) -> list[dict]:
    """Bucket map as a list of {label, count}, most frequent first."""
    return [
        {"label": label, "count": count}
        for label, count in sorted((counts or {}).items(), key=lambda item: (-item[1], item[0]))
    ]


class StatsService:
    """Service for retrieving link statistics."""

    def __init__(self, session: AsyncSession, feature_gate: Optional[FeatureGate] = None):
        self.session = session
        self.url_service = URLShorteningService(session)
        self.feature_gate = feature_gate or FeatureGate()

    async def get_global_stats(self) -> dict:
        statement = select(func.count(Link.id), func.coalesce(func.sum(Link.clicks), 0))
        result = await self.session.execute(statement)
        total_links, total_clicks = result.one()
        return {"total_links": total_links, "total_clicks": total_clicks}

    async def get_link_analytics(self, link_id: int, owner: Account) -> dict:
        """
        Analytics breakdown for one of the owner's links.

        Raises:
            LinkNotFoundError / NotLinkOwnerError: From the ownership check
            PremiumRequiredError: If the owner's tier has no analytics
        """
        link = await self.url_service.get_owned_link(link_id, owner)
        self.feature_gate.require(owner, [Capability.ANALYTICS])

        return {
            "short_code": link.short_code,
            "original_url": link.original_url,
            "created_at": link.created_at,
            "clicks": link.clicks,
            "referrers": _ranked(link.referrer_counts),
            "browsers": _ranked(link.browser_counts),
            "devices": _ranked(link.device_counts),
        }
