"""
Visit Classification

Turns the request context of a redirect (referrer header and user-agent
string) into the category labels used by the link analytics aggregates.
"""

from dataclasses import dataclass
from typing import Optional

DIRECT_REFERRER = "direct"
UNKNOWN_BROWSER = "Other"

# Checked in order, first match wins. Many user-agents carry several of these
# tokens (Chrome's includes "Safari"), so the order is part of the contract.
BROWSER_MARKERS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("Chrome", ("Chrome",)),
    ("Firefox", ("Firefox",)),
    ("Safari", ("Safari",)),
    ("Edge", ("Edge", "Edg/")),
    ("Internet Explorer", ("MSIE", "Trident")),
)

MOBILE_MARKERS = ("Mobile", "iPhone")
TABLET_MARKERS = ("Tablet", "iPad", "Android")


@dataclass(frozen=True)
class VisitClassification:
    referrer: str
    browser: str
    device: str


def classify_referrer(referrer: Optional[str]) -> str:
    referrer = (referrer or "").strip()
    return referrer or DIRECT_REFERRER


def classify_browser(user_agent: Optional[str]) -> str:
    user_agent = user_agent or ""
    for name, markers in BROWSER_MARKERS:
        if any(marker in user_agent for marker in markers):
            return name
    return UNKNOWN_BROWSER


def classify_device(user_agent: Optional[str]) -> str:
    user_agent = user_agent or ""
    if any(marker in user_agent for marker in MOBILE_MARKERS):
        return "mobile"
    if any(marker in user_agent for marker in TABLET_MARKERS):
        return "tablet"
    return "desktop"


def classify_visit(referrer: Optional[str], user_agent: Optional[str]) -> VisitClassification:
    return VisitClassification(
        referrer=classify_referrer(referrer),
        browser=classify_browser(user_agent),
        device=classify_device(user_agent),
    )


def increment_bucket(counts: Optional[dict], label: str) -> dict:
    """
    Return a copy of ``counts`` with ``label`` incremented.

    A fresh dict is returned so SQLAlchemy notices the JSON column changed.
    """
    updated = dict(counts or {})
    updated[label] = updated.get(label, 0) + 1
    return updated
