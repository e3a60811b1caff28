"""
Tests for visit classification used by link analytics.
"""

import pytest

from shortcut.services.visit_classifier import (
    classify_browser,
    classify_device,
    classify_referrer,
    classify_visit,
    increment_bucket,
)


class TestReferrer:
    def test_direct_when_missing(self):
        assert classify_referrer(None) == "direct"
        assert classify_referrer("   ") == "direct"

    def test_referrer_kept(self):
        assert classify_referrer("https://t.co/xyz") == "https://t.co/xyz"


class TestBrowser:
    @pytest.mark.parametrize("user_agent,expected", [
        ("Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 Chrome/120.0 Safari/537.36", "Chrome"),
        ("Mozilla/5.0 (Windows NT 10.0; rv:121.0) Gecko/20100101 Firefox/121.0", "Firefox"),
        ("Mozilla/5.0 (Macintosh) AppleWebKit/605.1.15 Version/17.0 Safari/605.1.15", "Safari"),
        ("Mozilla/5.0 (Windows NT 10.0) Edge/18.18363", "Edge"),
        ("Mozilla/5.0 (Windows NT 6.1; Trident/7.0; rv:11.0) like Gecko", "Internet Explorer"),
        ("Mozilla/4.0 (compatible; MSIE 8.0; Windows NT 6.1)", "Internet Explorer"),
        ("curl/8.4.0", "Other"),
        (None, "Other"),
    ])
    def test_classification(self, user_agent, expected):
        assert classify_browser(user_agent) == expected

    def test_chrome_wins_over_safari(self):
        assert classify_browser("Chrome/120.0 Safari/537.36") == "Chrome"

    def test_chromium_edge_reports_chrome(self):
        """Chromium Edge carries a Chrome token, which is checked first."""
        ua = "Mozilla/5.0 AppleWebKit/537.36 Chrome/120.0 Safari/537.36 Edg/120.0"
        assert classify_browser(ua) == "Chrome"


class TestDevice:
    @pytest.mark.parametrize("user_agent,expected", [
        ("Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X)", "mobile"),
        ("Mozilla/5.0 (Linux; Android 14) Mobile Safari/537.36", "mobile"),
        ("Mozilla/5.0 (Linux; Android 14; SM-X700) Safari/537.36", "tablet"),
        ("Mozilla/5.0 (iPad; CPU OS 17_0 like Mac OS X)", "tablet"),
        ("Mozilla/5.0 (Windows NT 10.0; Win64; x64)", "desktop"),
        (None, "desktop"),
    ])
    def test_classification(self, user_agent, expected):
        assert classify_device(user_agent) == expected


def test_classify_visit():
    visit = classify_visit(None, "Mozilla/5.0 (iPhone) Safari/604.1")
    assert (visit.referrer, visit.browser, visit.device) == ("direct", "Safari", "mobile")


def test_increment_bucket_returns_new_dict():
    counts = {"Chrome": 2}
    updated = increment_bucket(counts, "Chrome")
    updated = increment_bucket(updated, "Firefox")

    assert updated == {"Chrome": 3, "Firefox": 1}
    assert counts == {"Chrome": 2}
    assert increment_bucket(None, "direct") == {"direct": 1}
