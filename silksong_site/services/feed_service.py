"""
RSS feed, sitemap and robots.txt.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import List, Optional

from ..models.subscription import utcnow
from ..rendering import render
from ..schemas.timeline_schema import TimelineEvent
from .timeline_service import load_timeline

logger = logging.getLogger(__name__)

FEED_ITEM_LIMIT = 30
DEFAULT_CATEGORY = "News"

CATEGORY_MAP = {
    "announcement": "Announcements",
    "gameplay": "Gameplay",
    "development": "Development",
    "release_date": "Release Updates",
    "expectation": "Community",
    "media": "Media Coverage",
}

ROBOTS_DISALLOW = ["/api/", "/admin/", "/private/"]


@dataclass
class SitemapRoute:
    path: str
    changefreq: str
    priority: float
    lastmod: date = date(2025, 9, 10)


SITEMAP_ROUTES = [
    SitemapRoute("/", "daily", 1.0),
    SitemapRoute("/timeline", "weekly", 0.8),
    SitemapRoute("/platforms", "weekly", 0.8),
    SitemapRoute("/checklist", "weekly", 0.8),
    SitemapRoute("/compare-hollow-knight", "weekly", 0.8),
    SitemapRoute("/announcement", "weekly", 0.8),
    SitemapRoute("/news", "weekly", 0.8),
    SitemapRoute("/guides", "weekly", 0.7),
    SitemapRoute("/contact", "monthly", 0.6),
    SitemapRoute("/privacy", "monthly", 0.5),
    SitemapRoute("/terms", "monthly", 0.5),
    SitemapRoute("/faq", "weekly", 0.8, date(2025, 8, 21)),
    SitemapRoute("/tools", "monthly", 0.6),
    SitemapRoute("/tools/embed", "monthly", 0.6),
    SitemapRoute("/developers", "monthly", 0.6),
    SitemapRoute("/what-is-silksong", "weekly", 0.9),
    SitemapRoute("/embed/countdown", "weekly", 0.4),
]


def map_category(category: str) -> str:
    return CATEGORY_MAP.get(category, DEFAULT_CATEGORY)


def _feed_item(event: TimelineEvent, site_url: str) -> dict:
    guid = f"{site_url}/timeline#{event.id}"
    return {
        "title": event.title,
        "description": event.description,
        "link": event.source if event.source.startswith("http") else guid,
        "guid": guid,
        "date": event.date,
        "category": map_category(event.category),
        "source": event.source,
        "type": event.type,
    }


def build_rss(
    site_url: str,
    events: Optional[List[TimelineEvent]] = None,
    now: Optional[datetime] = None,
) -> str:
    now = now or utcnow()
    if events is None:
        events = load_timeline()
    newest = sorted(events, key=lambda event: event.date, reverse=True)[:FEED_ITEM_LIMIT]
    return render(
        "feeds/rss.xml",
        site_url=site_url,
        build_date=now,
        last_build_date=newest[0].date if newest else now,
        items=[_feed_item(event, site_url) for event in newest],
    )


def build_error_feed(site_url: str, now: Optional[datetime] = None) -> str:
    return render("feeds/error.xml", site_url=site_url, now=now or utcnow())


def build_sitemap(site_url: str) -> str:
    return render("feeds/sitemap.xml", site_url=site_url, routes=SITEMAP_ROUTES)


def build_robots(site_url: str) -> str:
    return render("feeds/robots.txt", site_url=site_url, disallow=ROBOTS_DISALLOW)
