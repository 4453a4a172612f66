"""
RSS feed, sitemap and robots.txt, served from the page-level cache.
"""
import logging

from fastapi import APIRouter, Depends, Request, Response

from ..config import get_settings
from ..dependencies import get_feed_cache
from ..models.subscription import utcnow
from ..services.feed_service import build_error_feed, build_robots, build_rss, build_sitemap
from ..services.response_cache import CacheEntry, ResponseCache, etag_matches

logger = logging.getLogger(__name__)

router = APIRouter(tags=["feeds"])

RSS_MEDIA_TYPE = "application/rss+xml; charset=utf-8"
XML_MEDIA_TYPE = "application/xml; charset=utf-8"
TEXT_MEDIA_TYPE = "text/plain; charset=utf-8"


def cached_response(request: Request, entry: CacheEntry, hit: bool, cache_control: str) -> Response:
    headers = {
        "ETag": f'"{entry.etag}"',
        "Cache-Control": cache_control,
        "X-Cache-Status": "HIT" if hit else "MISS",
    }
    if etag_matches(request.headers.get("if-none-match"), entry.etag):
        return Response(status_code=304, headers=headers)
    return Response(content=entry.body, media_type=entry.media_type, headers=headers)


@router.get("/feed.xml")
def rss_feed(request: Request, cache: ResponseCache = Depends(get_feed_cache)):
    site_url = get_settings().site_url
    try:
        entry, hit = cache.get_or_render("/feed.xml", lambda: build_rss(site_url), RSS_MEDIA_TYPE)
    except Exception as e:
        logger.error(f"❌ Failed to build RSS feed: {e}", exc_info=True)
        return Response(
            content=build_error_feed(site_url, utcnow()),
            status_code=500,
            media_type=RSS_MEDIA_TYPE,
            headers={"Cache-Control": "no-cache, no-store, must-revalidate"},
        )
    return cached_response(request, entry, hit, "public, max-age=3600, stale-while-revalidate=7200")


@router.get("/sitemap.xml")
def sitemap(request: Request, cache: ResponseCache = Depends(get_feed_cache)):
    site_url = get_settings().site_url
    entry, hit = cache.get_or_render("/sitemap.xml", lambda: build_sitemap(site_url), XML_MEDIA_TYPE)
    return cached_response(request, entry, hit, "public, max-age=3600")


@router.get("/robots.txt")
def robots(request: Request, cache: ResponseCache = Depends(get_feed_cache)):
    site_url = get_settings().site_url
    entry, hit = cache.get_or_render("/robots.txt", lambda: build_robots(site_url), TEXT_MEDIA_TYPE)
    return cached_response(request, entry, hit, "public, max-age=86400")
