"""
Server-rendered marketing pages.

Static pages are rendered once per cache TTL and revalidated by ETag. The
confirmation and unsubscribe pages depend on the token in the URL and are
never cached.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import HTMLResponse

from ..config import get_settings
from ..dependencies import get_page_cache, get_subscription_service
from ..errors import ApiError
from ..rendering import render
from ..services.content import load_data
from ..services.countdown import get_countdown
from ..services.differences_service import load_differences
from ..services.response_cache import ResponseCache
from ..services.subscription_service import SubscriptionService
from ..services.timeline_service import load_timeline
from .feeds import cached_response

logger = logging.getLogger(__name__)

router = APIRouter(tags=["pages"], include_in_schema=False)

HTML_MEDIA_TYPE = "text/html; charset=utf-8"

# path -> (template, title)
STATIC_PAGES = {
    "/": ("pages/home.html", "Hollow Knight: Silksong Release Countdown"),
    "/timeline": ("pages/timeline.html", "Silksong Announcement Timeline"),
    "/platforms": ("pages/platforms.html", "Silksong Platforms"),
    "/checklist": ("pages/checklist.html", "Launch Day Checklist"),
    "/compare-hollow-knight": ("pages/compare.html", "Silksong vs Hollow Knight"),
    "/announcement": ("pages/announcement.html", "Release Date Announcement"),
    "/news": ("pages/news.html", "Silksong News"),
    "/guides": ("pages/guides.html", "Silksong Guides"),
    "/faq": ("pages/faq.html", "Silksong FAQ"),
    "/what-is-silksong": ("pages/what_is_silksong.html", "What is Hollow Knight: Silksong?"),
    "/tools": ("pages/tools.html", "Fan Tools"),
    "/tools/embed": ("pages/tools_embed.html", "Embed the Countdown"),
    "/developers": ("pages/developers.html", "Developer API"),
    "/contact": ("pages/contact.html", "Contact"),
    "/privacy": ("pages/privacy.html", "Privacy Policy"),
    "/terms": ("pages/terms.html", "Terms of Use"),
    "/embed/countdown": ("pages/embed_countdown.html", "Silksong Countdown"),
}

HOME_TIMELINE_ITEMS = 5


def page_context(title: str, **extra) -> dict:
    settings = get_settings()
    return {
        "title": title,
        "site_name": settings.app_name,
        "site_url": settings.site_url,
        "countdown": get_countdown(),
        "release_date": settings.release_date,
        **extra,
    }


def render_page(path: str) -> str:
    template, title = STATIC_PAGES[path]
    timeline = load_timeline()
    return render(
        template,
        **page_context(
            title,
            path=path,
            timeline=timeline,
            latest=timeline[:HOME_TIMELINE_ITEMS],
            platforms=load_data("platforms"),
            faqs=load_data("faqs"),
            differences=load_differences(),
        ),
    )


def render_not_found() -> str:
    return render("pages/not_found.html", **page_context("Page not found"))


def _static_page_endpoint(path: str):
    def endpoint(request: Request, cache: ResponseCache = Depends(get_page_cache)) -> Response:
        entry, hit = cache.get_or_render(path, lambda: render_page(path), HTML_MEDIA_TYPE)
        return cached_response(request, entry, hit, f"public, max-age={cache.ttl_seconds}")

    endpoint.__name__ = "page_" + (path.strip("/").replace("/", "_").replace("-", "_") or "home")
    return endpoint


for _path in STATIC_PAGES:
    router.add_api_route(_path, _static_page_endpoint(_path), methods=["GET"], response_class=HTMLResponse)


@router.get("/subscribe/confirm", response_class=HTMLResponse)
async def confirm_page(
    token: Optional[str] = None,
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Landing page for the link in the confirmation email."""
    try:
        result = await service.confirm(token)
        outcome, status_code = ("already_confirmed" if result.already_confirmed else "confirmed"), 200
        message = None
    except ApiError as e:
        # The page shows the failure instead of a JSON error
        outcome, status_code, message = e.code, e.status_code, e.message

    html = render("pages/confirm.html", **page_context("Confirm your subscription", outcome=outcome, message=message))
    return HTMLResponse(
        content=html,
        status_code=status_code,
        headers={"Cache-Control": "no-cache, no-store, must-revalidate"},
    )


@router.get("/unsubscribe", response_class=HTMLResponse)
def unsubscribe_page(token: Optional[str] = None):
    html = render("pages/unsubscribe.html", **page_context("Unsubscribe", token=token or ""))
    return HTMLResponse(content=html, headers={"Cache-Control": "no-cache, no-store, must-revalidate"})
