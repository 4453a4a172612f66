"""
Process-wide singletons and FastAPI dependencies shared by the routers.
"""
import hmac
import logging
from typing import Optional

from fastapi import Depends, Header, Request

from .adapters import SubscriptionAdapter, get_adapter
from .config import get_settings
from .errors import AuthenticationError
from .services.rate_limiter import RateLimitResult, SlidingWindowRateLimiter, get_client_ip, raise_for_limit
from .services.response_cache import ResponseCache
from .services.subscription_service import SubscriptionService
from .services.triggers import get_trigger_engine

logger = logging.getLogger(__name__)

_limiters: dict = {}
_caches: dict = {}


def _limiter(name: str, limits) -> SlidingWindowRateLimiter:
    if name not in _limiters:
        max_requests, window_seconds = limits
        _limiters[name] = SlidingWindowRateLimiter(max_requests, window_seconds)
    return _limiters[name]


def get_subscribe_limiter() -> SlidingWindowRateLimiter:
    return _limiter("subscribe", get_settings().subscribe_rate_limit)


def get_unsubscribe_limiter() -> SlidingWindowRateLimiter:
    return _limiter("unsubscribe", get_settings().unsubscribe_rate_limit)


def get_stats_limiter() -> SlidingWindowRateLimiter:
    return _limiter("stats", get_settings().stats_rate_limit)


def limit_stats_requests(
    request: Request,
    limiter: SlidingWindowRateLimiter = Depends(get_stats_limiter),
) -> RateLimitResult:
    """Per-IP stats limit. Runs before `require_stats_auth`."""
    limit = limiter.check(f"stats:{get_client_ip(request)}")
    raise_for_limit(limit)
    return limit


def _cache(name: str, ttl_seconds: int) -> ResponseCache:
    if name not in _caches:
        _caches[name] = ResponseCache(ttl_seconds)
    return _caches[name]


def get_page_cache() -> ResponseCache:
    return _cache("pages", get_settings().page_cache_ttl)


def get_feed_cache() -> ResponseCache:
    return _cache("feeds", get_settings().page_cache_ttl)


def get_stats_cache() -> ResponseCache:
    return _cache("stats", get_settings().stats_cache_ttl)


def reset_state() -> None:
    """Drop every limiter and cache (used by tests and after config changes)."""
    _limiters.clear()
    _caches.clear()


def get_subscription_service(adapter: SubscriptionAdapter = Depends(get_adapter)) -> SubscriptionService:
    return SubscriptionService(adapter, get_trigger_engine(), get_settings())


def _secret_matches(provided: Optional[str], expected: str) -> bool:
    if not expected or not provided:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


def require_stats_auth(
    authorization: Optional[str] = Header(None),
    x_api_key: Optional[str] = Header(None),
) -> str:
    """Bearer token or X-API-Key, both compared against STATS_API_KEY. Returns the method used."""
    expected = get_settings().stats_api_key
    if authorization and authorization.startswith("Bearer "):
        if _secret_matches(authorization[7:], expected):
            return "bearer"
    if _secret_matches(x_api_key, expected):
        return "api_key"
    if not expected:
        logger.warning("STATS_API_KEY is not set, stats endpoint is locked")
    raise AuthenticationError()


def require_webhook_secret(x_webhook_secret: Optional[str] = Header(None)) -> None:
    if not _secret_matches(x_webhook_secret, get_settings().webhook_secret):
        raise AuthenticationError(message="Invalid webhook secret")
