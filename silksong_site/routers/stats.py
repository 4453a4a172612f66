import json
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from ..adapters import SubscriptionAdapter, get_adapter
from ..config import get_settings
from ..dependencies import get_stats_cache, limit_stats_requests, require_stats_auth
from ..models.subscription import utcnow
from ..schemas.stats_schema import StatsQuery
from ..services.rate_limiter import RateLimitResult
from ..services.response_cache import ResponseCache
from ..services.stats_service import compute_stats

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/newsletter", tags=["stats"])


@router.get("/stats")
def newsletter_stats(
    query: Annotated[StatsQuery, Query()],
    limit: RateLimitResult = Depends(limit_stats_requests),
    auth_method: str = Depends(require_stats_auth),
    adapter: SubscriptionAdapter = Depends(get_adapter),
    cache: ResponseCache = Depends(get_stats_cache),
):
    """
    Subscription analytics for admins.

    Auth: `Authorization: Bearer <key>` or `X-API-Key: <key>`.
    Results are cached per query and auth method (X-Cache-Status HIT/MISS).
    """
    ttl = get_settings().stats_cache_ttl
    cache_key = f"stats:{auth_method}:{query.model_dump_json()}"

    def render() -> str:
        stats = compute_stats(adapter, query, cache_ttl=ttl)
        return json.dumps(stats.model_dump(mode="json", by_alias=True, exclude_none=True))

    entry, hit = cache.get_or_render(cache_key, render, media_type="application/json")

    headers = {
        "Cache-Control": f"public, max-age={ttl}",
        "X-Cache-Status": "HIT" if hit else "MISS",
        **limit.headers(),
    }
    return JSONResponse(
        content={
            "success": True,
            "data": json.loads(entry.body),
            "timestamp": utcnow().isoformat(),
        },
        headers=headers,
    )
