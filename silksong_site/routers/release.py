"""
Release information: announcement timeline, countdown and the combined
status document used by embeds.
"""
import hashlib
import json
import logging
from typing import Optional

from fastapi import APIRouter, Query, Request, Response
from fastapi.responses import JSONResponse

from ..config import get_settings
from ..errors import ValidationError
from ..models.subscription import utcnow
from ..services.countdown import get_countdown
from ..services.differences_service import get_differences
from ..services.response_cache import etag_matches
from ..services.timeline_service import get_timeline, load_timeline

logger = logging.getLogger(__name__)

router = APIRouter(tags=["release"])


@router.get("/timeline")
def timeline(after: Optional[str] = None, limit: Optional[str] = None):
    """
    Events newest first. `limit` is clamped to 1..50 (default 20); `after`
    must be a UTC ISO 8601 timestamp with offset and keeps only older events.
    """
    try:
        events = get_timeline(after=after, limit=limit)
    except ValidationError:
        return JSONResponse(status_code=400, content={"error": "invalid_after"})
    return [event.model_dump(mode="json") for event in events]


@router.get("/differences")
def differences(status: Optional[str] = None, format_: Optional[str] = Query(None, alias="format")):
    """
    Hollow Knight vs Silksong differences. `status` is a comma-separated
    filter (confirmed, hinted, speculated, unconfirmed); `format=grouped`
    groups the items by their `group`.
    """
    return JSONResponse(
        content=get_differences(status=status, format=format_),
        headers={"Cache-Control": "public, max-age=300, stale-while-revalidate=60"},
    )


@router.get("/countdown")
def countdown(response: Response):
    response.headers["Cache-Control"] = "no-cache"
    return get_countdown().to_dict()


@router.get("/status")
def release_status(request: Request):
    events = load_timeline()
    etag = hashlib.md5(
        json.dumps([event.model_dump(mode="json") for event in events], sort_keys=True).encode("utf-8")
    ).hexdigest()

    if etag_matches(request.headers.get("if-none-match"), etag):
        return Response(status_code=304, headers={"ETag": f'"{etag}"'})

    release_date = get_settings().release_date
    server_time = utcnow()
    left = get_countdown(now=server_time, release_date=release_date)
    last_update = events[0].date.isoformat() if events else server_time.isoformat()

    content_hash = hashlib.md5(
        json.dumps({
            "timelineItems": len(events),
            "releaseDate": release_date.isoformat(),
            "lastUpdate": last_update,
        }).encode("utf-8")
    ).hexdigest()[:8]

    return JSONResponse(
        content={
            "releaseDate": release_date.isoformat(),
            "serverTime": server_time.isoformat(),
            "isReleased": left.released,
            "daysRemaining": left.days,
            "hoursRemaining": left.hours,
            "totalSecondsRemaining": left.total_seconds,
            "lastTimelineUpdate": last_update,
            "timelineItems": [event.model_dump(mode="json") for event in events],
            "version": get_settings().app_version,
            "hash": content_hash,
        },
        headers={
            "Cache-Control": "public, max-age=300, stale-while-revalidate=600",
            "ETag": f'"{etag}"',
        },
    )
