import logging
import time

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ..adapters import SubscriptionAdapter, get_adapter
from ..config import get_settings
from ..models.subscription import utcnow
from ..services.email_service import get_email_config_info

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])

DEGRADED_LATENCY_MS = 1000


@router.get("/health")
def health(adapter: SubscriptionAdapter = Depends(get_adapter)):
    """healthy / degraded (slow database) / unhealthy (503)."""
    settings = get_settings()
    started = time.perf_counter()
    database_ok = adapter.health_check()
    latency_ms = round((time.perf_counter() - started) * 1000)

    if not database_ok:
        status = "unhealthy"
    elif latency_ms > DEGRADED_LATENCY_MS:
        status = "degraded"
    else:
        status = "healthy"

    if status != "healthy":
        logger.warning(f"💓 Health check {status} (database latency {latency_ms}ms)")

    email = get_email_config_info()
    body = {
        "status": status,
        "timestamp": utcnow().isoformat(),
        "version": settings.app_version,
        "environment": settings.environment,
        "checks": {
            "database": {
                "status": "healthy" if database_ok else "unhealthy",
                "backend": adapter.name,
                "latency": latency_ms,
            },
            "email": {
                "status": "healthy" if email["configured"] else "unconfigured",
                "provider": email["provider"],
            },
        },
    }
    return JSONResponse(
        content=body,
        status_code=503 if status == "unhealthy" else 200,
        headers={"Cache-Control": "no-cache, no-store, must-revalidate"},
    )


@router.get("/ping")
def ping():
    return {"pong": True, "time": time.time()}
