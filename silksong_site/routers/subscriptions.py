"""
Public newsletter signup API: subscribe, confirm the double opt-in link,
and the public subscriber count.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response

from ..adapters import SubscriptionAdapter, get_adapter
from ..dependencies import get_subscribe_limiter, get_subscription_service
from ..models.subscription import STATUS_ACTIVE, utcnow
from ..schemas.subscription_schema import (
    ConfirmResponse,
    CountResponse,
    SubscribeData,
    SubscribeRequest,
    SubscribeResponse,
    SubscriptionOut,
)
from ..services.email_validation import mask_email, normalize_email
from ..services.rate_limiter import SlidingWindowRateLimiter, get_client_ip, raise_for_limit
from ..services.subscription_service import (
    RESULT_CONFIRMATION_RESENT,
    RESULT_REACTIVATED,
    SubscribeResult,
    SubscriptionService,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["subscriptions"])

NO_STORE = "no-cache, no-store, must-revalidate"


def _subscribe_message(result: SubscribeResult) -> str:
    if result.code == RESULT_CONFIRMATION_RESENT:
        return "A new confirmation email is on its way. Please check your inbox."
    if result.code == RESULT_REACTIVATED:
        if result.requires_confirmation:
            return "Welcome back! Please check your email to confirm your subscription."
        return "Welcome back! Your subscription has been reactivated."
    if result.requires_confirmation:
        return "Almost there! Please check your email to confirm your subscription."
    return "Successfully subscribed to Silksong updates!"


@router.post("/subscribe", status_code=201, response_model=SubscribeResponse)
async def create_subscription(
    payload: SubscribeRequest,
    request: Request,
    response: Response,
    service: SubscriptionService = Depends(get_subscription_service),
    limiter: SlidingWindowRateLimiter = Depends(get_subscribe_limiter),
):
    """
    Subscribe an email to release news.

    201 for a new or reactivated subscription, 200 when only a fresh
    confirmation link was sent. Duplicates answer 409, bad input 400 and
    callers over the rate limit 429 with Retry-After.
    """
    client_ip = get_client_ip(request)
    email = normalize_email(payload.email)
    limit = limiter.check(client_ip, email=email)
    raise_for_limit(limit)
    response.headers.update(limit.headers())

    result = await service.subscribe(
        payload.email,
        source=payload.source,
        tags=payload.tags,
        metadata=payload.metadata,
    )
    # The duplicate window opens only after a successful subscribe
    limiter.record_email(client_ip, email)
    logger.info(
        f"📧 Subscribe {result.code}: {mask_email(result.subscription.email)} "
        f"from {client_ip} (email_sent={result.email_sent})"
    )

    if result.code == RESULT_CONFIRMATION_RESENT:
        response.status_code = 200

    return SubscribeResponse(
        code=result.code,
        message=_subscribe_message(result),
        data=SubscribeData(
            subscription=SubscriptionOut.model_validate(result.subscription),
            count=result.count,
            is_new_subscription=result.is_new_subscription,
            requires_confirmation=result.requires_confirmation,
            email_sent=result.email_sent,
        ),
        timestamp=utcnow(),
    )


@router.get("/subscribe/confirm", response_model=ConfirmResponse)
async def confirm_subscription(
    response: Response,
    token: Optional[str] = None,
    service: SubscriptionService = Depends(get_subscription_service),
):
    response.headers["Cache-Control"] = NO_STORE
    result = await service.confirm(token)
    if result.already_confirmed:
        return ConfirmResponse(code="already_confirmed", message="Your subscription is already confirmed.")
    return ConfirmResponse(code="confirmed", message="Your subscription is confirmed. Welcome to Pharloom!")


@router.get("/subscriptions/count", response_model=CountResponse)
def subscriber_count(response: Response, adapter: SubscriptionAdapter = Depends(get_adapter)):
    response.headers["Cache-Control"] = "public, max-age=300"
    return CountResponse(count=adapter.count(status=STATUS_ACTIVE))
