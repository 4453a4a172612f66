"""
API Router for the newsletter namespace: signup alias, unsubscribe, the
email provider's delivery webhook and the admin welcome resend.
"""
import logging

from fastapi import APIRouter, Depends, Request, Response

from ..dependencies import (
    get_subscription_service,
    get_unsubscribe_limiter,
    require_stats_auth,
    require_webhook_secret,
)
from ..errors import NotFoundError
from ..models.subscription import utcnow
from ..schemas.subscription_schema import (
    EmailEventRequest,
    SendWelcomeRequest,
    SubscribeResponse,
    UnsubscribeData,
    UnsubscribeRequest,
    UnsubscribeResponse,
)
from ..services.email_validation import mask_email
from ..services.rate_limiter import SlidingWindowRateLimiter, get_client_ip, raise_for_limit
from ..services.subscription_service import ClientInfo, SubscriptionService
from .subscriptions import create_subscription

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/newsletter", tags=["newsletter"])

router.add_api_route(
    "/subscribe",
    create_subscription,
    methods=["POST"],
    status_code=201,
    response_model=SubscribeResponse,
)


@router.post("/unsubscribe", response_model=UnsubscribeResponse)
async def unsubscribe(
    payload: UnsubscribeRequest,
    request: Request,
    response: Response,
    service: SubscriptionService = Depends(get_subscription_service),
    limiter: SlidingWindowRateLimiter = Depends(get_unsubscribe_limiter),
):
    """
    Unsubscribe with the token from an email link, or with the email
    address plus `confirm: true`.
    """
    client_ip = get_client_ip(request)
    limit = limiter.check(client_ip, token=payload.token)
    raise_for_limit(limit)
    response.headers.update(limit.headers())

    client = ClientInfo(ip_address=client_ip, user_agent=request.headers.get("user-agent"))
    if payload.token:
        result = await service.unsubscribe_by_token(
            payload.token,
            reason=payload.reason,
            feedback=payload.feedback,
            client=client,
        )
    else:
        result = await service.unsubscribe_by_email(payload.email, client=client)

    logger.info(f"👋 Unsubscribed {mask_email(result.subscription.email)} (reason={result.reason})")

    return UnsubscribeResponse(
        data=UnsubscribeData(
            subscription_id=result.subscription.id,
            email=result.subscription.email,
            unsubscribed_at=result.unsubscribed_at,
            reason=result.reason,
        ),
        timestamp=utcnow(),
    )


@router.post("/webhooks/email", dependencies=[Depends(require_webhook_secret)])
def email_event(
    event: EmailEventRequest,
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Bounces mark the subscription bounced, complaints block it."""
    try:
        if event.type == "email.bounced":
            subscription = service.mark_bounced(event.email, event.bounce_type)
        elif event.type == "email.complained":
            subscription = service.block(event.email, reason="complaint")
        else:
            return {"success": True, "handled": False}
    except NotFoundError:
        logger.info(f"Email event {event.type} for unknown address {mask_email(event.email)}")
        return {"success": True, "handled": False}

    return {"success": True, "handled": True, "status": subscription.status}


@router.post("/send-welcome", dependencies=[Depends(require_stats_auth)])
async def send_welcome(
    payload: SendWelcomeRequest,
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Admin: send the welcome email again to an active subscriber."""
    result = await service.send_welcome(payload.email)
    return {"success": True, "message_id": result.message_id}
