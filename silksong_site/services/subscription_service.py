"""
Newsletter subscription lifecycle: subscribe, double opt-in confirmation,
unsubscribe, and delivery feedback (bounces, complaints).

Every status change goes through `_transition`, which enforces the table in
models.subscription.ALLOWED_TRANSITIONS. Emails are sent through the trigger
engine; a failed email never fails the subscription change that caused it.
"""
import hashlib
import logging
import re
import secrets
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from ..adapters.base import SubscriptionAdapter
from ..config import Settings, get_settings
from ..errors import (
    DatabaseError,
    DuplicateSubscriptionError,
    EmailDeliveryError,
    InvalidTransitionError,
    NotFoundError,
    TokenExpiredError,
    ValidationError,
)
from ..models.subscription import (
    STATUS_ACTIVE,
    STATUS_BLOCKED,
    STATUS_BOUNCED,
    STATUS_PENDING,
    STATUS_UNSUBSCRIBED,
    can_transition,
    utcnow,
)
from ..schemas.subscription_schema import SubscriptionRecord
from .email_service import EmailResult
from .email_validation import mask_email, normalize_email, validate_email
from .triggers import (
    EVENT_SUBSCRIPTION_CONFIRMED,
    EVENT_SUBSCRIPTION_CREATED,
    EVENT_UNSUBSCRIBED,
    EmailTriggerEngine,
    get_trigger_engine,
)

logger = logging.getLogger(__name__)

VERIFICATION_TOKEN_RE = re.compile(r"^[a-f0-9]{32}$")
UNSUBSCRIBE_TOKEN_RE = re.compile(r"^[a-f0-9]{64}$")

RESULT_CREATED = "created"
RESULT_REACTIVATED = "reactivated"
RESULT_CONFIRMATION_RESENT = "confirmation_resent"


def generate_verification_token(email: str, salt: str) -> str:
    """First 32 hex chars of SHA256(email + salt + timestamp + nonce)."""
    raw = f"{email}{salt}{time.time_ns()}{secrets.token_hex(8)}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:32]


def generate_unsubscribe_token() -> str:
    return secrets.token_hex(32)


@dataclass
class ClientInfo:
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


@dataclass
class SubscribeResult:
    subscription: SubscriptionRecord
    code: str
    requires_confirmation: bool
    email_sent: bool
    count: int

    @property
    def is_new_subscription(self) -> bool:
        return self.code == RESULT_CREATED


@dataclass
class ConfirmResult:
    subscription: SubscriptionRecord
    already_confirmed: bool


@dataclass
class UnsubscribeResult:
    subscription: SubscriptionRecord
    unsubscribed_at: datetime
    reason: Optional[str] = None
    already_unsubscribed: bool = False


class SubscriptionService:
    def __init__(
        self,
        adapter: SubscriptionAdapter,
        engine: Optional[EmailTriggerEngine] = None,
        settings: Optional[Settings] = None,
    ):
        self.adapter = adapter
        self.engine = engine or get_trigger_engine()
        self.settings = settings or get_settings()

    # --- helpers ---

    def _transition(
        self,
        subscription: SubscriptionRecord,
        new_status: str,
        extra: Optional[Dict[str, Any]] = None,
    ) -> SubscriptionRecord:
        if not can_transition(subscription.status, new_status):
            raise InvalidTransitionError(
                details={"from": subscription.status, "to": new_status},
            )
        fields = {"status": new_status, "updated_at": utcnow()}
        fields.update(extra or {})
        logger.info(
            f"Subscription {subscription.id} ({mask_email(subscription.email)}): "
            f"{subscription.status} -> {new_status}"
        )
        return self.adapter.update(subscription.id, fields)

    def _fresh_tokens(self, email: str) -> Dict[str, Any]:
        return {
            "verification_token": generate_verification_token(email, self.settings.site_hash_salt),
            "unsubscribe_token": generate_unsubscribe_token(),
            "subscribed_at": utcnow(),
        }

    async def _notify(self, event: str, subscription: SubscriptionRecord, data: Dict[str, Any]) -> List[EmailResult]:
        try:
            return await self.engine.dispatch(event, subscription, data)
        except Exception as e:
            logger.error(f"Email trigger '{event}' failed for {subscription.id}: {e}", exc_info=True)
            return []

    def _token_expired(self, subscription: SubscriptionRecord) -> bool:
        issued_at = subscription.subscribed_at or subscription.created_at
        if issued_at is None:
            return False
        return utcnow() - issued_at > timedelta(hours=self.settings.token_expiry_hours)

    def subscriber_count(self) -> int:
        return self.adapter.count(status=STATUS_ACTIVE)

    # --- subscribe ---

    async def subscribe(
        self,
        email: str,
        source: str = "web",
        tags: Optional[List[str]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> SubscribeResult:
        validation = validate_email(email)
        if not validation.is_valid:
            raise ValidationError(
                message=validation.error,
                code="validation_email",
                details={"suggestions": validation.suggestions} if validation.suggestions else None,
            )
        email = validation.email
        tags = tags or []
        metadata = metadata or {}
        double_opt_in = self.settings.double_opt_in

        existing = self.adapter.get_by_email(email)

        if existing is None:
            status = STATUS_PENDING if double_opt_in else STATUS_ACTIVE
            data = {
                "email": email,
                "status": status,
                "source": source,
                "tags": tags,
                "metadata": metadata,
                "verified": False,
                **self._fresh_tokens(email),
            }
            if status == STATUS_ACTIVE:
                data["confirmed_at"] = utcnow()
            subscription = self.adapter.create(data)
            code = RESULT_CREATED
            logger.info(f"New subscription {subscription.id} from '{source}' ({status})")

        elif existing.status == STATUS_ACTIVE:
            raise DuplicateSubscriptionError(
                message="Email already subscribed",
                code="already_subscribed",
                details={"subscription_id": existing.id},
            )

        elif existing.status == STATUS_PENDING:
            if not self._token_expired(existing):
                raise DuplicateSubscriptionError(
                    message="Confirmation email already sent. Please check your inbox.",
                    code="already_pending",
                    details={"subscription_id": existing.id},
                )
            # Expired link: issue a new one, status stays pending
            subscription = self.adapter.update(
                existing.id,
                {**self._fresh_tokens(email), "updated_at": utcnow()},
            )
            code = RESULT_CONFIRMATION_RESENT

        elif existing.status == STATUS_BLOCKED:
            raise InvalidTransitionError(
                message="This email address cannot be subscribed",
                code="subscription_blocked",
            )

        else:
            # unsubscribed or bounced: reactivate
            needs_opt_in = double_opt_in or existing.status == STATUS_BOUNCED
            new_status = STATUS_PENDING if needs_opt_in else STATUS_ACTIVE
            now = utcnow()
            extra = {
                **self._fresh_tokens(email),
                "source": source,
                "tags": tags,
                "metadata": {**existing.metadata, **metadata, "reactivated_at": now.isoformat()},
                "unsubscribed_at": None,
            }
            if new_status == STATUS_ACTIVE:
                extra["confirmed_at"] = now
            subscription = self._transition(existing, new_status, extra)
            code = RESULT_REACTIVATED

        requires_confirmation = subscription.status == STATUS_PENDING
        count = self.subscriber_count()

        if requires_confirmation:
            results = await self._notify(
                EVENT_SUBSCRIPTION_CREATED,
                subscription,
                {"requires_confirmation": True, "subscriber_count": count},
            )
        else:
            results = await self._notify(
                EVENT_SUBSCRIPTION_CONFIRMED,
                subscription,
                {"subscriber_count": count, "reactivated": code == RESULT_REACTIVATED},
            )

        email_sent = any(result.success for result in results)
        if not email_sent:
            logger.warning(f"No email delivered for subscription {subscription.id}")

        return SubscribeResult(
            subscription=subscription,
            code=code,
            requires_confirmation=requires_confirmation,
            email_sent=email_sent,
            count=count,
        )

    # --- double opt-in ---

    async def confirm(self, token: Optional[str]) -> ConfirmResult:
        if not token:
            raise ValidationError(message="Confirmation token is required", code="token_required")
        if not VERIFICATION_TOKEN_RE.match(token):
            raise ValidationError(message="Invalid confirmation token format", code="token_invalid_format")

        subscription = self.adapter.get_by_verification_token(token)
        if subscription is None:
            raise NotFoundError(
                message="Confirmation token not found",
                code="token_not_found",
            )

        # Re-clicking the link is harmless
        if subscription.status == STATUS_ACTIVE:
            return ConfirmResult(subscription=subscription, already_confirmed=True)

        # Only a pending signup can be confirmed; an opt-out stays an opt-out
        if subscription.status != STATUS_PENDING:
            raise NotFoundError(
                message="Confirmation token not found",
                code="token_not_found",
            )

        if self._token_expired(subscription):
            raise TokenExpiredError(
                message=(
                    f"Confirmation links expire after {self.settings.token_expiry_hours} hours "
                    "for security. Please subscribe again."
                ),
            )

        now = utcnow()
        subscription = self._transition(
            subscription,
            STATUS_ACTIVE,
            {"verified": True, "confirmed_at": now},
        )

        await self._notify(
            EVENT_SUBSCRIPTION_CONFIRMED,
            subscription,
            {"subscriber_count": self.subscriber_count()},
        )
        return ConfirmResult(subscription=subscription, already_confirmed=False)

    # --- unsubscribe ---

    async def unsubscribe_by_token(
        self,
        token: str,
        reason: Optional[str] = None,
        feedback: Optional[str] = None,
        client: Optional[ClientInfo] = None,
    ) -> UnsubscribeResult:
        if not token or not UNSUBSCRIBE_TOKEN_RE.match(token):
            raise ValidationError(message="Invalid token format", code="validation_token")

        subscription = self.adapter.get_by_unsubscribe_token(token)
        if subscription is None:
            raise NotFoundError(
                message="Invalid or expired unsubscribe token",
                code="validation_token",
            )

        if subscription.status == STATUS_UNSUBSCRIBED:
            return UnsubscribeResult(
                subscription=subscription,
                unsubscribed_at=subscription.unsubscribed_at or utcnow(),
                reason=reason,
                already_unsubscribed=True,
            )

        return await self._unsubscribe(
            subscription,
            reason=reason,
            feedback=feedback,
            client=client,
            method="token",
        )

    async def unsubscribe_by_email(self, email: str, client: Optional[ClientInfo] = None) -> UnsubscribeResult:
        subscription = self.adapter.get_by_email(normalize_email(email))
        if subscription is None or subscription.status != STATUS_ACTIVE:
            raise NotFoundError(
                message="No active subscription found for this email address",
                code="validation_email",
            )
        return await self._unsubscribe(
            subscription,
            reason="other",
            client=client,
            method="email_confirmation",
        )

    async def _unsubscribe(
        self,
        subscription: SubscriptionRecord,
        reason: Optional[str],
        client: Optional[ClientInfo],
        method: str,
        feedback: Optional[str] = None,
    ) -> UnsubscribeResult:
        client = client or ClientInfo()
        now = utcnow()
        metadata = {
            **subscription.metadata,
            "unsubscribed_at": now.isoformat(),
            "unsubscribe_method": method,
        }
        if reason:
            metadata["unsubscribe_reason"] = reason
        if feedback:
            metadata["unsubscribe_feedback"] = feedback

        updated = self._transition(
            subscription,
            STATUS_UNSUBSCRIBED,
            {"unsubscribed_at": now, "verification_token": None, "metadata": metadata},
        )

        duration_days = None
        if subscription.subscribed_at:
            duration_days = (now - subscription.subscribed_at).days

        try:
            self.adapter.log_unsubscription({
                "subscription_id": subscription.id,
                "email": subscription.email,
                "reason": reason,
                "user_agent": (client.user_agent or "")[:500] or None,
                "ip_address": client.ip_address,
                "unsubscribed_at": now,
                "metadata": {
                    "method": method,
                    "original_source": subscription.source,
                    "original_tags": subscription.tags,
                    "feedback": feedback,
                    "subscription_duration": duration_days,
                },
            })
        except DatabaseError as e:
            # The unsubscribe itself already happened
            logger.error(f"Failed to create unsubscription log for {subscription.id}: {e.details}")

        await self._notify(EVENT_UNSUBSCRIBED, updated, {})

        return UnsubscribeResult(subscription=updated, unsubscribed_at=now, reason=reason)

    # --- delivery feedback ---

    def mark_bounced(self, email: str, bounce_type: Optional[str] = None) -> SubscriptionRecord:
        subscription = self.adapter.get_by_email(normalize_email(email))
        if subscription is None:
            raise NotFoundError(message="Subscription not found", code="subscription_not_found")
        if subscription.status in (STATUS_BOUNCED, STATUS_BLOCKED):
            return subscription
        return self._transition(
            subscription,
            STATUS_BOUNCED,
            {"metadata": {
                **subscription.metadata,
                "bounce_type": bounce_type or "unknown",
                "bounced_at": utcnow().isoformat(),
            }},
        )

    def block(self, email: str, reason: str = "complaint") -> SubscriptionRecord:
        subscription = self.adapter.get_by_email(normalize_email(email))
        if subscription is None:
            raise NotFoundError(message="Subscription not found", code="subscription_not_found")
        if subscription.status == STATUS_BLOCKED:
            return subscription
        return self._transition(
            subscription,
            STATUS_BLOCKED,
            {"metadata": {
                **subscription.metadata,
                "blocked_reason": reason,
                "blocked_at": utcnow().isoformat(),
            }},
        )

    # --- admin ---

    async def send_welcome(self, email: str) -> EmailResult:
        """Send the welcome email again. Raises EmailDeliveryError when nothing went out."""
        subscription = self.adapter.get_by_email(normalize_email(email))
        if subscription is None or subscription.status != STATUS_ACTIVE:
            raise NotFoundError(
                message="No active subscription found for this email address",
                code="subscription_not_found",
            )
        results = await self.engine.dispatch(
            EVENT_SUBSCRIPTION_CONFIRMED,
            subscription,
            {"subscriber_count": self.subscriber_count()},
        )
        for result in results:
            if result.success:
                return result
        raise EmailDeliveryError(details={"errors": [result.error for result in results]})
