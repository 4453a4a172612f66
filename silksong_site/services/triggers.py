"""
Email triggers: which template goes out for which subscription event.

The engine is a lookup table from event name to triggers. Each trigger names
a template and may carry conditions on the event data; every enabled trigger
whose conditions hold renders its template and sends it through Resend.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..config import get_settings
from ..rendering import env
from ..schemas.subscription_schema import SubscriptionRecord
from .email_service import EmailResult, send_email
from .email_validation import mask_email

logger = logging.getLogger(__name__)

EVENT_SUBSCRIPTION_CREATED = "subscription_created"
EVENT_SUBSCRIPTION_CONFIRMED = "subscription_confirmed"
EVENT_UNSUBSCRIBED = "unsubscribed"

OPERATORS = {
    "equals": lambda a, b: a == b,
    "not_equals": lambda a, b: a != b,
    "contains": lambda a, b: str(b) in str(a),
    "not_contains": lambda a, b: str(b) not in str(a),
    "greater_than": lambda a, b: float(a) > float(b),
    "less_than": lambda a, b: float(a) < float(b),
}


@dataclass
class EmailTemplate:
    id: str
    subject: str
    html_template: str
    text_template: Optional[str] = None


@dataclass
class TriggerCondition:
    field: str
    operator: str
    value: Any

    def evaluate(self, data: Dict[str, Any]) -> bool:
        op = OPERATORS.get(self.operator)
        if op is None:
            logger.warning(f"Unknown trigger operator '{self.operator}', treating as true")
            return True
        try:
            return op(get_field_value(data, self.field), self.value)
        except (TypeError, ValueError):
            return False


@dataclass
class Trigger:
    id: str
    event: str
    template_id: str
    enabled: bool = True
    conditions: List[TriggerCondition] = field(default_factory=list)
    description: str = ""

    def matches(self, data: Dict[str, Any]) -> bool:
        return all(condition.evaluate(data) for condition in self.conditions)


def get_field_value(data: Dict[str, Any], path: str) -> Any:
    """Resolve a dotted path ("subscription.source") in nested dicts."""
    value: Any = data
    for key in path.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(key)
    return value


DEFAULT_TEMPLATES = [
    EmailTemplate(
        id="confirmation",
        subject="Confirm your Silksong newsletter subscription",
        html_template="emails/confirmation.html",
        text_template="emails/confirmation.txt",
    ),
    EmailTemplate(
        id="welcome",
        subject="Welcome to the Silksong newsletter!",
        html_template="emails/welcome.html",
        text_template="emails/welcome.txt",
    ),
    EmailTemplate(
        id="unsubscribe_confirmation",
        subject="You have been unsubscribed",
        html_template="emails/unsubscribe_confirmation.html",
        text_template="emails/unsubscribe_confirmation.txt",
    ),
]


def create_default_triggers() -> List[Trigger]:
    return [
        Trigger(
            id="confirmation-email-trigger",
            event=EVENT_SUBSCRIPTION_CREATED,
            template_id="confirmation",
            conditions=[TriggerCondition("requires_confirmation", "equals", True)],
            description="Double opt-in confirmation link",
        ),
        Trigger(
            id="welcome-email-trigger",
            event=EVENT_SUBSCRIPTION_CONFIRMED,
            template_id="welcome",
            description="Welcome email once the subscription is active",
        ),
        Trigger(
            id="unsubscribe-confirmation-trigger",
            event=EVENT_UNSUBSCRIBED,
            template_id="unsubscribe_confirmation",
            description="Goodbye email after unsubscribing",
        ),
    ]


class EmailTriggerEngine:
    def __init__(self, triggers: Optional[List[Trigger]] = None, templates: Optional[List[EmailTemplate]] = None):
        self._triggers: Dict[str, Trigger] = {}
        self._templates: Dict[str, EmailTemplate] = {}
        for trigger in triggers if triggers is not None else create_default_triggers():
            self.add_trigger(trigger)
        for template in templates if templates is not None else DEFAULT_TEMPLATES:
            self.add_template(template)

    def add_trigger(self, trigger: Trigger) -> None:
        self._triggers[trigger.id] = trigger

    def remove_trigger(self, trigger_id: str) -> bool:
        return self._triggers.pop(trigger_id, None) is not None

    def get_trigger(self, trigger_id: str) -> Optional[Trigger]:
        return self._triggers.get(trigger_id)

    def triggers_for(self, event: str) -> List[Trigger]:
        return [t for t in self._triggers.values() if t.enabled and t.event == event]

    def add_template(self, template: EmailTemplate) -> None:
        self._templates[template.id] = template

    def get_template(self, template_id: str) -> Optional[EmailTemplate]:
        return self._templates.get(template_id)

    def build_context(self, subscription: SubscriptionRecord, data: Dict[str, Any]) -> Dict[str, Any]:
        settings = get_settings()
        base_url = settings.site_url
        context = {
            "site_name": "Hollow Knight: Silksong",
            "base_url": base_url,
            "website_url": base_url,
            "support_email": settings.resend_reply_to or settings.resend_from_email,
            "email": subscription.email,
            "subscription_id": subscription.id,
            "source": subscription.source,
            "tags": subscription.tags,
            "subscribed_at": subscription.subscribed_at,
            "subscriber_count": 0,
            "requires_confirmation": False,
            "reactivated": False,
            "token_expiry_hours": settings.token_expiry_hours,
            "confirm_url": None,
            "unsubscribe_url": None,
            "release_date": settings.release_date,
        }
        if subscription.verification_token:
            context["confirm_url"] = f"{base_url}/subscribe/confirm?token={subscription.verification_token}"
        if subscription.unsubscribe_token:
            context["unsubscribe_url"] = f"{base_url}/unsubscribe?token={subscription.unsubscribe_token}"
        context.update(data)
        return context

    async def send_template(self, template_id: str, recipient: str, context: Dict[str, Any], tags: List[dict]) -> EmailResult:
        template = self.get_template(template_id)
        if template is None:
            raise KeyError(f"Template {template_id} not found")

        subject = env.from_string(template.subject).render(**context)
        html = env.get_template(template.html_template).render(**context)
        text = env.get_template(template.text_template).render(**context) if template.text_template else None
        return await send_email(recipient, subject, html, text, tags)

    async def dispatch(
        self,
        event: str,
        subscription: SubscriptionRecord,
        data: Optional[Dict[str, Any]] = None,
    ) -> List[EmailResult]:
        """Run every enabled trigger for `event`. One failing trigger does not stop the rest."""
        context = self.build_context(subscription, data or {})
        results: List[EmailResult] = []

        for trigger in self.triggers_for(event):
            if not trigger.matches(context):
                continue
            try:
                result = await self.send_template(
                    trigger.template_id,
                    subscription.email,
                    context,
                    tags=[
                        {"name": "trigger", "value": trigger.event},
                        {"name": "template", "value": trigger.template_id},
                    ],
                )
            except Exception as e:
                logger.error(f"Trigger {trigger.id} failed: {e}", exc_info=True)
                result = EmailResult(success=False, error=str(e))

            if result.success:
                logger.info(f"Triggered email sent: {trigger.event} to {mask_email(subscription.email)}")
            results.append(result)

        return results


_engine: Optional[EmailTriggerEngine] = None


def get_trigger_engine() -> EmailTriggerEngine:
    global _engine
    if _engine is None:
        _engine = EmailTriggerEngine()
    return _engine
