import asyncio
import importlib.util
from datetime import timedelta
from pathlib import Path

import pytest

from silksong_site.errors import DuplicateSubscriptionError, InvalidTransitionError, NotFoundError
from silksong_site.models.subscription import (
    STATUS_ACTIVE,
    STATUS_BLOCKED,
    STATUS_BOUNCED,
    STATUS_PENDING,
    STATUS_UNSUBSCRIBED,
    utcnow,
)
from silksong_site.services.subscription_service import (
    RESULT_CREATED,
    SubscriptionService,
    generate_unsubscribe_token,
    generate_verification_token,
)


class BrokenEngine:
    async def dispatch(self, event, subscription, data):
        raise RuntimeError("template store offline")


def load_purge_script():
    path = Path(__file__).resolve().parents[2] / "scripts" / "purge_expired_pending.py"
    spec = importlib.util.spec_from_file_location("purge_expired_pending", path)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def service(adapter, sent_emails):
    return SubscriptionService(adapter)


def test_token_formats():
    token = generate_verification_token("hornet@example.com", "salt")

    assert len(token) == 32
    assert token != generate_verification_token("hornet@example.com", "salt")
    assert len(generate_unsubscribe_token()) == 64


def test_subscribe_then_confirm(service):
    result = asyncio.run(service.subscribe("hornet@example.com", tags=["pc"]))

    assert result.code == RESULT_CREATED
    assert result.is_new_subscription
    assert result.subscription.status == STATUS_PENDING
    assert result.count == 0

    confirmed = asyncio.run(service.confirm(result.subscription.verification_token))
    assert confirmed.subscription.status == STATUS_ACTIVE
    assert confirmed.already_confirmed is False
    assert service.subscriber_count() == 1


def test_confirm_after_unsubscribe_keeps_opt_out(service, adapter):
    result = asyncio.run(service.subscribe("hornet@example.com"))
    token = result.subscription.verification_token
    asyncio.run(service.confirm(token))

    unsubscribed = asyncio.run(service.unsubscribe_by_email("hornet@example.com"))
    assert unsubscribed.subscription.status == STATUS_UNSUBSCRIBED
    assert unsubscribed.subscription.verification_token is None

    with pytest.raises(NotFoundError):
        asyncio.run(service.confirm(token))
    assert adapter.get_by_email("hornet@example.com").status == STATUS_UNSUBSCRIBED


def test_confirm_refuses_bounced_row(service, adapter):
    result = asyncio.run(service.subscribe("hornet@example.com"))
    adapter.update(result.subscription.id, {"status": STATUS_BOUNCED})

    with pytest.raises(NotFoundError) as exc:
        asyncio.run(service.confirm(result.subscription.verification_token))
    assert exc.value.code == "token_not_found"


def test_failed_notification_keeps_subscription(adapter):
    service = SubscriptionService(adapter, engine=BrokenEngine())

    result = asyncio.run(service.subscribe("hornet@example.com"))

    assert result.email_sent is False
    assert adapter.get_by_email("hornet@example.com") is not None


def test_blocked_status_is_terminal(service, adapter):
    asyncio.run(service.subscribe("hornet@example.com"))
    blocked = service.block("hornet@example.com")
    assert blocked.status == STATUS_BLOCKED
    assert blocked.metadata["blocked_reason"] == "complaint"

    # Later bounces leave the block in place
    assert service.mark_bounced("hornet@example.com").status == STATUS_BLOCKED
    with pytest.raises(InvalidTransitionError):
        service._transition(blocked, STATUS_ACTIVE)


def test_pending_within_expiry_is_duplicate(service):
    asyncio.run(service.subscribe("hornet@example.com"))

    with pytest.raises(DuplicateSubscriptionError) as exc:
        asyncio.run(service.subscribe("HORNET@example.com"))
    assert exc.value.code == "already_pending"


def test_delivery_feedback_for_unknown_email(service):
    with pytest.raises(NotFoundError):
        service.mark_bounced("ghost@example.com")
    with pytest.raises(NotFoundError):
        service.block("ghost@example.com")


def test_purge_expired_pending(adapter, capsys):
    purge = load_purge_script().purge
    old = utcnow() - timedelta(days=40)
    adapter.create({"email": "old@example.com", "status": "pending", "subscribed_at": old})
    adapter.create({"email": "new@example.com", "status": "pending", "subscribed_at": utcnow()})
    adapter.create({"email": "kept@example.com", "status": "active", "subscribed_at": old})

    assert purge(adapter, days=30, dry_run=True) == 0
    assert adapter.get_by_email("old@example.com") is not None

    assert purge(adapter, days=30) == 1
    assert adapter.get_by_email("old@example.com") is None
    assert adapter.get_by_email("new@example.com") is not None
    assert adapter.get_by_email("kept@example.com") is not None
    assert "would delete" in capsys.readouterr().out
