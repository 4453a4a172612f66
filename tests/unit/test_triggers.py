import asyncio
from datetime import datetime, timezone

from silksong_site.schemas.subscription_schema import SubscriptionRecord
from silksong_site.services.triggers import (
    EVENT_SUBSCRIPTION_CONFIRMED,
    EVENT_SUBSCRIPTION_CREATED,
    EVENT_UNSUBSCRIBED,
    EmailTriggerEngine,
    Trigger,
    TriggerCondition,
    get_field_value,
)


def make_subscription(**overrides):
    data = {
        "id": "sub-1",
        "email": "hornet@example.com",
        "status": "pending",
        "source": "web",
        "verification_token": "a" * 32,
        "unsubscribe_token": "b" * 64,
        "subscribed_at": datetime(2025, 8, 21, tzinfo=timezone.utc),
    }
    data.update(overrides)
    return SubscriptionRecord(**data)


def test_conditions():
    data = {"subscription": {"source": "footer"}, "subscriber_count": 12}

    assert get_field_value(data, "subscription.source") == "footer"
    assert get_field_value(data, "subscription.missing.deeper") is None
    assert TriggerCondition("subscription.source", "equals", "footer").evaluate(data)
    assert TriggerCondition("subscriber_count", "greater_than", 10).evaluate(data)
    assert not TriggerCondition("subscriber_count", "less_than", 10).evaluate(data)
    assert not TriggerCondition("subscription.missing", "greater_than", 1).evaluate(data)
    assert TriggerCondition("subscriber_count", "no_such_operator", 1).evaluate(data)


def test_default_triggers_per_event():
    engine = EmailTriggerEngine()

    assert [t.template_id for t in engine.triggers_for(EVENT_SUBSCRIPTION_CREATED)] == ["confirmation"]
    assert [t.template_id for t in engine.triggers_for(EVENT_SUBSCRIPTION_CONFIRMED)] == ["welcome"]
    assert [t.template_id for t in engine.triggers_for(EVENT_UNSUBSCRIBED)] == ["unsubscribe_confirmation"]


def test_context_links(monkeypatch):
    monkeypatch.setenv("SITE_URL", "https://silksong.test")
    engine = EmailTriggerEngine()

    context = engine.build_context(make_subscription(), {"subscriber_count": 3})

    assert context["confirm_url"] == f"https://silksong.test/subscribe/confirm?token={'a' * 32}"
    assert context["unsubscribe_url"] == f"https://silksong.test/unsubscribe?token={'b' * 64}"
    assert context["subscriber_count"] == 3


def test_dispatch_sends_confirmation(sent_emails):
    engine = EmailTriggerEngine()

    results = asyncio.run(
        engine.dispatch(EVENT_SUBSCRIPTION_CREATED, make_subscription(), {"requires_confirmation": True})
    )

    assert [r.success for r in results] == [True]
    assert sent_emails[0]["subject"] == "Confirm your Silksong newsletter subscription"
    assert "a" * 32 in sent_emails[0]["text"]
    assert {"name": "template", "value": "confirmation"} in sent_emails[0]["tags"]


def test_dispatch_skips_unmatched_conditions(sent_emails):
    engine = EmailTriggerEngine()

    results = asyncio.run(engine.dispatch(EVENT_SUBSCRIPTION_CREATED, make_subscription(), {}))

    assert results == []
    assert sent_emails == []


def test_failing_trigger_does_not_stop_the_rest(sent_emails):
    engine = EmailTriggerEngine()
    engine.add_trigger(Trigger(id="broken", event=EVENT_SUBSCRIPTION_CONFIRMED, template_id="missing"))

    results = asyncio.run(
        engine.dispatch(EVENT_SUBSCRIPTION_CONFIRMED, make_subscription(status="active"), {})
    )

    assert sorted(r.success for r in results) == [False, True]
    assert len(sent_emails) == 1


def test_disabled_trigger_is_skipped(sent_emails):
    engine = EmailTriggerEngine()
    engine.get_trigger("welcome-email-trigger").enabled = False

    assert engine.triggers_for(EVENT_SUBSCRIPTION_CONFIRMED) == []
    assert engine.remove_trigger("welcome-email-trigger") is True
    assert engine.remove_trigger("welcome-email-trigger") is False
