import pytest

from silksong_site.models.subscription import (
    STATUS_ACTIVE,
    STATUS_BLOCKED,
    STATUS_BOUNCED,
    STATUS_PENDING,
    STATUS_UNSUBSCRIBED,
    SUBSCRIPTION_STATUSES,
    can_transition,
)


@pytest.mark.parametrize(
    "current, new",
    [
        (STATUS_PENDING, STATUS_ACTIVE),
        (STATUS_PENDING, STATUS_UNSUBSCRIBED),
        (STATUS_ACTIVE, STATUS_UNSUBSCRIBED),
        (STATUS_ACTIVE, STATUS_BOUNCED),
        (STATUS_UNSUBSCRIBED, STATUS_PENDING),
        (STATUS_UNSUBSCRIBED, STATUS_ACTIVE),
        (STATUS_BOUNCED, STATUS_PENDING),
        (STATUS_ACTIVE, STATUS_BLOCKED),
    ],
)
def test_allowed_transitions(current, new):
    assert can_transition(current, new)


@pytest.mark.parametrize(
    "current, new",
    [
        (STATUS_ACTIVE, STATUS_PENDING),
        (STATUS_BOUNCED, STATUS_ACTIVE),
        (STATUS_PENDING, STATUS_PENDING),
        ("unknown", STATUS_ACTIVE),
    ],
)
def test_refused_transitions(current, new):
    assert not can_transition(current, new)


def test_blocked_is_terminal():
    assert not any(can_transition(STATUS_BLOCKED, status) for status in SUBSCRIPTION_STATUSES)
