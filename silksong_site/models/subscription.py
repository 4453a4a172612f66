"""
Newsletter subscription model.
One row per email address; rows are kept after unsubscribing.
"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, String

from ..database import Base

# Subscription status constants
STATUS_PENDING = "pending"
STATUS_ACTIVE = "active"
STATUS_UNSUBSCRIBED = "unsubscribed"
STATUS_BOUNCED = "bounced"
STATUS_BLOCKED = "blocked"

SUBSCRIPTION_STATUSES = (
    STATUS_PENDING,
    STATUS_ACTIVE,
    STATUS_UNSUBSCRIBED,
    STATUS_BOUNCED,
    STATUS_BLOCKED,
)

# pending -> active -> unsubscribed; blocked is terminal
ALLOWED_TRANSITIONS = {
    STATUS_PENDING: {STATUS_ACTIVE, STATUS_UNSUBSCRIBED, STATUS_BOUNCED, STATUS_BLOCKED},
    STATUS_ACTIVE: {STATUS_UNSUBSCRIBED, STATUS_BOUNCED, STATUS_BLOCKED},
    STATUS_UNSUBSCRIBED: {STATUS_PENDING, STATUS_ACTIVE, STATUS_BLOCKED},
    STATUS_BOUNCED: {STATUS_PENDING, STATUS_BLOCKED},
    STATUS_BLOCKED: set(),
}


def can_transition(current: str, new: str) -> bool:
    return new in ALLOWED_TRANSITIONS.get(current, set())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Subscription(Base):
    __tablename__ = "newsletter_subscriptions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(254), unique=True, nullable=False, index=True)
    status = Column(String(20), nullable=False, default=STATUS_PENDING, index=True)
    source = Column(String(50), default="web")  # web, footer, popup, widget...
    tags = Column(JSON, default=list)
    # "metadata" is reserved on declarative classes
    metadata_ = Column("metadata", JSON, default=dict)

    verified = Column(Boolean, default=False)
    verification_token = Column(String(32), nullable=True, index=True)
    unsubscribe_token = Column(String(64), nullable=True, unique=True, index=True)

    subscribed_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    unsubscribed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
