"""
Audit trail of unsubscriptions (reason, client info, how long they stayed).
"""
from sqlalchemy import JSON, Column, DateTime, Integer, String

from ..database import Base
from .subscription import utcnow


class UnsubscriptionLog(Base):
    __tablename__ = "unsubscription_logs"

    id = Column(Integer, primary_key=True, index=True)
    subscription_id = Column(String(36), nullable=False, index=True)
    email = Column(String(254), nullable=False)
    reason = Column(String(50), nullable=True)
    user_agent = Column(String(500), nullable=True)
    ip_address = Column(String(64), nullable=True)
    unsubscribed_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    metadata_ = Column("metadata", JSON, default=dict)
