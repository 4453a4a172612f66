"""
SQLAlchemy adapter: SQLite, PostgreSQL or MySQL depending on DATABASE_URL.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import DatabaseError, DuplicateSubscriptionError, NotFoundError
from ..models.subscription import Subscription
from ..models.unsubscription_log import UnsubscriptionLog
from ..schemas.subscription_schema import SubscriptionRecord
from .base import SubscriptionAdapter

logger = logging.getLogger(__name__)

# API field name -> ORM attribute
_FIELD_MAP = {"metadata": "metadata_"}


def _to_columns(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {_FIELD_MAP.get(key, key): value for key, value in fields.items()}


class SqlAlchemySubscriptionAdapter(SubscriptionAdapter):
    name = "sql"

    def __init__(self, db: Session):
        self.db = db

    def _record(self, row: Optional[Subscription]) -> Optional[SubscriptionRecord]:
        if row is None:
            return None
        return SubscriptionRecord.model_validate(row)

    def _first(self, *criteria) -> Optional[SubscriptionRecord]:
        try:
            row = self.db.query(Subscription).filter(*criteria).first()
        except SQLAlchemyError as e:
            logger.error(f"Subscription query failed: {e}")
            raise DatabaseError(details={"originalError": str(e)}) from e
        return self._record(row)

    def create(self, data: Dict[str, Any]) -> SubscriptionRecord:
        subscription = Subscription(**_to_columns(data))
        try:
            self.db.add(subscription)
            self.db.commit()
            self.db.refresh(subscription)
        except IntegrityError as e:
            self.db.rollback()
            raise DuplicateSubscriptionError() from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to create subscription: {e}")
            raise DatabaseError(message="Failed to create subscription", details={"originalError": str(e)}) from e
        return self._record(subscription)

    def get(self, subscription_id: str) -> Optional[SubscriptionRecord]:
        return self._first(Subscription.id == subscription_id)

    def get_by_email(self, email: str) -> Optional[SubscriptionRecord]:
        return self._first(Subscription.email == email.lower())

    def get_by_verification_token(self, token: str) -> Optional[SubscriptionRecord]:
        return self._first(Subscription.verification_token == token)

    def get_by_unsubscribe_token(self, token: str) -> Optional[SubscriptionRecord]:
        return self._first(Subscription.unsubscribe_token == token)

    def update(self, subscription_id: str, fields: Dict[str, Any]) -> SubscriptionRecord:
        try:
            subscription = self.db.query(Subscription).filter(Subscription.id == subscription_id).first()
            if subscription is None:
                raise NotFoundError(message="Subscription not found", code="subscription_not_found")
            for key, value in _to_columns(fields).items():
                setattr(subscription, key, value)
            self.db.commit()
            self.db.refresh(subscription)
        except IntegrityError as e:
            self.db.rollback()
            raise DuplicateSubscriptionError() from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to update subscription {subscription_id}: {e}")
            raise DatabaseError(message="Failed to update subscription", details={"originalError": str(e)}) from e
        return self._record(subscription)

    def delete(self, subscription_id: str) -> bool:
        try:
            deleted = self.db.query(Subscription).filter(Subscription.id == subscription_id).delete()
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise DatabaseError(message="Failed to delete subscription", details={"originalError": str(e)}) from e
        return deleted > 0

    def list_subscriptions(
        self,
        status: Optional[str] = None,
        source: Optional[str] = None,
        tag: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[SubscriptionRecord]:
        query = self.db.query(Subscription)
        if status:
            query = query.filter(Subscription.status == status)
        if source:
            query = query.filter(Subscription.source == source)
        if since:
            query = query.filter(Subscription.subscribed_at >= since)
        if until:
            query = query.filter(Subscription.subscribed_at <= until)
        query = query.order_by(Subscription.subscribed_at.desc())

        try:
            if tag:
                # JSON containment differs per dialect; filter tags in Python
                rows = [row for row in query.all() if tag in (row.tags or [])]
                end = offset + limit if limit is not None else None
                rows = rows[offset:end]
            else:
                if offset:
                    query = query.offset(offset)
                if limit is not None:
                    query = query.limit(limit)
                rows = query.all()
        except SQLAlchemyError as e:
            logger.error(f"Failed to list subscriptions: {e}")
            raise DatabaseError(details={"originalError": str(e)}) from e

        return [self._record(row) for row in rows]

    def count(
        self,
        status: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> int:
        query = self.db.query(func.count(Subscription.id))
        if status:
            query = query.filter(Subscription.status == status)
        if since:
            query = query.filter(Subscription.subscribed_at >= since)
        if until:
            query = query.filter(Subscription.subscribed_at <= until)
        try:
            return query.scalar() or 0
        except SQLAlchemyError as e:
            logger.error(f"Failed to count subscriptions: {e}")
            raise DatabaseError(details={"originalError": str(e)}) from e

    def log_unsubscription(self, entry: Dict[str, Any]) -> None:
        try:
            self.db.add(UnsubscriptionLog(**_to_columns(entry)))
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise DatabaseError(message="Failed to write unsubscription log", details={"originalError": str(e)}) from e

    def count_unsubscriptions(
        self,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> int:
        query = self.db.query(func.count(UnsubscriptionLog.id))
        if since:
            query = query.filter(UnsubscriptionLog.unsubscribed_at >= since)
        if until:
            query = query.filter(UnsubscriptionLog.unsubscribed_at <= until)
        try:
            return query.scalar() or 0
        except SQLAlchemyError as e:
            raise DatabaseError(details={"originalError": str(e)}) from e

    def health_check(self) -> bool:
        try:
            self.db.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.warning(f"Database health check failed: {e}")
            return False
