"""
Storage interface for newsletter subscriptions.

Every backend (generic SQL through SQLAlchemy, the hosted database through
its REST API) implements the same methods and returns SubscriptionRecord
objects, so the service layer never sees ORM rows or raw JSON.
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..schemas.subscription_schema import SubscriptionRecord


class SubscriptionAdapter(ABC):
    name = "base"

    # --- Subscriptions ---

    @abstractmethod
    def create(self, data: Dict[str, Any]) -> SubscriptionRecord:
        """Insert a row. Raises DuplicateSubscriptionError if the email exists."""

    @abstractmethod
    def get(self, subscription_id: str) -> Optional[SubscriptionRecord]:
        ...

    @abstractmethod
    def get_by_email(self, email: str) -> Optional[SubscriptionRecord]:
        ...

    @abstractmethod
    def get_by_verification_token(self, token: str) -> Optional[SubscriptionRecord]:
        ...

    @abstractmethod
    def get_by_unsubscribe_token(self, token: str) -> Optional[SubscriptionRecord]:
        ...

    @abstractmethod
    def update(self, subscription_id: str, fields: Dict[str, Any]) -> SubscriptionRecord:
        """Apply `fields`. Raises NotFoundError if the row is gone."""

    @abstractmethod
    def delete(self, subscription_id: str) -> bool:
        ...

    @abstractmethod
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
        """Rows ordered by subscribed_at, newest first."""

    @abstractmethod
    def count(
        self,
        status: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> int:
        ...

    # --- Unsubscription audit log ---

    @abstractmethod
    def log_unsubscription(self, entry: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    def count_unsubscriptions(
        self,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> int:
        ...

    # --- Maintenance ---

    @abstractmethod
    def health_check(self) -> bool:
        ...

    def close(self) -> None:
        """Release backend resources. Default: nothing to release."""
