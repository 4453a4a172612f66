"""
Hosted database adapter (Supabase), talking to its PostgREST endpoint.

Auth is the service role key in both `apikey` and `Authorization` headers.
Rows are JSON; inserts and updates ask for `return=representation` so the
stored row comes back, counts use `Prefer: count=exact` and Content-Range.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx

from ..errors import DatabaseError, DuplicateSubscriptionError, NotFoundError
from ..schemas.subscription_schema import SubscriptionRecord
from .base import SubscriptionAdapter

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"


def _serialize(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _serialize(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_serialize(v) for v in value]
    return value


def _parse_content_range(header: Optional[str]) -> int:
    """'0-24/3573' or '*/0' -> total."""
    if not header or "/" not in header:
        return 0
    total = header.rsplit("/", 1)[1]
    return int(total) if total.isdigit() else 0


class SupabaseSubscriptionAdapter(SubscriptionAdapter):
    name = "supabase"

    def __init__(
        self,
        url: str,
        service_key: str,
        table: str = "newsletter_subscriptions",
        log_table: str = "unsubscription_logs",
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        if not url or not service_key:
            raise DatabaseError(
                message="Database service is not available",
                code="database_unavailable",
            )
        self.table = table
        self.log_table = log_table
        self.client = httpx.Client(
            base_url=f"{url.rstrip('/')}/rest/v1",
            headers={
                "apikey": service_key,
                "Authorization": f"Bearer {service_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    # --- HTTP helpers ---

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            response = self.client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"[Supabase] {method} {path} failed: {e}")
            raise DatabaseError(details={"originalError": str(e)}) from e

        if response.status_code >= 400:
            try:
                body = response.json()
            except ValueError:
                body = {"message": response.text}
            if isinstance(body, dict) and body.get("code") == UNIQUE_VIOLATION:
                raise DuplicateSubscriptionError()
            logger.error(f"[Supabase] {method} {path} -> {response.status_code}: {body}")
            raise DatabaseError(details={"status": response.status_code, "originalError": body})
        return response

    def _rows(self, response: httpx.Response) -> List[Dict[str, Any]]:
        if not response.content:
            return []
        data = response.json()
        return data if isinstance(data, list) else [data]

    def _find_one(self, column: str, value: str) -> Optional[SubscriptionRecord]:
        response = self._request(
            "GET",
            f"/{self.table}",
            params={"select": "*", column: f"eq.{value}", "limit": "1"},
        )
        rows = self._rows(response)
        return SubscriptionRecord.model_validate(rows[0]) if rows else None

    @staticmethod
    def _range_filters(column: str, since: Optional[datetime], until: Optional[datetime]) -> Dict[str, str]:
        conditions = []
        if since:
            conditions.append(f"{column}.gte.{since.isoformat()}")
        if until:
            conditions.append(f"{column}.lte.{until.isoformat()}")
        if not conditions:
            return {}
        return {"and": f"({','.join(conditions)})"}

    def _count(self, table: str, params: Dict[str, str]) -> int:
        response = self._request(
            "GET",
            f"/{table}",
            params={"select": "id", "limit": "1", **params},
            headers={"Prefer": "count=exact"},
        )
        return _parse_content_range(response.headers.get("content-range"))

    # --- Subscriptions ---

    def create(self, data: Dict[str, Any]) -> SubscriptionRecord:
        response = self._request(
            "POST",
            f"/{self.table}",
            json=[_serialize(data)],
            headers={"Prefer": "return=representation"},
        )
        rows = self._rows(response)
        if not rows:
            raise DatabaseError(message="Failed to create subscription")
        return SubscriptionRecord.model_validate(rows[0])

    def get(self, subscription_id: str) -> Optional[SubscriptionRecord]:
        return self._find_one("id", subscription_id)

    def get_by_email(self, email: str) -> Optional[SubscriptionRecord]:
        return self._find_one("email", email.lower())

    def get_by_verification_token(self, token: str) -> Optional[SubscriptionRecord]:
        return self._find_one("verification_token", token)

    def get_by_unsubscribe_token(self, token: str) -> Optional[SubscriptionRecord]:
        return self._find_one("unsubscribe_token", token)

    def update(self, subscription_id: str, fields: Dict[str, Any]) -> SubscriptionRecord:
        response = self._request(
            "PATCH",
            f"/{self.table}",
            params={"id": f"eq.{subscription_id}"},
            json=_serialize(fields),
            headers={"Prefer": "return=representation"},
        )
        rows = self._rows(response)
        if not rows:
            raise NotFoundError(message="Subscription not found", code="subscription_not_found")
        return SubscriptionRecord.model_validate(rows[0])

    def delete(self, subscription_id: str) -> bool:
        response = self._request(
            "DELETE",
            f"/{self.table}",
            params={"id": f"eq.{subscription_id}"},
            headers={"Prefer": "return=representation"},
        )
        return bool(self._rows(response))

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
        params: Dict[str, str] = {"select": "*", "order": "subscribed_at.desc"}
        if status:
            params["status"] = f"eq.{status}"
        if source:
            params["source"] = f"eq.{source}"
        if tag:
            params["tags"] = f"cs.{{{tag}}}"
        params.update(self._range_filters("subscribed_at", since, until))
        if limit is not None:
            params["limit"] = str(limit)
        if offset:
            params["offset"] = str(offset)

        response = self._request("GET", f"/{self.table}", params=params)
        return [SubscriptionRecord.model_validate(row) for row in self._rows(response)]

    def count(
        self,
        status: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> int:
        params: Dict[str, str] = {}
        if status:
            params["status"] = f"eq.{status}"
        params.update(self._range_filters("subscribed_at", since, until))
        return self._count(self.table, params)

    # --- Unsubscription audit log ---

    def log_unsubscription(self, entry: Dict[str, Any]) -> None:
        self._request("POST", f"/{self.log_table}", json=[_serialize(entry)])

    def count_unsubscriptions(
        self,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> int:
        return self._count(self.log_table, self._range_filters("unsubscribed_at", since, until))

    # --- Maintenance ---

    def health_check(self) -> bool:
        try:
            self._request("GET", f"/{self.table}", params={"select": "id", "limit": "1"})
            return True
        except DatabaseError as e:
            logger.warning(f"[Supabase] health check failed: {e.details}")
            return False

    def close(self) -> None:
        self.client.close()
