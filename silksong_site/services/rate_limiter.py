"""
In-memory sliding-window rate limiting.

A single dict per limiter, keyed by client identifier. Good enough for one
process; there is no cross-instance coordination.
"""
import logging
import math
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, Optional

from fastapi import Request

from ..errors import DuplicateRequestError, RateLimitError

logger = logging.getLogger(__name__)

REASON_RATE_LIMIT = "rate_limit"
REASON_DUPLICATE_EMAIL = "duplicate_email"
REASON_TOKEN_REUSE = "token_reuse"


@dataclass
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float
    retry_after: int = 0
    reason: Optional[str] = None

    def headers(self) -> Dict[str, str]:
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(math.ceil(self.reset_at)),
        }
        if not self.allowed and self.reason == REASON_RATE_LIMIT:
            headers["Retry-After"] = str(self.retry_after)
        return headers


@dataclass
class _Window:
    hits: Deque[float] = field(default_factory=deque)
    recent_emails: Dict[str, float] = field(default_factory=dict)
    used_tokens: set = field(default_factory=set)


class SlidingWindowRateLimiter:
    """
    Allows `max_requests` per `window_seconds` for each identifier.

    Optionally rejects the same email from the same client inside
    `duplicate_window_seconds` (once `record_email` has been called for it),
    and the same token twice. Idle clients are swept from `check` at most
    once per window.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: int,
        duplicate_window_seconds: int = 60,
        clock: Callable[[], float] = time.time,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.duplicate_window_seconds = duplicate_window_seconds
        self._clock = clock
        self._store: Dict[str, _Window] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()

    def __len__(self) -> int:
        return len(self._store)

    def _prune(self, entry: _Window, now: float) -> None:
        cutoff = now - self.window_seconds
        while entry.hits and entry.hits[0] <= cutoff:
            entry.hits.popleft()
        dup_cutoff = now - self.duplicate_window_seconds
        entry.recent_emails = {
            email: ts for email, ts in entry.recent_emails.items() if ts > dup_cutoff
        }
        if not entry.hits:
            entry.used_tokens.clear()

    def _reset_at(self, entry: _Window, now: float) -> float:
        if entry.hits:
            return entry.hits[0] + self.window_seconds
        return now + self.window_seconds

    def check(
        self,
        identifier: str,
        email: Optional[str] = None,
        token: Optional[str] = None,
    ) -> RateLimitResult:
        now = self._clock()
        with self._lock:
            if now - self._last_sweep >= self.window_seconds:
                self._sweep(now)
            entry = self._store.setdefault(identifier, _Window())
            self._prune(entry, now)

            if token and token in entry.used_tokens:
                reset_at = self._reset_at(entry, now)
                return RateLimitResult(
                    allowed=False,
                    limit=self.max_requests,
                    remaining=0,
                    reset_at=reset_at,
                    retry_after=max(1, math.ceil(reset_at - now)),
                    reason=REASON_TOKEN_REUSE,
                )

            if email and email in entry.recent_emails:
                reset_at = entry.recent_emails[email] + self.duplicate_window_seconds
                return RateLimitResult(
                    allowed=False,
                    limit=self.max_requests,
                    remaining=0,
                    reset_at=reset_at,
                    retry_after=max(1, math.ceil(reset_at - now)),
                    reason=REASON_DUPLICATE_EMAIL,
                )

            if len(entry.hits) >= self.max_requests:
                reset_at = self._reset_at(entry, now)
                return RateLimitResult(
                    allowed=False,
                    limit=self.max_requests,
                    remaining=0,
                    reset_at=reset_at,
                    retry_after=max(1, math.ceil(reset_at - now)),
                    reason=REASON_RATE_LIMIT,
                )

            entry.hits.append(now)
            if token:
                entry.used_tokens.add(token)

            return RateLimitResult(
                allowed=True,
                limit=self.max_requests,
                remaining=self.max_requests - len(entry.hits),
                reset_at=self._reset_at(entry, now),
            )

    def record_email(self, identifier: str, email: str) -> None:
        """Start the duplicate window for `email`. Call after the request succeeded."""
        now = self._clock()
        with self._lock:
            self._store.setdefault(identifier, _Window()).recent_emails[email] = now

    def _sweep(self, now: float) -> int:
        removed = 0
        for key in list(self._store):
            entry = self._store[key]
            self._prune(entry, now)
            if not entry.hits and not entry.recent_emails:
                del self._store[key]
                removed += 1
        self._last_sweep = now
        if removed:
            logger.debug(f"Rate limiter cleanup removed {removed} idle clients")
        return removed

    def cleanup(self) -> int:
        """Drop identifiers with nothing left in their window."""
        now = self._clock()
        with self._lock:
            return self._sweep(now)

    def reset(self) -> None:
        with self._lock:
            self._store.clear()


def get_client_ip(request: Request) -> str:
    """First hop of X-Forwarded-For, then CF-Connecting-IP, X-Real-IP, socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    cf_ip = request.headers.get("cf-connecting-ip")
    if cf_ip:
        return cf_ip
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def raise_for_limit(result: RateLimitResult) -> None:
    """Turn a refused check into the matching API error."""
    if result.allowed:
        return
    headers = result.headers()
    if result.reason == REASON_DUPLICATE_EMAIL:
        raise DuplicateRequestError(retry_after=result.retry_after, headers=headers)
    if result.reason == REASON_TOKEN_REUSE:
        raise RateLimitError(
            message="This unsubscribe link was already used. Please wait before trying again.",
            code="security_token_reuse",
            retry_after=result.retry_after,
            headers=headers,
        )
    raise RateLimitError(retry_after=result.retry_after, headers=headers)
