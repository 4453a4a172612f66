"""
HTTP client for the subscribe endpoint with retry and exponential backoff.

Network errors, 5xx and 429 answers are retried. Validation errors and
duplicates (4xx) are final: sending the same request again cannot help.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import httpx
from tenacity import (
    RetryCallState,
    RetryError,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .errors import NetworkError

logger = logging.getLogger(__name__)

SUBSCRIBE_PATH = "/api/subscribe"


class RetryableStatusError(Exception):
    """Raised for answers worth retrying (5xx, 429)."""

    def __init__(self, response: httpx.Response):
        super().__init__(f"HTTP {response.status_code}")
        self.response = response

    @property
    def retry_after(self) -> Optional[float]:
        value = self.response.headers.get("retry-after")
        try:
            return float(value) if value is not None else None
        except ValueError:
            return None


@dataclass
class SubscribeOutcome:
    success: bool
    status_code: int
    code: Optional[str] = None
    message: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)
    attempts: int = 1

    @classmethod
    def from_response(cls, response: httpx.Response, attempts: int) -> "SubscribeOutcome":
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        success = 200 <= response.status_code < 300
        return cls(
            success=success,
            status_code=response.status_code,
            code=body.get("code"),
            message=body.get("message") if success else body.get("error"),
            data=body.get("data") or {},
            attempts=attempts,
        )


def is_retryable_status(status_code: int) -> bool:
    return status_code >= 500 or status_code == 429


class NewsletterClient:
    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        retries: int = 3,
        backoff_initial: float = 1.0,
        backoff_max: float = 30.0,
        max_wait: float = 60.0,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.retries = retries
        self.max_wait = max_wait
        self._backoff = wait_exponential(multiplier=backoff_initial, max=backoff_max)
        self._sleep = sleep
        self._client = httpx.Client(base_url=self.base_url, timeout=timeout, transport=transport)

    def _wait(self, retry_state: RetryCallState) -> float:
        delay = self._backoff(retry_state)
        error = retry_state.outcome.exception() if retry_state.outcome else None
        if isinstance(error, RetryableStatusError) and error.retry_after:
            delay = max(delay, error.retry_after)
        return min(delay, self.max_wait)

    def _log_retry(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            f"Subscribe attempt {retry_state.attempt_number}/{self.retries + 1} failed ({error}), "
            f"retrying in {retry_state.next_action.sleep:.1f}s"
        )

    def _retrying(self) -> Retrying:
        kwargs = {}
        if self._sleep is not None:
            kwargs["sleep"] = self._sleep
        return Retrying(
            retry=retry_if_exception_type((httpx.TransportError, RetryableStatusError)),
            stop=stop_after_attempt(self.retries + 1),
            wait=self._wait,
            before_sleep=self._log_retry,
            reraise=True,
            **kwargs,
        )

    def _post(self, payload: Dict[str, Any]) -> httpx.Response:
        response = self._client.post(SUBSCRIBE_PATH, json=payload)
        if is_retryable_status(response.status_code):
            raise RetryableStatusError(response)
        return response

    def subscribe(
        self,
        email: str,
        source: str = "api",
        tags: Optional[List[str]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> SubscribeOutcome:
        payload: Dict[str, Any] = {"email": email, "source": source}
        if tags:
            payload["tags"] = tags
        if metadata:
            payload["metadata"] = metadata

        retrying = self._retrying()
        try:
            response = retrying(self._post, payload)
        except RetryableStatusError as e:
            logger.error(f"Subscribe gave up after {retrying.statistics.get('attempt_number')} attempts: {e}")
            return SubscribeOutcome.from_response(e.response, retrying.statistics.get("attempt_number", 1))
        except (httpx.TransportError, RetryError) as e:
            logger.error(f"Subscribe request failed: {e}")
            return SubscribeOutcome(
                success=False,
                status_code=0,
                code=NetworkError.code,
                message=NetworkError.message,
                attempts=retrying.statistics.get("attempt_number", 1),
            )

        return SubscribeOutcome.from_response(response, retrying.statistics.get("attempt_number", 1))

    def close(self) -> None:
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
