"""
Page-level in-memory response cache.

Rendered bodies (HTML pages, RSS, sitemap, stats JSON) are kept for a TTL
together with an ETag so clients can revalidate with If-None-Match.
"""
import hashlib
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    body: str
    media_type: str
    etag: str
    created_at: float
    expires_at: float

    @property
    def age(self) -> int:
        return int(time.time() - self.created_at)


def make_etag(body: str) -> str:
    return hashlib.sha256(body.encode("utf-8")).hexdigest()[:32]


def etag_matches(if_none_match: Optional[str], etag: str) -> bool:
    """True when an If-None-Match header names this ETag (quoted, weak or *)."""
    if not if_none_match:
        return False
    for candidate in if_none_match.split(","):
        candidate = candidate.strip()
        if candidate == "*":
            return True
        if candidate.startswith("W/"):
            candidate = candidate[2:]
        if candidate.strip('"') == etag:
            return True
    return False


class ResponseCache:
    def __init__(self, ttl_seconds: int, clock: Callable[[], float] = time.time):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Optional[CacheEntry]:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None
            if now >= entry.expires_at:
                del self._entries[key]
                self.misses += 1
                return None
            self.hits += 1
            return entry

    def set(self, key: str, body: str, media_type: str = "text/html; charset=utf-8") -> CacheEntry:
        now = self._clock()
        entry = CacheEntry(
            body=body,
            media_type=media_type,
            etag=make_etag(body),
            created_at=now,
            expires_at=now + self.ttl_seconds,
        )
        with self._lock:
            self._entries[key] = entry
        return entry

    def get_or_render(
        self,
        key: str,
        render: Callable[[], str],
        media_type: str = "text/html; charset=utf-8",
    ) -> Tuple[CacheEntry, bool]:
        """Return (entry, hit). `render` only runs on a miss."""
        entry = self.get(key)
        if entry is not None:
            return entry, True
        return self.set(key, render(), media_type), False

    def invalidate(self, key: Optional[str] = None) -> None:
        with self._lock:
            if key is None:
                self._entries.clear()
            else:
                self._entries.pop(key, None)
        logger.debug(f"Response cache invalidated: {key or 'all'}")

    def __len__(self) -> int:
        return len(self._entries)
