"""
Page cache for rendered list/detail payloads.

Entries are grouped by page path; each path holds one entry per variant
(page number, search term, ...). Revalidating a path drops every variant.
Supports an in-memory implementation for tests/local runs and a
Redis-backed implementation for production.
"""

from __future__ import annotations

import json
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Optional, Protocol

import redis
from redis import exceptions as redis_exceptions

logger = logging.getLogger(__name__)

REVALIDATION_LOG_SIZE = 256


class PageCache(Protocol):
    """Minimal cache interface keyed by page path and variant."""

    def get(self, path: str, variant: str = "") -> Optional[dict]:
        ...

    def set(self, path: str, variant: str, payload: dict) -> None:
        ...

    def revalidate(self, path: str) -> None:
        ...


@dataclass
class InMemoryPageCache:
    """Dict-backed cache for testing/dev."""

    pages: dict[str, dict[str, dict]] = field(default_factory=dict)
    # Most recent revalidations only.
    revalidated: deque[str] = field(default_factory=lambda: deque(maxlen=REVALIDATION_LOG_SIZE))

    def get(self, path: str, variant: str = "") -> Optional[dict]:
        return self.pages.get(path, {}).get(variant)

    def set(self, path: str, variant: str, payload: dict) -> None:
        self.pages.setdefault(path, {})[variant] = payload

    def revalidate(self, path: str) -> None:
        self.pages.pop(path, None)
        self.revalidated.append(path)

    def reset(self) -> None:
        self.pages.clear()
        self.revalidated.clear()


@dataclass
class RedisPageCache:
    """Redis-backed cache storing one hash per page path."""

    url: str
    prefix: str = "clubportal:pages"
    ttl: int = 3600

    def __post_init__(self):
        self.client = redis.Redis.from_url(self.url)

    def _key(self, path: str) -> str:
        return f"{self.prefix}:{path}"

    def get(self, path: str, variant: str = "") -> Optional[dict]:
        try:
            raw = self.client.hget(self._key(path), variant)
        except redis_exceptions.ConnectionError:
            # Connection resets can happen on managed Redis. Treat as a miss.
            logger.warning("Page cache unavailable, reading through")
            self.client = redis.Redis.from_url(self.url)
            return None
        if raw is None:
            return None
        return json.loads(raw)

    def set(self, path: str, variant: str, payload: dict) -> None:
        key = self._key(path)
        try:
            pipe = self.client.pipeline()
            pipe.hset(key, variant, json.dumps(payload, default=str))
            pipe.expire(key, self.ttl)
            pipe.execute()
        except redis_exceptions.ConnectionError:
            logger.warning("Page cache unavailable, skipping write for %s", path)
            self.client = redis.Redis.from_url(self.url)

    def revalidate(self, path: str) -> None:
        try:
            self.client.delete(self._key(path))
        except redis_exceptions.ConnectionError:
            logger.warning("Page cache connection lost, retrying revalidate for %s", path)
            self.client = redis.Redis.from_url(self.url)
            self.client.delete(self._key(path))
