"""
Page revalidation notices sent after successful mutations.

Supports an in-memory recorder for tests/local runs and a Redis pub/sub
publisher for production. Revalidation is fire-and-forget: failures are
logged and never reach the action's result.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol

import redis
from redis import exceptions as redis_exceptions

logger = logging.getLogger(__name__)


class PageRevalidator(Protocol):
    """Asks the presentation layer to re-fetch data for a path."""

    def revalidate(self, path: str) -> None:
        ...


@dataclass
class InMemoryRevalidator:
    """Records requested paths for testing/dev."""

    paths: list[str] = field(default_factory=list)

    def revalidate(self, path: str) -> None:
        self.paths.append(path)


@dataclass
class RedisRevalidator:
    """Publishes revalidated paths on a Redis channel."""

    url: str
    channel: str = "companions:revalidate"

    def __post_init__(self):
        self.client = redis.Redis.from_url(self.url)

    def revalidate(self, path: str) -> None:
        try:
            self.client.publish(self.channel, path)
        except redis_exceptions.ConnectionError as e:
            # Managed Redis drops idle connections; reconnect for the next publish.
            logger.warning("Revalidation of %s not published: %s", path, e)
            self.client = redis.Redis.from_url(self.url)
        except redis_exceptions.RedisError as e:
            logger.warning("Revalidation of %s not published: %s", path, e)
