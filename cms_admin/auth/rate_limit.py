"""Fixed-window attempt counters used to gate authentication."""

from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from prometheus_client import Counter
from redis import Redis

from cms_admin.config import Config
from cms_admin.errors import RateLimitExceeded

logger = logging.getLogger(__name__)

_RATE_LIMITED = Counter(
    "cms_admin_rate_limited_total",
    "Number of attempts rejected by the rate limiter.",
    labelnames=("backend",),
)

Clock = Callable[[], float]


@dataclass
class RateLimitEntry:
    count: int
    reset_at: float


class RateLimiter:
    """In-process fixed-window counter keyed by scope.

    The first attempt in a window opens it for ``window_seconds``. Once
    ``max_attempts`` attempts were recorded, further attempts raise
    :class:`RateLimitExceeded` until the window elapses. Rejected attempts
    are not counted.
    """

    backend = "memory"

    def __init__(
        self,
        *,
        max_attempts: int,
        window_seconds: float,
        clock: Clock = time.monotonic,
        sweep_interval: float = 300,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be positive")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self._clock = clock
        self._sweep_interval = sweep_interval
        self._entries: dict[str, RateLimitEntry] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()

    def __len__(self) -> int:
        return len(self._entries)

    def check_and_increment(self, scope: str) -> None:
        with self._lock:
            now = self._clock()
            self._sweep_if_due(now)
            entry = self._entries.get(scope)
            if entry is None or now > entry.reset_at:
                entry = RateLimitEntry(0, now + self.window_seconds)
                self._entries[scope] = entry
            if entry.count >= self.max_attempts:
                retry_after = max(math.ceil(entry.reset_at - now), 1)
                _RATE_LIMITED.labels(backend=self.backend).inc()
                raise RateLimitExceeded.for_delay(retry_after)
            entry.count += 1

    def peek(self, scope: str) -> tuple[int, int]:
        """Return ``(count, seconds until reset)`` without consuming."""

        with self._lock:
            now = self._clock()
            entry = self._entries.get(scope)
            if entry is None or now > entry.reset_at:
                return 0, 0
            return entry.count, max(math.ceil(entry.reset_at - now), 0)

    def reset(self, scope: str) -> None:
        with self._lock:
            self._entries.pop(scope, None)

    def purge_expired(self) -> int:
        with self._lock:
            return self._purge(self._clock())

    def _sweep_if_due(self, now: float) -> None:
        if now - self._last_sweep < self._sweep_interval:
            return
        removed = self._purge(now)
        if removed:
            logger.debug("rate_limit.sweep removed=%s", removed)

    def _purge(self, now: float) -> int:
        expired = [
            scope
            for scope, entry in self._entries.items()
            if now > entry.reset_at
        ]
        for scope in expired:
            del self._entries[scope]
        self._last_sweep = now
        return len(expired)


class RedisRateLimiter:
    """Fixed-window counter shared between processes through Redis.

    ``INCR`` and ``TTL`` run in one MULTI/EXEC block. The first increment of
    a window, or any key found without an expiry, gets the window TTL, so a
    key can never outlive its window. Attempts past the maximum still
    increment the key but are reported as rejected; the window reset is
    driven by the TTL alone.
    """

    backend = "redis"

    def __init__(
        self,
        client: Redis,
        *,
        max_attempts: int,
        window_seconds: int,
        namespace: str = "cms-admin:ratelimit",
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be positive")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.client = client
        self.max_attempts = max_attempts
        self.window_seconds = int(window_seconds)
        self.namespace = namespace

    def key(self, scope: str) -> str:
        return f"{self.namespace}:{scope}"

    def check_and_increment(self, scope: str) -> None:
        key = self.key(scope)
        with self.client.pipeline(transaction=True) as pipe:
            pipe.incr(key)
            pipe.ttl(key)
            count, ttl = pipe.execute()
        ttl = int(ttl)
        if ttl < 0:
            # -1: the key has no expiry yet (new window or lost TTL).
            self.client.expire(key, self.window_seconds)
            ttl = self.window_seconds
        if int(count) <= self.max_attempts:
            return
        _RATE_LIMITED.labels(backend=self.backend).inc()
        raise RateLimitExceeded.for_delay(max(ttl, 1))

    def peek(self, scope: str) -> tuple[int, int]:
        key = self.key(scope)
        raw = self.client.get(key)
        if raw is None:
            return 0, 0
        count = min(int(raw), self.max_attempts)
        return count, max(int(self.client.ttl(key)), 0)

    def reset(self, scope: str) -> None:
        self.client.delete(self.key(scope))

    def purge_expired(self) -> int:
        # Redis expires window keys on its own.
        return 0


def build_rate_limiter(
    config: Config, *, clock: Optional[Clock] = None
) -> RateLimiter | RedisRateLimiter:
    """Create the authentication rate limiter selected by ``config``."""

    if config.rate_limit_backend == "redis":
        client = config.redis
        if client is not None:
            return RedisRateLimiter(
                client,
                max_attempts=config.auth_rate_limit_max_attempts,
                window_seconds=config.auth_rate_limit_window_seconds,
            )
        logger.warning(
            "RATE_LIMIT_BACKEND=redis but REDIS_URL is unset; "
            "falling back to the in-memory limiter"
        )
    return RateLimiter(
        max_attempts=config.auth_rate_limit_max_attempts,
        window_seconds=config.auth_rate_limit_window_seconds,
        clock=clock or time.monotonic,
        sweep_interval=config.rate_limit_sweep_seconds,
    )


__all__ = [
    "RateLimitEntry",
    "RateLimiter",
    "RedisRateLimiter",
    "build_rate_limiter",
]
