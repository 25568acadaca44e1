import logging
import secrets
import threading
import time

from redis import Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


class RateLimiter:
    """Sliding-window counter keyed by identity.

    Each key keeps the timestamps of its recent hits; entries older than the
    window expire on their own (Redis key TTL, or pruning on access for the
    in-process store).
    """

    _REDIS_WINDOW_SCRIPT = """
local key = KEYS[1]
local now_ms = tonumber(ARGV[1])
local window_ms = tonumber(ARGV[2])
local limit = tonumber(ARGV[3])
local member = ARGV[4]
local ttl = tonumber(ARGV[5])
local cutoff = now_ms - window_ms

redis.call("ZREMRANGEBYSCORE", key, 0, cutoff)
local count = redis.call("ZCARD", key)
if count >= limit then
  redis.call("EXPIRE", key, ttl)
  return 1
end

redis.call("ZADD", key, now_ms, member)
redis.call("EXPIRE", key, ttl)
return 0
"""

    def __init__(self, redis_url: str | None = None, key_prefix: str = "finanzas") -> None:
        self._events: dict[str, list[float]] = {}
        self._max_window = 1
        self._last_sweep = 0.0
        self._lock = threading.Lock()
        self._key_prefix = key_prefix
        self._redis: Redis | None = None
        if redis_url:
            try:
                client = Redis.from_url(redis_url, decode_responses=False)
                client.ping()
                self._redis = client
            except RedisError:
                logger.warning("Redis unavailable at startup, rate limits stay in-process")
                self._redis = None

    @property
    def shared(self) -> bool:
        return self._redis is not None

    def _redis_key(self, key: str) -> str:
        return f"{self._key_prefix}:ratelimit:{key}"

    def _exceeded_redis(self, key: str, limit: int, window_seconds: int) -> bool | None:
        if self._redis is None:
            return None
        now_ms = int(time.time() * 1000)
        member = f"{now_ms}-{secrets.token_hex(6)}"
        try:
            result = self._redis.eval(
                self._REDIS_WINDOW_SCRIPT,
                1,
                self._redis_key(key),
                now_ms,
                window_seconds * 1000,
                limit,
                member,
                window_seconds + 1,
            )
            return int(result or 0) == 1
        except RedisError:
            logger.warning("Redis rate-limit call failed for %s, using in-process window", key)
            return None

    def _recent(self, key: str, cutoff: float) -> list[float]:
        events = [ts for ts in self._events.get(key, []) if ts >= cutoff]
        if events:
            self._events[key] = events
        else:
            self._events.pop(key, None)
        return events

    def _sweep(self, now: float) -> None:
        # Keys idle for longer than any window in use hold nothing that can still count.
        if now - self._last_sweep < self._max_window:
            return
        self._last_sweep = now
        cutoff = now - self._max_window
        for key in [k for k, events in self._events.items() if not events or events[-1] < cutoff]:
            del self._events[key]

    def exceeded(self, key: str, limit: int, window_seconds: int) -> bool:
        """Record one hit for ``key`` and report whether the limit was already reached."""
        limit = max(1, int(limit))
        window_seconds = max(1, int(window_seconds))

        redis_result = self._exceeded_redis(key, limit, window_seconds)
        if redis_result is not None:
            return redis_result

        now = time.time()
        cutoff = now - window_seconds
        with self._lock:
            self._max_window = max(self._max_window, window_seconds)
            self._sweep(now)
            events = self._recent(key, cutoff)
            if len(events) >= limit:
                return True
            events.append(now)
            self._events[key] = events
            return False

    def blocked(self, key: str, limit: int, window_seconds: int) -> bool:
        """Report whether ``key`` is at its limit without recording a hit."""
        limit = max(1, int(limit))
        window_seconds = max(1, int(window_seconds))
        if self._redis is not None:
            try:
                cutoff_ms = int((time.time() - window_seconds) * 1000)
                count = self._redis.zcount(self._redis_key(key), cutoff_ms, "+inf")
                return int(count or 0) >= limit
            except RedisError:
                logger.warning("Redis rate-limit read failed for %s", key)

        cutoff = time.time() - window_seconds
        with self._lock:
            return len(self._recent(key, cutoff)) >= limit
