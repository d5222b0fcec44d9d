import json
import logging
import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple

import redis

from storefront.config import Settings, get_settings
from storefront.exceptions import CacheDegradedError

logger = logging.getLogger(__name__)

PRODUCTS_ALL_KEY = "products:all"
STATS_KEY = "stats:summary"

# Where a read-through value came from
SOURCE_CACHE = "cache"
SOURCE_DATABASE = "database"

# Anything a backend raises when it is unreachable or misbehaving
BACKEND_ERRORS = (redis.RedisError, OSError)


def product_key(product_id: int) -> str:
    """Cache key for a single product."""
    return f"product:{product_id}"


class ReconnectBackoff:
    """Capped exponential delay before the next attempt to reach a failed backend."""

    def __init__(self, base: float = 0.05, cap: float = 0.5):
        if base < 0 or cap < base:
            raise ValueError("backoff requires 0 <= base <= cap")
        self.base = base
        self.cap = cap

    def delay(self, failures: int) -> float:
        if failures <= 0:
            return 0.0
        return min(self.cap, self.base * (2 ** (failures - 1)))


class CacheCoordinator:
    """
    Read-through / write-invalidate cache in front of the inventory store.

    Every operation is best-effort: a backend failure turns a ``get`` into
    a miss and a ``put`` or ``invalidate`` into a logged no-op. After a
    failure the backend is left alone until the reconnect backoff expires.

    Two rules keep the cache from serving data older than the last
    invalidation:

    - An invalidation that could not reach the backend is kept as pending
      and replayed before the cache serves another read. While anything is
      pending, reads are misses.
    - Each key carries an invalidation generation. ``read_through`` drops
      the value it just stored if the key was invalidated while the loader
      was reading the store.

    Values are stored as a JSON envelope holding the value and its absolute
    expiry, so expired data is never returned even if the backend has not
    evicted it yet.
    """

    def __init__(
        self,
        backend,
        backoff: ReconnectBackoff = None,
        clock: Callable[[], float] = time.time,
    ):
        self.backend = backend
        self.backoff = backoff or ReconnectBackoff()
        self._clock = clock
        self._lock = threading.Lock()
        self._failures = 0
        self._retry_at = 0.0
        self._pending: Dict[str, int] = {}
        self._generations: Dict[str, int] = {}
        self._counters = {"hits": 0, "misses": 0, "errors": 0}

    @property
    def degraded(self) -> bool:
        with self._lock:
            return self._failures > 0

    def get(self, key: str) -> Optional[Any]:
        """
        Get a value from cache.

        Returns:
            Cached value, or None on a miss, an expired entry, or any
            backend failure.
        """
        try:
            self._replay_pending()
            raw = self._call("get", key, lambda backend: backend.get(key))
        except CacheDegradedError:
            return self._miss()

        if raw is None:
            return self._miss()

        try:
            envelope = json.loads(raw)
            expires_at = float(envelope["expires_at"])
            value = envelope["value"]
        except (ValueError, TypeError, KeyError):
            logger.warning(f"Discarding undecodable cache entry '{key}'")
            return self._miss()

        if self._clock() >= expires_at:
            return self._miss()

        with self._lock:
            self._counters["hits"] += 1
        return value

    def put(self, key: str, value: Any, ttl: int) -> bool:
        """
        Store a value until now + ttl, overwriting any existing entry.

        Returns:
            True if the backend accepted the write, False otherwise
        """
        expires_at = self._clock() + ttl
        try:
            payload = json.dumps({"expires_at": expires_at, "value": value}, default=str)
        except (TypeError, ValueError) as e:
            logger.warning(f"Cannot serialize value for cache key '{key}': {e}")
            return False

        try:
            self._call("put", key, lambda backend: backend.setex(key, max(1, int(ttl)), payload))
        except CacheDegradedError:
            return False
        return True

    def invalidate(self, key: str) -> None:
        """Remove a key. Idempotent; a missing key is not an error."""
        with self._lock:
            generation = self._generations.get(key, 0) + 1
            self._generations[key] = generation

        try:
            self._call("invalidate", key, lambda backend: backend.delete(key))
        except CacheDegradedError:
            with self._lock:
                self._pending[key] = generation
            logger.warning(f"Invalidation of '{key}' deferred until the cache backend recovers")

    def invalidate_all_for_product(self, product_id: int) -> None:
        """Purge the single-product view and the full listing together."""
        self.invalidate(product_key(product_id))
        self.invalidate(PRODUCTS_ALL_KEY)

    def read_through(self, key: str, ttl: int, loader: Callable[[], Any]) -> Any:
        """
        Return the cached value for ``key``, or load it from the store.

        ``loader`` must return a JSON-serializable value, or None when there
        is nothing to cache (None is returned to the caller as-is).
        """
        return self.read_through_with_source(key, ttl, loader)[0]

    def read_through_with_source(
        self, key: str, ttl: int, loader: Callable[[], Any]
    ) -> Tuple[Any, str]:
        """Like ``read_through``, also reporting ``"cache"`` or ``"database"``."""
        cached = self.get(key)
        if cached is not None:
            return cached, SOURCE_CACHE

        generation = self._generation(key)
        value = loader()
        if value is None:
            return None, SOURCE_DATABASE

        if self.put(key, value, ttl) and self._generation(key) != generation:
            # Invalidated while the loader ran: what we stored may predate it
            self._discard(key)
        return value, SOURCE_DATABASE

    def ping(self) -> bool:
        try:
            self._call("ping", "-", lambda backend: backend.ping())
        except CacheDegradedError:
            return False
        return True

    def stats(self) -> dict:
        """Counters and connection state for health reporting."""
        with self._lock:
            return {
                **self._counters,
                "degraded": self._failures > 0,
                "pending_invalidations": len(self._pending),
                "backend": type(self.backend).__name__,
            }

    def _generation(self, key: str) -> int:
        with self._lock:
            return self._generations.get(key, 0)

    def _miss(self) -> None:
        with self._lock:
            self._counters["misses"] += 1
        return None

    def _discard(self, key: str) -> None:
        generation = self._generation(key)
        try:
            self._call("invalidate", key, lambda backend: backend.delete(key))
        except CacheDegradedError:
            with self._lock:
                self._pending.setdefault(key, generation)

    def _replay_pending(self) -> None:
        """Push deferred invalidations to the backend. Raises CacheDegradedError."""
        with self._lock:
            pending = dict(self._pending)
        if not pending:
            return

        keys = list(pending)
        self._call("invalidate", ", ".join(keys), lambda backend: backend.delete(*keys))
        with self._lock:
            for key, generation in pending.items():
                # A newer failed invalidation of the same key stays pending
                if self._pending.get(key) == generation:
                    del self._pending[key]
        logger.info(f"Replayed {len(keys)} deferred cache invalidation(s)")

    def _call(self, operation: str, key: str, fn: Callable[[Any], Any]) -> Any:
        with self._lock:
            if self._failures and self._clock() < self._retry_at:
                raise CacheDegradedError(f"cache backend unavailable, skipping {operation}")

        try:
            result = fn(self.backend)
        except BACKEND_ERRORS as e:
            with self._lock:
                self._failures += 1
                self._counters["errors"] += 1
                delay = self.backoff.delay(self._failures)
                self._retry_at = self._clock() + delay
            logger.warning(f"Cache {operation} failed for '{key}': {e}; retrying backend in {delay:.2f}s")
            raise CacheDegradedError(str(e)) from e

        with self._lock:
            if self._failures:
                logger.info(f"Cache backend reachable again after {self._failures} failure(s)")
            self._failures = 0
            self._retry_at = 0.0
        return result


def create_cache_backend(url: str, settings: Settings = None) -> redis.Redis:
    """Build a redis client for ``url``. No connection is made until first use."""
    settings = settings or get_settings()
    return redis.from_url(
        url,
        decode_responses=True,
        socket_timeout=settings.CACHE_SOCKET_TIMEOUT,
        socket_connect_timeout=settings.CACHE_SOCKET_TIMEOUT,
    )


def create_cache_coordinator(settings: Settings = None) -> CacheCoordinator:
    settings = settings or get_settings()
    return CacheCoordinator(
        create_cache_backend(settings.REDIS_URL, settings),
        backoff=ReconnectBackoff(settings.CACHE_RETRY_BASE_SECONDS, settings.CACHE_RETRY_MAX_SECONDS),
    )
