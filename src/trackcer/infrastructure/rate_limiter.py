"""Per-service token buckets for the external music APIs.

Every client instance in the process shares one bucket per service:

    async with get_genius_limiter():
        response = await client.get(url)

and hands 429 answers to handle_rate_limit_response(), which sleeps and widens the
backoff until the next clean request.
"""

import asyncio
import logging
import time
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimiterConfig:
    """Bucket size, refill rate (tokens per second) and 429 backoff bounds."""

    max_tokens: int = 10
    refill_rate: float = 2.0
    max_backoff_seconds: float = 600.0
    initial_backoff_seconds: float = 1.0
    backoff_multiplier: float = 2.0


SERVICE_LIMITS: dict[str, RateLimiterConfig] = {
    # ~180 req/min documented, bursts of 10 stay clear of it
    "spotify": RateLimiterConfig(max_tokens=10, refill_rate=2.0),
    "apple_music": RateLimiterConfig(max_tokens=5, refill_rate=1.0, max_backoff_seconds=120.0),
    # The producer job walks hundreds of tracks, Genius 429s above ~5 req/s
    "genius": RateLimiterConfig(max_tokens=5, refill_rate=3.0, max_backoff_seconds=120.0),
    # 60 authenticated requests per minute
    "discogs": RateLimiterConfig(
        max_tokens=1, refill_rate=1.0, max_backoff_seconds=60.0, initial_backoff_seconds=2.0
    ),
}


class RateLimiter:
    """Token bucket with a doubling backoff on 429.

    The backoff resets once a request leaves the `async with` block without raising.
    """

    def __init__(self, config: RateLimiterConfig | None = None, name: str = "default") -> None:
        self.config = config or RateLimiterConfig()
        self.name = name
        self._tokens = float(self.config.max_tokens)
        self._stamp = time.monotonic()
        self._backoff = self.config.initial_backoff_seconds
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = time.monotonic()
        self._tokens = min(
            float(self.config.max_tokens),
            self._tokens + (now - self._stamp) * self.config.refill_rate,
        )
        self._stamp = now

    def _take(self) -> float:
        """Take a token if one is there, else return how long until one will be."""
        self._refill()
        if self._tokens >= 1.0:
            self._tokens -= 1.0
            return 0.0
        return (1.0 - self._tokens) / self.config.refill_rate

    async def acquire(self) -> None:
        while True:
            async with self._lock:
                wait = self._take()
            if not wait:
                return
            logger.debug("RateLimiter[%s] waiting %.2fs for a token", self.name, wait)
            await asyncio.sleep(wait)

    async def handle_rate_limit_response(self, retry_after: int | None = None) -> float:
        """Sleep after a 429 and return the seconds waited.

        Args:
            retry_after: Retry-After header in seconds, the current backoff when absent
        """
        async with self._lock:
            wait = min(
                float(retry_after) if retry_after is not None else self._backoff,
                self.config.max_backoff_seconds,
            )
            self._backoff = min(
                self._backoff * self.config.backoff_multiplier, self.config.max_backoff_seconds
            )
            # Drain the bucket so parallel callers queue behind the backoff
            self._tokens = 0.0
        logger.warning(
            "RateLimiter[%s] got 429, waiting %.1fs",
            self.name,
            wait,
            extra={"service": self.name, "wait_seconds": wait},
        )
        await asyncio.sleep(wait)
        return wait

    @property
    def available_tokens(self) -> float:
        self._refill()
        return self._tokens

    async def __aenter__(self) -> "RateLimiter":
        await self.acquire()
        return self

    async def __aexit__(
        self, exc_type: type | None, exc_val: Exception | None, exc_tb: object
    ) -> None:
        if exc_type is None:
            self._backoff = self.config.initial_backoff_seconds


_limiters: dict[str, RateLimiter] = {}


def _limiter(service: str) -> RateLimiter:
    if service not in _limiters:
        _limiters[service] = RateLimiter(SERVICE_LIMITS[service], name=service)
    return _limiters[service]


def get_spotify_limiter() -> RateLimiter:
    return _limiter("spotify")


def get_apple_music_limiter() -> RateLimiter:
    return _limiter("apple_music")


def get_genius_limiter() -> RateLimiter:
    return _limiter("genius")


def get_discogs_limiter() -> RateLimiter:
    return _limiter("discogs")


def reset_limiters() -> None:
    """Forget the shared buckets. Their locks belong to the loop that created them."""
    _limiters.clear()


__all__ = [
    "SERVICE_LIMITS",
    "RateLimiter",
    "RateLimiterConfig",
    "get_apple_music_limiter",
    "get_discogs_limiter",
    "get_genius_limiter",
    "get_spotify_limiter",
    "reset_limiters",
]
