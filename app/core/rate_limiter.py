"""In-memory token bucket rate limiter for engine turns."""

import time
from collections import defaultdict
from typing import Any

from fastapi import HTTPException

from app.core.config import get_settings
from app.core.logging import get_logger

logger = get_logger(__name__)


class RateLimiter:
    """
    Token bucket per key.

    Buckets start full at ``burst_size`` and refill continuously at
    ``requests_per_minute``. State is process-local.
    """

    def __init__(self, requests_per_minute: int = 20, burst_size: int = 30, clock=time.monotonic):
        self.requests_per_minute = requests_per_minute
        self.burst_size = burst_size
        self.refill_rate = requests_per_minute / 60.0  # tokens per second
        self._clock = clock

        # key -> (tokens, last_refill_time)
        self._buckets: dict[str, tuple[float, float]] = {}
        self._request_counts: dict[str, int] = defaultdict(int)

    def _refill_bucket(self, key: str) -> float:
        now = self._clock()
        tokens, last_refill = self._buckets.get(key, (float(self.burst_size), now))
        tokens = min(self.burst_size, tokens + (now - last_refill) * self.refill_rate)
        self._buckets[key] = (tokens, now)
        return tokens

    def check_limit(self, key: str, cost: float = 1.0) -> bool:
        """
        Consume ``cost`` tokens for a key.

        Returns:
            True when the request is allowed

        Raises:
            HTTPException: 429 with a Retry-After header when the bucket is empty
        """
        tokens = self._refill_bucket(key)
        if tokens >= cost:
            self._buckets[key] = (tokens - cost, self._buckets[key][1])
            self._request_counts[key] += 1
            return True

        retry_after = int((cost - tokens) / self.refill_rate) + 1
        logger.warning(
            f"Rate limit exceeded for {key}, tokens: {tokens:.2f}/{self.burst_size}, "
            f"retry after: {retry_after}s"
        )
        raise HTTPException(
            status_code=429,
            detail=f"Rate limit exceeded. Try again in {retry_after} seconds.",
            headers={"Retry-After": str(retry_after)},
        )

    def get_stats(self, key: str) -> dict[str, Any]:
        tokens = self._refill_bucket(key)
        return {
            "tokens_remaining": int(tokens),
            "burst_size": self.burst_size,
            "requests_per_minute": self.requests_per_minute,
            "total_requests": self._request_counts.get(key, 0),
        }

    def reset(self, key: str) -> None:
        self._buckets.pop(key, None)
        self._request_counts.pop(key, None)
        logger.info(f"Rate limit reset for key: {key}")


_settings = get_settings()
message_rate_limiter = RateLimiter(
    requests_per_minute=_settings.MESSAGES_PER_MINUTE,
    burst_size=_settings.MESSAGES_BURST,
)


def check_message_rate_limit(visitor_id: str) -> None:
    """
    Raises:
        HTTPException: 429 if the visitor is over its engine turn budget
    """
    message_rate_limiter.check_limit(f"engine:{visitor_id}")
