"""Token bucket rate limiters for WebSocket message throttling."""

import time


class TokenBucket:
    """Rate limiter using the token bucket algorithm.

    Tokens are added at a constant rate up to a maximum burst capacity.
    Each consume() call removes one token; returns False when the bucket
    is empty (caller should throttle).
    """

    def __init__(self, rate: float, burst: int) -> None:
        self._rate = rate
        self._burst = burst
        self._tokens = float(burst)
        self._last_refill = time.monotonic()

    def consume(self) -> bool:
        now = time.monotonic()
        self._tokens = min(self._burst, self._tokens + (now - self._last_refill) * self._rate)
        self._last_refill = now

        if self._tokens >= 1.0:
            self._tokens -= 1.0
            return True
        return False


class ConnectionRateLimiter:
    """One TokenBucket per connection id, created on first use.

    Used for message kinds that need a tighter budget than the general
    per-socket bucket (bet updates are sent on every slider move).
    """

    def __init__(self, rate: float, burst: int) -> None:
        self._rate = rate
        self._burst = burst
        self._buckets: dict[str, TokenBucket] = {}

    def consume(self, connection_id: str) -> bool:
        bucket = self._buckets.get(connection_id)
        if bucket is None:
            bucket = TokenBucket(rate=self._rate, burst=self._burst)
            self._buckets[connection_id] = bucket
        return bucket.consume()

    def discard(self, connection_id: str) -> None:
        self._buckets.pop(connection_id, None)

    def __len__(self) -> int:
        return len(self._buckets)
