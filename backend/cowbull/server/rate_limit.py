"""Per-connection inbound message throttling."""

import time


class TokenBucket:
    """Token bucket rate limiter.

    The bucket refills at `rate` tokens per second up to `burst`. Each
    consume() takes one token and returns False once the bucket is empty.
    """

    def __init__(self, rate: float, burst: int) -> None:
        if rate <= 0 or burst < 1:
            raise ValueError("rate must be positive and burst at least 1")
        self._rate = rate
        self._burst = burst
        self._tokens = float(burst)
        self._last_refill = time.monotonic()

    @property
    def available(self) -> float:
        return self._tokens

    def _refill(self) -> None:
        now = time.monotonic()
        self._tokens = min(float(self._burst), self._tokens + (now - self._last_refill) * self._rate)
        self._last_refill = now

    def consume(self) -> bool:
        self._refill()
        if self._tokens < 1.0:
            return False
        self._tokens -= 1.0
        return True
