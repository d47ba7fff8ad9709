"""Minimum-interval pacing between calls to an external service.

The fetch and publish stages receive a `Pacer` instead of sleeping inline, so
the pacing policy is a constructor parameter and can be disabled in tests.
Blocking is done by a pyrate-limiter `Limiter` holding one slot per interval.
"""

from __future__ import annotations

from pyrate_limiter import Duration, Limiter, Rate
from pyrate_limiter.buckets import InMemoryBucket

# wait as long as needed; the interval itself bounds the delay
_BLOCKING_MAX_DELAY_MS = int(Duration.DAY)


class Pacer:
    """Blocks in `wait()` until `interval` seconds passed since the last admitted call.

    Thread-safe: concurrent callers are spaced out one after another.
    An interval of 0 disables pacing and no limiter is created.
    """

    def __init__(self, interval: float = 0.0, name: str = "pacer") -> None:
        self.interval = max(0.0, interval)
        self.name = name
        self._limiter: Limiter | None = None
        if self.interval > 0:
            interval_ms = max(1, int(round(self.interval * 1000)))
            self._limiter = Limiter(
                InMemoryBucket([Rate(1, interval_ms)]),
                raise_when_fail=False,
                max_delay=_BLOCKING_MAX_DELAY_MS,
                retry_until_max_delay=True,
                buffer_ms=0,
            )

    @property
    def enabled(self) -> bool:
        return self._limiter is not None

    def wait(self) -> None:
        if self._limiter is None:
            return
        if not self._limiter.try_acquire(self.name):
            raise RuntimeError(f"Pacer {self.name!r} could not acquire a slot")
