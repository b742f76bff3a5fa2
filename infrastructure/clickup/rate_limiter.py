import time
from threading import Lock
from typing import Any, Mapping, Optional

# ClickUp resets its per-token window every minute.
DEFAULT_WINDOW_SECONDS = 60.0


class RateLimiter:
    """Thread-safe rate limiter driven by ClickUp response headers."""

    def __init__(self, clock=time.time, sleeper=time.sleep) -> None:
        self._lock = Lock()
        self._clock = clock
        self._sleeper = sleeper
        self._next_ts = 0.0
        self.last_remaining: Optional[int] = None
        self.last_reset_epoch: Optional[float] = None
        self.last_wait: float = 0.0

    def acquire(self) -> None:
        while True:
            with self._lock:
                wait = self._next_ts - self._clock()
            if wait <= 0:
                return
            self._sleeper(min(wait, 2.0))

    def update(self, headers: Mapping[str, Any]) -> None:
        remaining = _header(headers, "X-RateLimit-Remaining")
        reset = _header(headers, "X-RateLimit-Reset")
        retry_after = _header(headers, "Retry-After")
        with self._lock:
            now = self._clock()
            reset_ts = _as_float(reset)
            if reset_ts is not None:
                self.last_reset_epoch = reset_ts
            delay = _as_float(retry_after)
            if delay is not None:
                self._next_ts = max(self._next_ts, now + delay)
            rem = _as_float(remaining)
            if rem is not None:
                self.last_remaining = int(rem)
                if rem <= 1:
                    if reset_ts is not None and reset_ts > now:
                        self._next_ts = max(self._next_ts, reset_ts)
                    else:
                        self._next_ts = max(self._next_ts, now + DEFAULT_WINDOW_SECONDS)
            self.last_wait = max(0.0, self._next_ts - now)


def _header(headers: Mapping[str, Any], name: str) -> Any:
    value = headers.get(name)
    if value is None:
        value = headers.get(name.lower())
    return value


def _as_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None
