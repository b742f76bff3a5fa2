import logging
import threading
import time
from dataclasses import dataclass
from threading import Lock
from typing import Any, Callable, Dict, List, Optional

from application.sync_settings import RetryPolicy
from core import TodoItem

logger = logging.getLogger("todo_sync.retry")


@dataclass
class RetryEntry:
    item: TodoItem
    due: float
    attempt: int


class RetryQueue:
    """Delayed redrive of items whose synchronization failed.

    Entries are keyed by local item id, so scheduling a newer version of an
    item replaces the stale one. Delays grow with consecutive failures of
    the same id; once ``policy.max_attempts`` is exceeded the item is moved
    to ``dead_letters`` instead of being retried.
    """

    def __init__(
        self,
        redrive: Callable[[List[TodoItem]], Any],
        policy: Optional[RetryPolicy] = None,
        timer_factory: Callable[..., Any] = threading.Timer,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._redrive = redrive
        self.policy = policy or RetryPolicy()
        self._timer_factory = timer_factory
        self._clock = clock
        self._lock = Lock()
        self._entries: Dict[str, RetryEntry] = {}
        self._attempts: Dict[str, int] = {}
        self._timers: List[Any] = []
        self.dead_letters: Dict[str, TodoItem] = {}

    def schedule(self, item: TodoItem, delay: Optional[float] = None) -> bool:
        with self._lock:
            attempt = self._attempts.get(item.id, 0) + 1
            if attempt > self.policy.max_attempts:
                self._attempts.pop(item.id, None)
                self._entries.pop(item.id, None)
                self.dead_letters[item.id] = item
                logger.error("giving up on %s after %d failed attempts", item.id, attempt - 1)
                return False
            self._attempts[item.id] = attempt
            wait = self.policy.delay_for(attempt) if delay is None else max(0.0, float(delay))
            self._entries[item.id] = RetryEntry(item=item, due=self._clock() + wait, attempt=attempt)
        logger.warning("retrying %s in %.1fs (attempt %d/%d)", item.id, wait, attempt, self.policy.max_attempts)
        self._arm(wait)
        return True

    def discard(self, item_id: str) -> bool:
        with self._lock:
            return self._entries.pop(item_id, None) is not None

    def reset(self, item_id: str) -> None:
        with self._lock:
            self._attempts.pop(item_id, None)
            self.dead_letters.pop(item_id, None)

    def pending(self) -> int:
        with self._lock:
            return len(self._entries)

    def attempts(self, item_id: str) -> int:
        with self._lock:
            return self._attempts.get(item_id, 0)

    def drain_due(self, force: bool = False) -> int:
        with self._lock:
            now = self._clock()
            due = [entry for entry in self._entries.values() if force or entry.due <= now]
            for entry in due:
                del self._entries[entry.item.id]
            self._timers = [t for t in self._timers if _timer_alive(t)]
        if not due:
            return 0
        items = [entry.item for entry in due]
        try:
            self._redrive(items)
        except Exception:
            # Runs on a timer thread; nobody above us to hand the error to.
            logger.exception("retry redrive failed for %s", ", ".join(i.id for i in items))
        return len(items)

    def flush(self) -> int:
        return self.drain_due(force=True)

    def close(self) -> None:
        with self._lock:
            timers = list(self._timers)
            self._timers.clear()
            self._entries.clear()
        for timer in timers:
            cancel = getattr(timer, "cancel", None)
            if cancel:
                cancel()

    def _arm(self, wait: float) -> None:
        timer = self._timer_factory(wait, self.drain_due)
        timer.daemon = True
        with self._lock:
            self._timers.append(timer)
        timer.start()


def _timer_alive(timer: Any) -> bool:
    is_alive = getattr(timer, "is_alive", None)
    return bool(is_alive()) if callable(is_alive) else True
