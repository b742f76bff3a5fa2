"""Deduplication of advisory warnings.

A warning is shown once per process and then suppressed for a TTL across
processes, so repeated sync calls do not repeat the same advice.
"""

import hashlib
import json
import os
import time
from pathlib import Path
from threading import Lock
from typing import Dict

CACHE_DIR = Path(os.environ.get("TODO_SYNC_CACHE_DIR", Path.home() / ".cache" / "todo_sync"))
WARNING_CACHE_FILE = CACHE_DIR / "warnings.json"

WARNING_TTL_SECONDS = int(os.environ.get("TODO_SYNC_WARNING_TTL", "3600"))

_CACHE_LOCK = Lock()

_SESSION_WARNINGS_SHOWN: set = set()


def _warning_key(message: str) -> str:
    return hashlib.sha256(message.encode()).hexdigest()[:12]


def _load_shown() -> Dict[str, float]:
    with _CACHE_LOCK:
        if not WARNING_CACHE_FILE.exists():
            return {}
        try:
            data = json.loads(WARNING_CACHE_FILE.read_text())
        except (json.JSONDecodeError, OSError):
            return {}
    if not isinstance(data, dict):
        return {}
    shown: Dict[str, float] = {}
    for key, value in data.items():
        try:
            shown[str(key)] = float(value)
        except (TypeError, ValueError):
            continue
    return shown


def _save_shown(shown: Dict[str, float]) -> None:
    with _CACHE_LOCK:
        try:
            CACHE_DIR.mkdir(parents=True, exist_ok=True)
            WARNING_CACHE_FILE.write_text(json.dumps(shown, indent=2))
        except OSError:
            pass  # Best effort


def should_show_warning(message: str) -> bool:
    key = _warning_key(message)
    if key in _SESSION_WARNINGS_SHOWN:
        return False
    shown_at = _load_shown().get(key)
    if shown_at and time.time() - shown_at < WARNING_TTL_SECONDS:
        return False
    return True


def mark_warning_shown(message: str) -> None:
    key = _warning_key(message)
    _SESSION_WARNINGS_SHOWN.add(key)
    now = time.time()
    shown = {k: ts for k, ts in _load_shown().items() if now - ts < WARNING_TTL_SECONDS}
    shown[key] = now
    _save_shown(shown)


def warn_once(message: str) -> bool:
    """True the first time ``message`` should be shown; records it as shown."""
    if not should_show_warning(message):
        return False
    mark_warning_shown(message)
    return True


def clear_warning_cache() -> None:
    global _SESSION_WARNINGS_SHOWN
    _SESSION_WARNINGS_SHOWN = set()
    with _CACHE_LOCK:
        try:
            if WARNING_CACHE_FILE.exists():
                WARNING_CACHE_FILE.unlink()
        except OSError:
            pass


__all__ = [
    "should_show_warning",
    "mark_warning_shown",
    "warn_once",
    "clear_warning_cache",
]
