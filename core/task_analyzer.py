"""Derived metadata for local todo items.

Enrichment fills in a display title, a category, tags, a priority and a
rough time estimate from the free-text content, and stamps lifecycle
timestamps as the status moves. Values already present on the item are
kept as-is, so enriching twice is harmless.
"""

import re
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from .status import TodoStatus
from .todo_item import TodoItem

MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS

TIME_ESTIMATES: Dict[str, int] = {
    "quick": 15 * MINUTE_MS,
    "short": 30 * MINUTE_MS,
    "medium": 2 * HOUR_MS,
    "long": 4 * HOUR_MS,
    "complex": 8 * HOUR_MS,
}

# First matching category wins, so order matters.
CATEGORY_KEYWORDS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("development", ("code", "implement", "build", "develop", "create", "add", "fix", "debug", "refactor", "optimize")),
    ("testing", ("test", "verify", "check", "validate", "ensure", "confirm")),
    ("documentation", ("document", "write", "docs", "readme", "guide", "explain", "notes")),
    ("planning", ("plan", "design", "architecture", "strategy", "outline", "research")),
    ("deployment", ("deploy", "release", "publish", "launch", "ship")),
    ("maintenance", ("update", "upgrade", "maintain", "clean", "organize")),
    ("research", ("investigate", "analyze", "explore", "study", "examine", "review")),
    ("setup", ("setup", "configure", "install", "initialize", "prepare")),
    ("bug", ("bug", "error", "issue", "problem", "broken", "fail")),
    ("feature", ("feature", "enhancement", "improvement", "new")),
)

PRIORITY_KEYWORDS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("urgent", ("urgent", "critical", "asap", "emergency", "blocker", "hotfix")),
    ("high", ("important", "high", "priority", "soon", "deadline")),
    ("low", ("minor", "later", "nice-to-have", "optional", "low")),
)

TECH_KEYWORDS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("python", ("python", "pytest", "pip")),
    ("javascript", ("javascript", "node", "npm")),
    ("api", ("api", "endpoint", "rest", "graphql")),
    ("database", ("database", "sql", "mongo", "postgres")),
    ("frontend", ("frontend", "ui", "interface", "css")),
    ("backend", ("backend", "server", "service")),
    ("sync", ("sync", "synchronize", "integration")),
    ("config", ("config", "configuration", "setup", "settings")),
)

# ClickUp numeric priorities.
PRIORITY_CODES: Dict[str, int] = {"urgent": 1, "high": 2, "normal": 3, "low": 4}

_TITLE_PREFIX = re.compile(r"^(TODO|TASK|FIX|ADD|UPDATE|CREATE|IMPLEMENT|BUILD|TEST|VERIFY):\s*", re.IGNORECASE)
_NUMBERING = re.compile(r"^\d+\.\s*")
_WORD = re.compile(r"[a-z0-9][a-z0-9\-/]*")
TITLE_LIMIT = 80


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_iso(value: str) -> Optional[datetime]:
    text = (value or "").strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _words(content: str) -> List[str]:
    return _WORD.findall(content.lower())


def _contains(words: List[str], text: str, keyword: str) -> bool:
    # Multi-word / hyphenated keywords are matched on the raw text.
    if "-" in keyword or " " in keyword:
        return keyword in text
    return keyword in words


def extract_title(content: str) -> str:
    title = _NUMBERING.sub("", _TITLE_PREFIX.sub("", content or "")).strip()
    if title:
        title = title[0].upper() + title[1:]
    if len(title) > TITLE_LIMIT:
        title = title[: TITLE_LIMIT - 3] + "..."
    return title


def detect_category(content: str) -> str:
    text = (content or "").lower()
    words = _words(text)
    for category, keywords in CATEGORY_KEYWORDS:
        if any(_contains(words, text, kw) for kw in keywords):
            return category
    return "general"


def generate_tags(content: str, category: str) -> List[str]:
    text = (content or "").lower()
    words = _words(text)
    tags = [category]
    for tag, keywords in TECH_KEYWORDS:
        if any(_contains(words, text, kw) for kw in keywords):
            tags.append(tag)
    if "fix" in words or "bug" in words:
        tags.append("bugfix")
    if "new" in words or "add" in words:
        tags.append("feature")
    if "improve" in words or "enhance" in words:
        tags.append("enhancement")
    return list(dict.fromkeys(tags))


def detect_priority(content: str) -> str:
    text = (content or "").lower()
    words = _words(text)
    for priority, keywords in PRIORITY_KEYWORDS:
        if any(_contains(words, text, kw) for kw in keywords):
            return priority
    return "normal"


def estimate_time(content: str, category: str) -> int:
    words = _words(content or "")
    if any(w in words for w in ("quick", "simple", "minor")):
        return TIME_ESTIMATES["quick"]
    if any(w in words for w in ("complex", "architecture", "system")):
        return TIME_ESTIMATES["complex"]
    if category in ("setup", "testing", "documentation"):
        return TIME_ESTIMATES["short"]
    if category in ("research", "planning"):
        return TIME_ESTIMATES["long"]
    return TIME_ESTIMATES["medium"]


def enrich(item: TodoItem, now: Optional[str] = None) -> TodoItem:
    """Return a copy of ``item`` with derived metadata filled in."""
    stamp = now or _now_iso()
    category = item.category or detect_category(item.content)
    enriched = item.copy(
        title=item.title or extract_title(item.content),
        category=category,
        tags=list(item.tags) or generate_tags(item.content, category),
        priority=item.priority or detect_priority(item.content),
        estimated_time=item.estimated_time if item.estimated_time is not None else estimate_time(item.content, category),
        created_at=item.created_at or stamp,
    )
    if item.status is TodoStatus.IN_PROGRESS and not enriched.started_at:
        enriched.started_at = stamp
    if item.status is TodoStatus.COMPLETED and not enriched.completed_at:
        enriched.completed_at = stamp
    if enriched.actual_time is None and enriched.started_at and enriched.completed_at:
        started = _parse_iso(enriched.started_at)
        completed = _parse_iso(enriched.completed_at)
        if started and completed:
            enriched.actual_time = max(0, int((completed - started).total_seconds() * 1000))
    return enriched


def format_duration(milliseconds: Optional[int]) -> str:
    minutes = int(milliseconds or 0) // MINUTE_MS
    hours, rest = divmod(minutes, 60)
    if hours:
        return f"{hours}h {rest}m"
    return f"{minutes}m"
