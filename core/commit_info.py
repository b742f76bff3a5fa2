import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

_CONVENTIONAL = re.compile(r"^(?P<type>\w+)(?:\((?P<scope>[^)]+)\))?:\s*(?P<description>.+)")
_TASK_REFERENCES = (
    re.compile(r"\[TASK-(\w+)\]"),
    re.compile(r"#(\w+)"),
    re.compile(r"task[:\s]+(\w+)", re.IGNORECASE),
    re.compile(r"fixes[:\s]+(\w+)", re.IGNORECASE),
    re.compile(r"closes[:\s]+(\w+)", re.IGNORECASE),
)
FALLBACK_DESCRIPTION_LIMIT = 50


@dataclass
class CommitInfo:
    hash: str
    message: str
    author: str = ""
    timestamp: str = ""
    branch: Optional[str] = None
    task_id: Optional[str] = None  # Local item id the commit belongs to, when known

    def __post_init__(self) -> None:
        if not self.hash:
            raise ValueError("commit hash is required")
        if not self.timestamp:
            self.timestamp = datetime.now(timezone.utc).isoformat()

    @property
    def short_hash(self) -> str:
        return self.hash[:7]


@dataclass(frozen=True)
class ParsedCommit:
    type: str
    description: str
    scope: Optional[str] = None


def parse_commit_message(message: str) -> ParsedCommit:
    """Split a ``type(scope): description`` subject line."""
    text = (message or "").strip()
    subject = text.splitlines()[0] if text else ""
    match = _CONVENTIONAL.match(subject)
    if match:
        return ParsedCommit(
            type=match.group("type"),
            scope=match.group("scope"),
            description=match.group("description").strip(),
        )
    return ParsedCommit(type="commit", description=text[:FALLBACK_DESCRIPTION_LIMIT])


def branch_tag(branch: str) -> str:
    name = branch or "local"
    if name in ("main", "master", "production"):
        return f"prod:{name}"
    if "staging" in name or "test" in name:
        return f"staging:{name}"
    if name.startswith("hotfix/") or name.startswith("revert-"):
        return f"fix:{name}"
    return f"dev:{name}"


def extract_task_reference(message: str) -> Optional[str]:
    for pattern in _TASK_REFERENCES:
        match = pattern.search(message or "")
        if match:
            return match.group(1)
    return None
