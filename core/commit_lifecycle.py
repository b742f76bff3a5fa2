"""Commit lifecycle classification.

A commit moves through six ranked states. The state for a branch comes
from an ordered rule list: each rule pairs a state with branch patterns
and the first rule with a matching pattern wins. A pattern matches when
the branch equals it or starts with it.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple


class CommitStatus(Enum):
    COMMITTED = ("COMMITTED", 1)
    DEVELOPING = ("DEVELOPING", 2)
    PROTOTYPING = ("PROTOTYPING", 3)
    REJECTED = ("REJECTED", 4)
    PRODUCTION_TESTING = ("PRODUCTION/TESTING", 5)
    PRODUCTION_FINAL = ("PRODUCTION/FINAL", 6)

    @property
    def label(self) -> str:
        return self.value[0]

    @property
    def rank(self) -> int:
        return self.value[1]

    @classmethod
    def from_label(cls, value: str) -> "CommitStatus":
        token = (value or "").strip().upper().replace("_", "/")
        for status in cls:
            if status.label == token or status.name == (value or "").strip().upper():
                return status
        raise ValueError(f"Unknown commit status: {value!r}")


class CommitEvent(Enum):
    PUSH = "push"
    MERGE = "merge"
    REVERT = "revert"
    DEPLOY = "deploy"

    @classmethod
    def from_string(cls, value: "str | CommitEvent") -> "CommitEvent":
        if isinstance(value, CommitEvent):
            return value
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            raise ValueError(f"Unknown commit event: {value!r}") from None


@dataclass(frozen=True)
class LifecycleRule:
    status: CommitStatus
    patterns: Tuple[str, ...]

    def matches(self, branch: str) -> bool:
        return any(branch == pattern or branch.startswith(pattern) for pattern in self.patterns)


LIFECYCLE_RULES: Tuple[LifecycleRule, ...] = (
    LifecycleRule(CommitStatus.COMMITTED, ("local",)),
    LifecycleRule(CommitStatus.DEVELOPING, ("feature/", "dev", "develop")),
    LifecycleRule(CommitStatus.PROTOTYPING, ("staging", "test", "qa")),
    LifecycleRule(CommitStatus.REJECTED, ("hotfix/", "revert-")),
    LifecycleRule(CommitStatus.PRODUCTION_TESTING, ("canary", "prod-test")),
    LifecycleRule(CommitStatus.PRODUCTION_FINAL, ("main", "master", "production")),
)

DEFAULT_STATUS = CommitStatus.COMMITTED


def classify_branch(branch: str, rules: Sequence[LifecycleRule] = LIFECYCLE_RULES) -> CommitStatus:
    name = (branch or "").strip()
    for rule in sorted(rules, key=lambda r: r.status.rank):
        if rule.matches(name):
            return rule.status
    return DEFAULT_STATUS


def transition(
    event: "str | CommitEvent",
    context: Optional[Mapping[str, Any]] = None,
    rules: Sequence[LifecycleRule] = LIFECYCLE_RULES,
) -> CommitStatus:
    """Map a commit event to its lifecycle state.

    ``context`` keys: ``target_branch`` (merge) and ``environment`` or a
    truthy ``production`` flag (deploy).
    """
    ctx: Dict[str, Any] = dict(context or {})
    kind = CommitEvent.from_string(event)
    if kind is CommitEvent.PUSH:
        return CommitStatus.DEVELOPING
    if kind is CommitEvent.REVERT:
        return CommitStatus.REJECTED
    if kind is CommitEvent.MERGE:
        target = ctx.get("target_branch") or ctx.get("targetBranch") or "unknown"
        return classify_branch(str(target), rules)
    production = str(ctx.get("environment") or "").lower() == "production" or bool(ctx.get("production"))
    return CommitStatus.PRODUCTION_TESTING if production else CommitStatus.PROTOTYPING


def is_forward(current: CommitStatus, new: CommitStatus) -> bool:
    return new.rank >= current.rank
