"""Precondition check on a remote list's status vocabulary.

Each list role has a required status set (hard precondition) and a
recommended set (advisory). Statuses are read live from the store on
every validation so a misconfigured list is caught on the next check.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from application.errors import StatusConfigurationError
from application.ports import RemoteTaskStore

logger = logging.getLogger("todo_sync.gate")


class ListRole(Enum):
    TASKS = "tasks"
    COMMITS = "commits"


REQUIRED_STATUSES: Dict[ListRole, Tuple[str, ...]] = {
    ListRole.TASKS: ("to do", "in progress", "completed"),
    ListRole.COMMITS: ("development update", "development push", "merged"),
}

RECOMMENDED_STATUSES: Dict[ListRole, Tuple[str, ...]] = {
    ListRole.TASKS: ("future", "fixing"),
    ListRole.COMMITS: ("upstream merge", "production/testing", "production/staging", "production/final"),
}


@dataclass(frozen=True)
class GateResult:
    list_id: str
    role: ListRole
    valid: bool
    missing: Tuple[str, ...]
    missing_optional: Tuple[str, ...]
    configured: Tuple[str, ...]


class StatusGate:
    def __init__(
        self,
        store: RemoteTaskStore,
        should_warn: Optional[Callable[[str], bool]] = None,
    ) -> None:
        self.store = store
        self._should_warn = should_warn or (lambda message: True)

    def validate(self, list_id: str, role: ListRole) -> GateResult:
        statuses = self.store.get_list_statuses(list_id)
        configured = tuple(s.name.strip().lower() for s in statuses if s.name)
        present = set(configured)
        missing = tuple(name for name in REQUIRED_STATUSES[role] if name not in present)
        missing_optional = tuple(name for name in RECOMMENDED_STATUSES[role] if name not in present)
        return GateResult(
            list_id=list_id,
            role=role,
            valid=not missing,
            missing=missing,
            missing_optional=missing_optional,
            configured=configured,
        )

    def ensure(self, list_id: str, role: ListRole) -> GateResult:
        """Validate and raise ``StatusConfigurationError`` when required statuses are absent."""
        result = self.validate(list_id, role)
        if not result.valid:
            error = StatusConfigurationError(
                list_id=list_id,
                role=role.value,
                missing=result.missing,
                missing_optional=result.missing_optional,
                configured=result.configured,
            )
            logger.error("%s", error.remediation())
            raise error
        if result.missing_optional:
            message = f"Optional statuses missing for {role.value} list {list_id}: {', '.join(result.missing_optional)}"
            if self._should_warn(message):
                logger.warning(message)
        return result


def setup_instructions() -> str:
    lines: List[str] = ["Configure these custom statuses in ClickUp before syncing:", ""]
    for role in ListRole:
        title = role.value.upper()
        lines.append(f"{title} LIST - required statuses:")
        lines.extend(f"  - {name}" for name in REQUIRED_STATUSES[role])
        lines.append(f"{title} LIST - optional statuses:")
        lines.extend(f"  - {name}" for name in RECOMMENDED_STATUSES[role])
        lines.append("")
    return "\n".join(lines).rstrip() + "\n"
