from enum import Enum
from typing import Final, Literal


class TodoStatus(Enum):
    PENDING = ("pending", "to do")
    IN_PROGRESS = ("in_progress", "in progress")
    COMPLETED = ("completed", "completed")

    @property
    def code(self) -> str:
        return self.value[0]

    @property
    def default_remote(self) -> str:
        return self.value[1]

    @classmethod
    def from_string(cls, value: "str | TodoStatus") -> "TodoStatus":
        if isinstance(value, TodoStatus):
            return value
        code = normalize_todo_status(value)
        for status in cls:
            if status.code == code:
                return status
        raise ValueError(f"Invalid todo status: {value!r}")


TodoStatusCode = Literal["pending", "in_progress", "completed"]

_CANONICAL_CODES: Final[frozenset[str]] = frozenset({"pending", "in_progress", "completed"})


def normalize_todo_status(value: str) -> str:
    """Normalize status input to the canonical local code.

    Canonical statuses: pending, in_progress, completed. Case, spaces and
    dashes are ignored ("In Progress" and "in-progress" both map to
    in_progress).
    """
    token = (value or "").strip().lower().replace(" ", "_").replace("-", "_")
    if token in _CANONICAL_CODES:
        return token
    raise ValueError(f"Invalid todo status: {value!r}")
