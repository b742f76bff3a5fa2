from typing import Iterable, List, Optional


class RemoteStoreError(RuntimeError):
    """Any failure reported by the remote task store."""


class RemoteAuthError(RemoteStoreError):
    """Credentials missing or lacking access to the requested resource."""


class RemoteNotFoundError(RemoteStoreError):
    pass


class RemoteRateLimitError(RemoteStoreError):
    pass


class StatusConfigurationError(RuntimeError):
    """Raised when a remote list lacks statuses that synchronization depends on.

    Blocking: nothing is written to the list until the missing statuses are
    added there.
    """

    def __init__(
        self,
        list_id: str,
        role: str,
        missing: Iterable[str],
        missing_optional: Iterable[str] = (),
        configured: Iterable[str] = (),
        list_name: Optional[str] = None,
    ) -> None:
        self.list_id = list_id
        self.role = role
        self.missing: List[str] = list(missing)
        self.missing_optional: List[str] = list(missing_optional)
        self.configured: List[str] = list(configured)
        self.list_name = list_name
        super().__init__(self.remediation())

    def remediation(self) -> str:
        target = f"{self.list_name} ({self.list_id})" if self.list_name else self.list_id
        lines = [
            f"Cannot sync: {self.role} list {target} is missing required statuses: {', '.join(self.missing)}",
            "",
            "Missing required statuses:",
        ]
        lines.extend(f'  - "{name}"' for name in self.missing)
        if self.missing_optional:
            lines.append("Missing optional statuses:")
            lines.extend(f'  - "{name}"' for name in self.missing_optional)
        lines.append("Currently configured:")
        lines.extend(f"  - {name}" for name in self.configured or ["(none)"])
        lines.extend(
            [
                "",
                "How to fix:",
                f"  1. Open the {self.role} list {target} in ClickUp",
                '  2. Open the list menu and choose "Edit statuses"',
                '  3. Select "Use custom statuses" (not "Inherit from Space")',
                "  4. Add these exact status names:",
            ]
        )
        lines.extend(f"       {name}" for name in self.missing)
        lines.append('  5. Apply the changes and run the sync again')
        return "\n".join(lines)
