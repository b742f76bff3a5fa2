from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class RemoteStatus:
    name: str
    type: str = ""
    order: int = 0

    @classmethod
    def from_api(cls, payload: Any) -> "RemoteStatus":
        if isinstance(payload, str):
            return cls(name=payload)
        payload = payload or {}
        try:
            order = int(payload.get("orderindex") or 0)
        except (TypeError, ValueError):
            order = 0
        return cls(name=str(payload.get("status") or ""), type=str(payload.get("type") or ""), order=order)


@dataclass
class RemoteTask:
    """Snapshot of a task as reported by the remote store.

    Instances are read-only views; changes go through the store's write
    operations and come back as a new snapshot.
    """

    id: str
    name: str
    status: str = ""
    status_type: str = ""
    parent: Optional[str] = None
    list_id: Optional[str] = None
    assignees: List[Any] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    time_estimate: Optional[int] = None
    custom_fields: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_closed(self) -> bool:
        return self.status_type.lower() in ("closed", "done")

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "RemoteTask":
        status = RemoteStatus.from_api(payload.get("status"))
        list_info = payload.get("list") or {}
        assignees = []
        for entry in payload.get("assignees") or []:
            if isinstance(entry, dict):
                assignees.append(entry.get("id"))
            else:
                assignees.append(entry)
        tags = []
        for tag in payload.get("tags") or []:
            tags.append(tag.get("name", "") if isinstance(tag, dict) else str(tag))
        custom_fields = {}
        for cf in payload.get("custom_fields") or []:
            if isinstance(cf, dict) and cf.get("name"):
                custom_fields[cf["name"]] = cf.get("value")
        raw_estimate = payload.get("time_estimate")
        try:
            time_estimate = int(raw_estimate) if raw_estimate is not None else None
        except (TypeError, ValueError):
            time_estimate = None
        return cls(
            id=str(payload.get("id") or ""),
            name=str(payload.get("name") or ""),
            status=status.name,
            status_type=status.type,
            parent=payload.get("parent") or None,
            list_id=list_info.get("id") if isinstance(list_info, dict) else None,
            assignees=assignees,
            tags=tags,
            time_estimate=time_estimate,
            custom_fields=custom_fields,
        )
