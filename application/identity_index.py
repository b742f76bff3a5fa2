import logging
from threading import Lock
from typing import Dict, Optional

from application.ports import MappingStore

logger = logging.getLogger("todo_sync.identity")


class IdentityIndex:
    """Bidirectional local id <-> remote task id map for one remote list.

    At most one remote id is held per local id. With a ``backing`` store the
    map is loaded once on construction and rewritten on every change.
    """

    def __init__(self, list_id: Optional[str] = None, backing: Optional[MappingStore] = None) -> None:
        self.list_id = list_id
        self._backing = backing
        self._lock = Lock()
        self._forward: Dict[str, str] = {}
        self._reverse: Dict[str, str] = {}
        if backing is not None:
            for local_id, remote_id in backing.load_all().items():
                if local_id and remote_id:
                    self._link(str(local_id), str(remote_id))

    def __len__(self) -> int:
        with self._lock:
            return len(self._forward)

    def __contains__(self, local_id: object) -> bool:
        with self._lock:
            return local_id in self._forward

    def lookup(self, local_id: str) -> Optional[str]:
        with self._lock:
            return self._forward.get(local_id)

    def reverse_lookup(self, remote_id: str) -> Optional[str]:
        with self._lock:
            return self._reverse.get(remote_id)

    def upsert(self, local_id: str, remote_id: str) -> None:
        with self._lock:
            if self._forward.get(local_id) == remote_id:
                return
            self._link(local_id, remote_id)
            snapshot = dict(self._forward)
        self._persist(snapshot)

    def invalidate(self, local_id: str) -> Optional[str]:
        with self._lock:
            remote_id = self._forward.pop(local_id, None)
            if remote_id is None:
                return None
            if self._reverse.get(remote_id) == local_id:
                del self._reverse[remote_id]
            snapshot = dict(self._forward)
        logger.debug("identity mapping dropped: %s -> %s", local_id, remote_id)
        self._persist(snapshot)
        return remote_id

    def snapshot(self) -> Dict[str, str]:
        with self._lock:
            return dict(self._forward)

    def _link(self, local_id: str, remote_id: str) -> None:
        previous_remote = self._forward.get(local_id)
        if previous_remote is not None and self._reverse.get(previous_remote) == local_id:
            del self._reverse[previous_remote]
        previous_local = self._reverse.get(remote_id)
        if previous_local is not None and previous_local != local_id:
            self._forward.pop(previous_local, None)
        self._forward[local_id] = remote_id
        self._reverse[remote_id] = local_id

    def _persist(self, snapshot: Dict[str, str]) -> None:
        if self._backing is not None:
            self._backing.replace_all(snapshot)
