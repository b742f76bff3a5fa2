import logging
from pathlib import Path
from threading import Lock
from typing import Dict, Optional

import yaml

logger = logging.getLogger("todo_sync.state")


class YamlMappingStore:
    """Flat string -> string mapping kept in one YAML file.

    The file is read on demand and rewritten whole on every change; there
    is no partial-write protocol.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = Lock()

    def load_all(self) -> Dict[str, str]:
        with self._lock:
            return self._read()

    def get(self, key: str) -> Optional[str]:
        return self.load_all().get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            data = self._read()
            data[str(key)] = str(value)
            self._write(data)

    def delete(self, key: str) -> bool:
        with self._lock:
            data = self._read()
            if key not in data:
                return False
            del data[key]
            self._write(data)
            return True

    def replace_all(self, data: Dict[str, str]) -> None:
        with self._lock:
            self._write({str(k): str(v) for k, v in data.items()})

    def _read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            raw = yaml.safe_load(self.path.read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as exc:
            logger.warning("mapping file %s is unreadable, starting empty: %s", self.path, exc)
            return {}
        if not isinstance(raw, dict):
            logger.warning("mapping file %s does not hold a mapping, starting empty", self.path)
            return {}
        return {str(k): str(v) for k, v in raw.items() if v is not None}

    def _write(self, data: Dict[str, str]) -> None:
        if not data:
            if self.path.exists():
                self.path.unlink()
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(yaml.safe_dump(data, allow_unicode=True, sort_keys=True), encoding="utf-8")
