from __future__ import annotations

import yaml
from pathlib import Path
from typing import Dict, Any

USER_CONFIG_PATH = Path.home() / ".todo_sync_config.yaml"


def _load_config() -> Dict[str, Any]:
    if not USER_CONFIG_PATH.exists():
        return {}
    try:
        data = yaml.safe_load(USER_CONFIG_PATH.read_text()) or {}
    except (OSError, yaml.YAMLError):
        return {}
    return data if isinstance(data, dict) else {}


def _save_config(data: Dict[str, Any]) -> None:
    if not data:
        if USER_CONFIG_PATH.exists():
            USER_CONFIG_PATH.unlink()
        return
    USER_CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)
    USER_CONFIG_PATH.write_text(yaml.safe_dump(data, allow_unicode=True), encoding="utf-8")


def get_user_token() -> str:
    return str(_load_config().get("token", "") or "").strip()


def set_user_token(value: str) -> None:
    data = _load_config()
    value = (value or "").strip()
    if value:
        data["token"] = value
    else:
        data.pop("token", None)
    _save_config(data)
