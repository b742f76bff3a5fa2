from .rest_client import (
    CLICKUP_API_URL,
    ClickUpClient,
    ClickUpClientError,
    ClickUpNotFoundError,
    ClickUpPermissionError,
    ClickUpRateLimitError,
)
from .rate_limiter import RateLimiter
from .task_cache import TaskCache
from .task_store import ClickUpTaskStore

__all__ = [
    "CLICKUP_API_URL",
    "ClickUpClient",
    "ClickUpClientError",
    "ClickUpNotFoundError",
    "ClickUpPermissionError",
    "ClickUpRateLimitError",
    "RateLimiter",
    "TaskCache",
    "ClickUpTaskStore",
]
