import logging
import random
import time
from typing import Any, Callable, Dict, Optional

import requests

from application.errors import RemoteAuthError, RemoteNotFoundError, RemoteRateLimitError, RemoteStoreError

logger = logging.getLogger("todo_sync.clickup")

CLICKUP_API_URL = "https://api.clickup.com/api/v2"


class ClickUpClientError(RemoteStoreError):
    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ClickUpPermissionError(ClickUpClientError, RemoteAuthError):
    pass


class ClickUpNotFoundError(ClickUpClientError, RemoteNotFoundError):
    pass


class ClickUpRateLimitError(ClickUpClientError, RemoteRateLimitError):
    pass


class ClickUpClient:
    def __init__(
        self,
        session: Optional[requests.Session],
        token_provider: Callable[[], Optional[str]],
        rate_limiter,
        base_url: str = CLICKUP_API_URL,
        timeout: int = 10,
        max_attempts: int = 3,
    ) -> None:
        self.session = session or requests.Session()
        self.token_provider = token_provider
        self.rate_limiter = rate_limiter
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_attempts = max_attempts

    def request(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        token = self.token_provider()
        if not token:
            raise ClickUpPermissionError("ClickUp API token missing")
        url = f"{self.base_url}/{path.lstrip('/')}"
        headers = {"Authorization": token, "Content-Type": "application/json"}
        attempt = 0
        delay = 1.0
        while True:
            attempt += 1
            try:
                self.rate_limiter.acquire()
                response = getattr(self.session, method.lower())(
                    url, json=payload, params=params, headers=headers, timeout=self.timeout
                )
            except requests.RequestException as exc:
                if attempt >= self.max_attempts:
                    raise ClickUpClientError(f"ClickUp network error: {exc}") from exc
                logger.debug("%s %s failed (%s), retrying", method.upper(), path, exc)
                self._sleep(delay)
                delay *= 2
                continue
            self.rate_limiter.update(response.headers)
            status = response.status_code
            if (status == 429 or status >= 500) and attempt < self.max_attempts:
                logger.debug("%s %s returned %s, retrying", method.upper(), path, status)
                self._sleep(delay)
                delay *= 2
                continue
            if status in (401, 403):
                raise ClickUpPermissionError(
                    f"ClickUp rejected the API token (HTTP {status}): {_error_text(response)}", status
                )
            if status == 404:
                raise ClickUpNotFoundError(f"ClickUp resource not found: {path}", status)
            if status == 429:
                raise ClickUpRateLimitError("ClickUp rate limit exceeded", status)
            if status >= 400:
                raise ClickUpClientError(f"ClickUp API error: {status} {_error_text(response)}", status)
            try:
                return response.json() or {}
            except ValueError:
                return {}

    def _sleep(self, base_delay: float) -> None:
        time.sleep(base_delay + random.uniform(0, base_delay))


def _error_text(response: Any) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict) and body.get("err"):
        return str(body["err"])
    return response.text
