from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator

import requests

from .config import ApiConfig

logger = logging.getLogger(__name__)


class ApiError(Exception):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    @property
    def is_unauthorized(self) -> bool:
        return self.status_code in (401, 403)


class ApiSession:
    """One authenticated conversation with the backend.

    Every method returns the decoded JSON body (None for an empty body) and
    raises ApiError for transport failures and non-2xx answers.
    """

    def __init__(self, http: requests.Session, base_url: str, timeout: float) -> None:
        self.http = http
        self.base_url = base_url
        self.timeout = timeout

    def get(self, path: str, *, params: dict | None = None) -> Any:
        return self.request("GET", path, params=params)

    def post(self, path: str, *, json: Any = None, params: dict | None = None) -> Any:
        return self.request("POST", path, params=params, json=json)

    def put(self, path: str, *, json: Any = None) -> Any:
        return self.request("PUT", path, json=json)

    def delete(self, path: str) -> Any:
        return self.request("DELETE", path)

    def request(self, method: str, path: str, *, params: dict | None = None, json: Any = None) -> Any:
        url = f"{self.base_url}/{path.lstrip('/')}"
        if params:
            params = {k: v for k, v in params.items() if v is not None}
        try:
            response = self.http.request(method, url, params=params or None, json=json, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning("%s %s failed: %s", method, url, e)
            raise ApiError(f"Cannot reach the server: {e}") from e

        if not response.ok:
            logger.warning("%s %s -> HTTP %s", method, url, response.status_code)
            raise ApiError(
                f"{method} {path} failed with HTTP {response.status_code}",
                status_code=response.status_code,
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise ApiError(f"Malformed JSON from {method} {path}", status_code=response.status_code) from e


@dataclass(frozen=True)
class Api:
    cfg: ApiConfig

    def connect(self, token: str | None = None) -> requests.Session:
        http = requests.Session()
        http.headers["Content-Type"] = "application/json"
        if token:
            http.headers["Authorization"] = f"Bearer {token}"
        return http

    @contextmanager
    def session(self, token: str | None = None) -> Iterator[ApiSession]:
        http = self.connect(token)
        try:
            yield ApiSession(http, self.cfg.base_url, self.cfg.timeout)
        finally:
            http.close()
