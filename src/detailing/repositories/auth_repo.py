from __future__ import annotations

from ..api import ApiError, ApiSession
from ..domain import User
from ..mapping import user_from_api


class AuthRepository:
    def login(self, api: ApiSession, *, username: str, password: str) -> tuple[str, User]:
        data = api.post("/auth/login", json={"username": username, "password": password})
        if not isinstance(data, dict) or not data.get("token") or not data.get("user"):
            raise ApiError("Malformed login response")
        return str(data["token"]), user_from_api(data["user"])

    def validate_token(self, api: ApiSession, token: str) -> bool:
        data = api.post("/auth/validate-token", json={"token": token})
        return isinstance(data, dict) and data.get("isValid") is True
