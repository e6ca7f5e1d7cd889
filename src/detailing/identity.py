from __future__ import annotations

import json
import logging
from collections.abc import MutableMapping
from typing import Optional

from .api import Api, ApiError
from .domain import ROLE_ADMIN, ROLE_MASTER, User
from .mapping import user_from_api, user_to_api
from .repositories.auth_repo import AuthRepository
from .services.order_service import ValidationError

logger = logging.getLogger(__name__)

TOKEN_KEY = "token"
USER_KEY = "user"

CREDENTIALS_REQUIRED = "Все поля обязательны для заполнения"


class Identity:
    """Who is logged in, for deciding what to show.

    This is a convenience for the UI only. The backend re-authorizes every
    request from the bearer token.
    """

    def __init__(self, storage: MutableMapping, *, api: Api, auth_repo: AuthRepository) -> None:
        self.storage = storage
        self.api = api
        self.auth_repo = auth_repo
        self.user: Optional[User] = None

    @property
    def token(self) -> Optional[str]:
        return self.storage.get(TOKEN_KEY)

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    @property
    def is_master_only(self) -> bool:
        # exactly {MASTER}; MASTER plus any other role is the regular experience
        return self.user is not None and self.user.role_names == {ROLE_MASTER}

    @property
    def is_admin(self) -> bool:
        return self.user is not None and ROLE_ADMIN in self.user.role_names

    def login(self, token: str, user: User) -> None:
        self.storage[TOKEN_KEY] = token
        self.storage[USER_KEY] = json.dumps(user_to_api(user), ensure_ascii=False)
        self.user = user

    def logout(self) -> None:
        self.storage.pop(TOKEN_KEY, None)
        self.storage.pop(USER_KEY, None)
        self.user = None

    def authenticate(self, username: str, password: str) -> User:
        if not username.strip() or not password.strip():
            raise ValidationError({"credentials": CREDENTIALS_REQUIRED})
        with self.api.session() as s:
            token, user = self.auth_repo.login(s, username=username.strip(), password=password)
        self.login(token, user)
        logger.info("User %s logged in", user.username)
        return user

    def resume(self) -> bool:
        """Load the stored user without a round trip; the token was validated earlier in this session."""
        raw_user = self.storage.get(USER_KEY)
        if not self.storage.get(TOKEN_KEY) or not raw_user:
            self.user = None
            return False
        try:
            self.user = user_from_api(json.loads(raw_user))
        except (ApiError, ValueError):
            self.logout()
            return False
        return True

    def restore(self) -> bool:
        """Bring back a stored login, but only after the backend accepts the token."""
        token = self.storage.get(TOKEN_KEY)
        raw_user = self.storage.get(USER_KEY)
        if not token or not raw_user:
            self.user = None
            return False

        try:
            user = user_from_api(json.loads(raw_user))
            with self.api.session(token) as s:
                valid = self.auth_repo.validate_token(s, token)
        except (ApiError, ValueError) as e:
            logger.warning("Stored session rejected: %s", e)
            valid = False

        if not valid:
            self.logout()
            return False
        self.user = user
        return True
