from __future__ import annotations

from ..api import ApiSession
from ..domain import Role, User
from ..mapping import role_from_api, role_to_api, user_from_api


class UserRepository:
    def list_by_role(self, api: ApiSession, code: str) -> list[User]:
        data = api.get(f"/users/role/{code}")
        # a role with a single member comes back as a bare object
        if isinstance(data, dict):
            data = [data]
        return [user_from_api(r) for r in data or ()]

    def list_all(self, api: ApiSession) -> list[User]:
        return [user_from_api(r) for r in api.get("/users") or ()]

    def get(self, api: ApiSession, user_id: int) -> User:
        return user_from_api(api.get(f"/users/{user_id}"))

    def update(self, api: ApiSession, user_id: int, *, first_name: str, last_name: str) -> None:
        api.put(f"/users/{user_id}", json={"firstName": first_name, "lastName": last_name})

    def create(
        self,
        api: ApiSession,
        *,
        first_name: str,
        last_name: str,
        phone: str,
        username: str,
        password: str,
        roles: list[Role],
    ) -> None:
        api.post(
            "/users",
            json={
                "firstName": first_name,
                "lastName": last_name,
                "phone": phone,
                "username": username,
                "password": password,
                "roles": [role_to_api(r) for r in roles],
            },
        )

    def list_roles(self, api: ApiSession) -> list[Role]:
        return [role_from_api(r) for r in api.get("/users/roles") or ()]

    def update_roles(self, api: ApiSession, user_id: int, role_ids: list[int]) -> None:
        api.get(f"/users/updateRoles/{user_id}", params={"roleIds": ",".join(str(i) for i in role_ids)})

    def change_password(self, api: ApiSession, *, username: str, old_password: str, new_password: str) -> None:
        api.get(
            f"/users/changePassword/{username}",
            params={"oldPassword": old_password, "newPassword": new_password},
        )
