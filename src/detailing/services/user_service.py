from __future__ import annotations

from typing import Sequence

from .order_service import ValidationError

MIN_PASSWORD_LENGTH = 6


def validate_profile(first_name: str, last_name: str) -> dict[str, str]:
    errors: dict[str, str] = {}
    if not first_name.strip():
        errors["firstName"] = "Имя обязательно"
    if not last_name.strip():
        errors["lastName"] = "Фамилия обязательна"
    return errors


def validate_new_user(
    *,
    first_name: str,
    last_name: str,
    phone: str,
    password: str,
    confirm_password: str,
    role_ids: Sequence[int],
) -> dict[str, str]:
    errors = validate_profile(first_name, last_name)
    if not phone.strip():
        errors["phone"] = "Телефон обязателен"
    if len(password) < MIN_PASSWORD_LENGTH:
        errors["password"] = f"Пароль должен быть не менее {MIN_PASSWORD_LENGTH} символов"
    if password != confirm_password:
        errors["confirmPassword"] = "Пароли не совпадают"
    if not role_ids:
        errors["roles"] = "Выберите хотя бы одну роль"
    return errors


def validate_password_change(current: str, new: str, confirm: str) -> dict[str, str]:
    errors: dict[str, str] = {}
    if not current:
        errors["currentPassword"] = "Требуется текущий пароль"
    if len(new) < MIN_PASSWORD_LENGTH:
        errors["newPassword"] = f"Новый пароль должен быть не менее {MIN_PASSWORD_LENGTH} символов"
    if new != confirm:
        errors["confirmPassword"] = "Пароли не совпадают"
    return errors


def validate_roles(role_ids: Sequence[int]) -> dict[str, str]:
    if not role_ids:
        return {"roleIds": "Пользователю должна быть назначена хотя бы одна роль"}
    return {}


def ensure(errors: dict[str, str]) -> None:
    if errors:
        raise ValidationError(errors)
