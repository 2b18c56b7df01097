"""
kycdesk/db/repositories/user_repo.py — Репозиторий профилей пользователей.

Таблица ``users``: профиль (email, имя, роль, is_active). Учётные данные
для входа лежат отдельно, в ``auth_identities`` (см. auth_identity_repo).
"""

from __future__ import annotations

from uuid import UUID

from kycdesk.database import get_connection

_COLUMNS = "id, email, name, role, is_active, created_at"


async def create_user(email: str, name: str, role: str, is_active: bool = True) -> dict:
    """Создать профиль пользователя."""
    async with get_connection() as conn:
        row = await conn.fetchrow(
            f"""
            INSERT INTO users (email, name, role, is_active)
            VALUES ($1, $2, $3, $4)
            RETURNING {_COLUMNS}
            """,
            email, name, role, is_active,
        )
        return dict(row) if row else {}


async def get_user_by_id(user_id: UUID) -> dict | None:
    """Найти пользователя по UUID."""
    async with get_connection() as conn:
        row = await conn.fetchrow(
            f"SELECT {_COLUMNS} FROM users WHERE id = $1", user_id
        )
        return dict(row) if row else None


async def get_user_by_email(email: str) -> dict | None:
    """Найти пользователя по email."""
    async with get_connection() as conn:
        row = await conn.fetchrow(
            f"SELECT {_COLUMNS} FROM users WHERE email = $1", email
        )
        return dict(row) if row else None


async def list_users() -> list[dict]:
    """Все пользователи, новые первыми."""
    async with get_connection() as conn:
        rows = await conn.fetch(
            f"SELECT {_COLUMNS} FROM users ORDER BY created_at DESC"
        )
        return [dict(r) for r in rows]


async def set_active(user_id: UUID, is_active: bool) -> bool:
    """Обновить флаг is_active. ``False`` — пользователь не найден."""
    async with get_connection() as conn:
        result = await conn.execute(
            "UPDATE users SET is_active = $1 WHERE id = $2",
            is_active, user_id,
        )
        return result.endswith(" 1")


async def delete_user(user_id: UUID) -> bool:
    """Удалить профиль. Записи верификации не затрагиваются."""
    async with get_connection() as conn:
        result = await conn.execute("DELETE FROM users WHERE id = $1", user_id)
        return result.endswith(" 1")
