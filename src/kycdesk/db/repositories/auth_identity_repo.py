"""
kycdesk/db/repositories/auth_identity_repo.py — Репозиторий учётных данных.

Таблица ``auth_identities`` — слой аутентификации: email, bcrypt-хеш,
подтверждение email и блокировка (``banned_until``).
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from kycdesk.database import get_connection


async def create_identity(
    email: str, password_hash: str, email_confirmed: bool = False,
) -> dict:
    async with get_connection() as conn:
        row = await conn.fetchrow(
            """
            INSERT INTO auth_identities (email, password_hash, email_confirmed)
            VALUES ($1, $2, $3)
            RETURNING id, email, password_hash, email_confirmed, banned_until, created_at
            """,
            email, password_hash, email_confirmed,
        )
        return dict(row) if row else {}


async def get_identity_by_email(email: str) -> dict | None:
    async with get_connection() as conn:
        row = await conn.fetchrow(
            "SELECT * FROM auth_identities WHERE email = $1", email
        )
        return dict(row) if row else None


async def set_banned_until(identity_id: UUID, banned_until: datetime | None) -> None:
    """Установить (или снять при ``None``) блокировку."""
    async with get_connection() as conn:
        await conn.execute(
            "UPDATE auth_identities SET banned_until = $1 WHERE id = $2",
            banned_until, identity_id,
        )


async def delete_identity(identity_id: UUID) -> bool:
    async with get_connection() as conn:
        result = await conn.execute(
            "DELETE FROM auth_identities WHERE id = $1", identity_id
        )
        return result.endswith(" 1")


async def set_password_hash(identity_id: UUID, password_hash: str) -> bool:
    async with get_connection() as conn:
        result = await conn.execute(
            "UPDATE auth_identities SET password_hash = $1 WHERE id = $2",
            password_hash, identity_id,
        )
        return result.endswith(" 1")
