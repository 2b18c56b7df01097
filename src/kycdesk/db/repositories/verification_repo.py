"""
kycdesk/db/repositories/verification_repo.py — Репозиторий записей верификации.

Таблица ``verified_users``: одна строка на каждую ссылку DIDit.
``kyc_id`` (provider session id) уникален и служит ключом для webhook.
"""

from __future__ import annotations

import logging
from uuid import UUID

from kycdesk.database import get_connection
from kycdesk.exceptions import RecordNotFound

logger = logging.getLogger(__name__)

_COLUMNS = (
    "id, name, phone, user_email, agent_email, agent_name, "
    "kyc_url, kyc_id, kyc_status, date_sent, downloaded"
)


async def create(
    name: str,
    phone: str,
    user_email: str,
    agent_email: str,
    agent_name: str,
    kyc_url: str,
    kyc_id: str,
    kyc_status: str,
    downloaded: bool = False,
) -> dict:
    """Создать запись; ``date_sent`` назначает БД."""
    async with get_connection() as conn:
        row = await conn.fetchrow(
            f"""
            INSERT INTO verified_users
                (name, phone, user_email, agent_email, agent_name,
                 kyc_url, kyc_id, kyc_status, downloaded, date_sent)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, NOW())
            RETURNING {_COLUMNS}
            """,
            name, phone, user_email, agent_email, agent_name,
            kyc_url, kyc_id, kyc_status, downloaded,
        )
        return dict(row) if row else {}


async def list_by_owner_scope(owner_email: str, include_all: bool) -> list[dict]:
    """
    Записи в области видимости владельца, новые первыми.

    ``include_all=False`` — только строки с точным (регистрозависимым)
    совпадением ``agent_email``; ``include_all=True`` — все строки.
    """
    async with get_connection() as conn:
        if include_all:
            rows = await conn.fetch(
                f"SELECT {_COLUMNS} FROM verified_users ORDER BY date_sent DESC"
            )
        else:
            rows = await conn.fetch(
                f"""
                SELECT {_COLUMNS} FROM verified_users
                WHERE agent_email = $1
                ORDER BY date_sent DESC
                """,
                owner_email,
            )
        return [dict(r) for r in rows]


async def get_by_id(record_id: UUID) -> dict | None:
    async with get_connection() as conn:
        row = await conn.fetchrow(
            f"SELECT {_COLUMNS} FROM verified_users WHERE id = $1", record_id
        )
        return dict(row) if row else None


async def update_status(kyc_id: str, new_status: str) -> dict:
    """
    Обновить статус записи по provider session id.

    Нет совпадений → ``RecordNotFound``. Несколько совпадений — аномалия
    целостности: пишется в лог, обновляется только первая по PK.
    Возвращает обновлённую строку с ключом ``previous_status``.
    """
    async with get_connection() as conn:
        async with conn.transaction():
            rows = await conn.fetch(
                """
                SELECT id, kyc_status FROM verified_users
                WHERE kyc_id = $1
                ORDER BY id
                FOR UPDATE
                """,
                kyc_id,
            )
            if not rows:
                raise RecordNotFound(kyc_id)
            if len(rows) > 1:
                logger.warning(
                    "Data-integrity anomaly: %d records share session_id=%s, updating id=%s only",
                    len(rows), kyc_id, rows[0]["id"],
                )
            target = rows[0]
            row = await conn.fetchrow(
                f"""
                UPDATE verified_users SET kyc_status = $1
                WHERE id = $2
                RETURNING {_COLUMNS}
                """,
                new_status, target["id"],
            )
            result = dict(row)
            result["previous_status"] = target["kyc_status"]
            return result


async def mark_downloaded(record_id: UUID) -> None:
    async with get_connection() as conn:
        await conn.execute(
            "UPDATE verified_users SET downloaded = TRUE WHERE id = $1", record_id
        )


async def delete(record_id: UUID) -> bool:
    """Жёсткое удаление. ``False`` — записи не было."""
    async with get_connection() as conn:
        result = await conn.execute(
            "DELETE FROM verified_users WHERE id = $1", record_id
        )
        return result.endswith(" 1")
