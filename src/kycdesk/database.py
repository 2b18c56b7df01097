"""
═══════════════════════════════════════════════════════════════════════════════
KYC Desk — Пул соединений к базе данных (Database Connection Pool)
═══════════════════════════════════════════════════════════════════════════════

Пул соединений asyncpg к PostgreSQL. Настройки берутся из
``kycdesk.config.get_settings()``.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import asyncpg

from kycdesk.config import get_settings
from kycdesk.exceptions import PersistenceError

logger = logging.getLogger(__name__)

# ═══════════════════════════════════════════════════════════════════════════════
# Глобальная переменная пула (module-level singleton)
# ═══════════════════════════════════════════════════════════════════════════════
_pool: asyncpg.Pool | None = None


async def get_pool() -> asyncpg.Pool:
    """
    Возвращает глобальный пул соединений к PostgreSQL.

    Создаёт пул при первом вызове с параметрами из KycDeskSettings.
    """
    global _pool
    if _pool is None:
        settings = get_settings()
        _pool = await asyncpg.create_pool(
            dsn=settings.database_url,
            min_size=settings.database_pool_min,
            max_size=settings.database_pool_max,
            command_timeout=60,
        )
        logger.info(
            f"KYC Desk DB pool created "
            f"(min={settings.database_pool_min}, max={settings.database_pool_max})"
        )
    return _pool


async def close_pool() -> None:
    """Закрывает глобальный пул соединений."""
    global _pool
    if _pool is not None:
        await _pool.close()
        _pool = None
        logger.info("KYC Desk DB pool closed")


@asynccontextmanager
async def get_connection() -> AsyncGenerator[asyncpg.Connection, None]:
    """
    Выдаёт соединение из пула и возвращает его обратно.

    Ошибки подключения и драйвера превращаются в ``PersistenceError``;
    ошибки уровня приложения (например, ``RecordNotFound`` внутри блока)
    пробрасываются как есть.

    Использование::

        async with get_connection() as conn:
            row = await conn.fetchrow("SELECT * FROM users WHERE id = $1", user_id)
    """
    try:
        pool = await get_pool()
    except (OSError, asyncpg.PostgresError) as exc:
        logger.error("Database unreachable: %s", exc)
        raise PersistenceError("Database unreachable") from exc

    async with pool.acquire() as conn:
        try:
            yield conn
        except asyncpg.UniqueViolationError as exc:
            raise PersistenceError(
                "Unique constraint violated",
                details={"constraint": exc.constraint_name},
            ) from exc
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as exc:
            logger.error("Database error: %s", exc)
            raise PersistenceError(f"Database error: {exc}") from exc


async def check_connection() -> bool:
    """Проверяет доступность PostgreSQL (health check)."""
    try:
        async with get_connection() as conn:
            result = await conn.fetchval("SELECT 1")
            return result == 1
    except Exception as e:
        logger.error(f"KYC Desk DB health check failed: {e}")
        return False
