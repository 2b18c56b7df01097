"""
═══════════════════════════════════════════════════════════════════════════════
KYC Desk — Главная точка входа сервиса (Application Entry Point)
═══════════════════════════════════════════════════════════════════════════════

Фабрика приложения (Application Factory Pattern): роутеры ``/api/v1``,
lifespan с пулом PostgreSQL и миграциями, единый обработчик доменных
ошибок ``KycDeskError`` → HTTP.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path

import asyncpg
import uvicorn
from fastapi import APIRouter, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from kycdesk import __version__
from kycdesk.config import get_settings
from kycdesk.database import close_pool, get_pool
from kycdesk.exceptions import KycDeskError, ProviderError

from kycdesk.api.admin_users import router as admin_users_router
from kycdesk.api.auth import router as auth_router
from kycdesk.api.health import router as health_router
from kycdesk.api.links import router as links_router
from kycdesk.api.webhook import router as webhook_router

# ═══════════════════════════════════════════════════════════════════════════════
# Настройка логирования
# ═══════════════════════════════════════════════════════════════════════════════
logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "db" / "migrations"


# ═══════════════════════════════════════════════════════════════════════════════
# Автоматическое применение SQL-миграций
# ═══════════════════════════════════════════════════════════════════════════════

async def _apply_migrations(pool: asyncpg.Pool) -> None:
    """Применяет SQL-миграции из ``kycdesk/db/migrations/`` по порядку имён."""
    sql_files = sorted(MIGRATIONS_DIR.glob("*.sql")) if MIGRATIONS_DIR.is_dir() else []
    if not sql_files:
        logger.info("No SQL migration files found — skipping")
        return

    async with pool.acquire() as conn:
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS _applied_migrations (
                filename TEXT PRIMARY KEY,
                applied_at TIMESTAMPTZ DEFAULT NOW()
            )
        """)
        applied = {row["filename"] for row in await conn.fetch("SELECT filename FROM _applied_migrations")}

        for sql_file in sql_files:
            if sql_file.name in applied:
                continue
            logger.info("📄 Applying migration: %s", sql_file.name)
            async with conn.transaction():
                await conn.execute(sql_file.read_text(encoding="utf-8"))
                await conn.execute(
                    "INSERT INTO _applied_migrations (filename) VALUES ($1)",
                    sql_file.name,
                )
            logger.info("✅ Migration applied: %s", sql_file.name)

    logger.info("✅ Migrations up to date (%d files checked)", len(sql_files))


# ═══════════════════════════════════════════════════════════════════════════════
# Lifespan — управление жизненным циклом
# ═══════════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup:
        1. Пул соединений к PostgreSQL.
        2. Миграции.
        3. БД недоступна — memory store (данные теряются при рестарте).

    Shutdown:
        1. Закрываем пул.
    """
    settings = get_settings()
    logger.info("🚀 KYC Desk v%s starting (env=%s)", __version__, settings.app_env)

    pool = None
    try:
        pool = await get_pool()
        logger.info("✅ Database pool initialized")
    except (OSError, asyncio.TimeoutError, asyncpg.PostgresError) as e:
        logger.warning("⚠️  Database not available — activating memory store: %s", e)
        from kycdesk.memory_store import activate_memory_store
        activate_memory_store()

    if pool is not None:
        try:
            await _apply_migrations(pool)
        except asyncpg.PostgresError as e:
            logger.warning("⚠️  Migration apply failed (non-fatal): %s", e)

    if not settings.didit_api_key:
        logger.warning("⚠️  DIDIT_API_KEY is not set — link generation will fail")
    if not settings.resend_api_key:
        logger.warning("⚠️  RESEND_API_KEY is not set — email dispatch will fail")

    yield

    await close_pool()
    logger.info("🛑 KYC Desk stopped")


# ═══════════════════════════════════════════════════════════════════════════════
# Маппинг доменных ошибок → HTTP
# ═══════════════════════════════════════════════════════════════════════════════

STATUS_MAP: dict[str, int] = {
    "KYC_VALIDATION_ERROR": 422,
    "KYC_AUTH_ERROR": 401,
    "KYC_AUTHZ_ERROR": 403,
    "KYC_NOT_FOUND": 404,
    "KYC_CONFLICT": 409,
    "KYC_PERSISTENCE_ERROR": 500,
    "KYC_PROVIDER_UNAVAILABLE": 502,
    "KYC_EMAIL_ERROR": 502,
    "KYC_WEBHOOK_UNAUTHORIZED": 401,
    "KYC_WEBHOOK_BAD_REQUEST": 400,
    "KYC_WEBHOOK_NOT_FOUND": 404,
}


async def kycdesk_error_handler(request: Request, exc: KycDeskError) -> JSONResponse:
    """Код ошибки → HTTP-статус; ProviderError отдаёт статус провайдера."""
    if isinstance(exc, ProviderError):
        status_code = exc.status_code
    else:
        status_code = STATUS_MAP.get(exc.code, 500)
    if status_code >= 500:
        logger.error("%s %s → %s: %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(
        status_code=status_code,
        content={
            "error": {
                "code": exc.code,
                "message": exc.message,
                "details": exc.details,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
        },
    )


# ═══════════════════════════════════════════════════════════════════════════════
# Фабрика приложения
# ═══════════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    """Создаёт и конфигурирует FastAPI-приложение KYC Desk."""
    settings = get_settings()
    _is_production = settings.app_env == "production"

    app = FastAPI(
        redirect_slashes=False,
        title="KYC Desk",
        description=(
            "Back office for identity-verification links: agents issue DIDit "
            "verification links, track their status and download reports."
        ),
        version=__version__,
        lifespan=lifespan,
        docs_url=None if _is_production else "/docs",
        redoc_url=None if _is_production else "/redoc",
        openapi_url=None if _is_production else "/api/v1/openapi.json",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "Accept", "X-Signature", "X-Timestamp"],
    )

    v1_router = APIRouter(prefix="/api/v1")
    v1_router.include_router(auth_router)
    v1_router.include_router(links_router)
    v1_router.include_router(webhook_router)
    v1_router.include_router(admin_users_router)
    v1_router.include_router(health_router)
    app.include_router(v1_router)

    app.add_exception_handler(KycDeskError, kycdesk_error_handler)

    @app.get("/")
    async def root():
        return {
            "name": "KYC Desk",
            "version": __version__,
            "docs": None if _is_production else "/docs",
            "api": {
                "v1": {
                    "health": "/api/v1/health",
                    "login": "/api/v1/login",
                    "password_recovery": "/api/v1/password/recovery",
                    "links": "/api/v1/links",
                    "webhook": "/api/v1/webhook/didit",
                    "admin": "/api/v1/admin/users",
                },
            },
        }

    return app


# ═══════════════════════════════════════════════════════════════════════════════
# Module-level singleton
# ═══════════════════════════════════════════════════════════════════════════════
app = create_app()


def main() -> None:
    """Запускает KYC Desk через Uvicorn."""
    settings = get_settings()
    logger.info("Starting KYC Desk on %s:%s", settings.api_host, settings.api_port)
    uvicorn.run(
        "kycdesk.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=False,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
