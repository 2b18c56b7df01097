"""
kycdesk/services/auth_service.py — Сервис аутентификации KYC Desk.

Вход по email + пароль против ``auth_identities`` (bcrypt), выпуск JWT
(HS256, python-jose) и согласование профиля из ``users`` через ProfileCache.

Вход запрещён, если:
    • email не подтверждён;
    • идентичность заблокирована (``banned_until`` в будущем);
    • профиль отключён (``is_active = false``) или отсутствует.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from uuid import UUID

import bcrypt
from jose import JWTError, jwt

from kycdesk.config import get_settings
from kycdesk.db.repositories import auth_identity_repo, user_repo
from kycdesk.exceptions import AuthenticationError
from kycdesk.models.user import LoginResponse, TokenPair, UserRead
from kycdesk.services.profile_cache import get_profile_cache

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# РАБОТА С ПАРОЛЯМИ
# ═══════════════════════════════════════════════════════════════════════════


def hash_password(password: str) -> str:
    """Хеширует пароль с помощью bcrypt."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Сравнивает открытый пароль с хешем из БД."""
    return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))


# ═══════════════════════════════════════════════════════════════════════════
# JWT-ТОКЕНЫ
# ═══════════════════════════════════════════════════════════════════════════


def create_access_token(user_id: UUID, role: str, expires_delta: timedelta | None = None) -> str:
    """Создаёт подписанный JWT access-токен."""
    settings = get_settings()
    exp = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.jwt_access_token_expire_minutes)
    )
    payload = {"sub": str(user_id), "exp": exp, "type": "access", "role": str(role)}
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def create_refresh_token(user_id: UUID) -> str:
    """Создаёт JWT refresh-токен."""
    settings = get_settings()
    exp = datetime.now(timezone.utc) + timedelta(days=settings.jwt_refresh_token_expire_days)
    payload = {"sub": str(user_id), "exp": exp, "type": "refresh"}
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict:
    """Декодирует и проверяет JWT-токен."""
    settings = get_settings()
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as exc:
        raise AuthenticationError(f"Invalid token: {exc}") from exc


# ═══════════════════════════════════════════════════════════════════════════
# ПРОФИЛЬ
# ═══════════════════════════════════════════════════════════════════════════


async def load_profile(user_id: UUID) -> UserRead:
    """Читает профиль из users (без кеша)."""
    row = await user_repo.get_user_by_id(user_id)
    if not row:
        raise AuthenticationError("User not found")
    return UserRead(**row)


def is_banned(identity: dict) -> bool:
    """Блокировка действует, пока ``banned_until`` в будущем."""
    banned_until = identity.get("banned_until")
    if banned_until is None:
        return False
    if banned_until.tzinfo is None:
        banned_until = banned_until.replace(tzinfo=timezone.utc)
    return banned_until > datetime.now(timezone.utc)


# ═══════════════════════════════════════════════════════════════════════════
# АУТЕНТИФИКАЦИЯ
# ═══════════════════════════════════════════════════════════════════════════


async def authenticate(email: str, password: str) -> LoginResponse:
    """Аутентифицирует пользователя (email + пароль) → JWT-токены и профиль."""
    identity = await auth_identity_repo.get_identity_by_email(email)
    if not identity or not verify_password(password, identity["password_hash"]):
        raise AuthenticationError("Invalid email or password")

    if not identity.get("email_confirmed"):
        raise AuthenticationError("Email not confirmed")
    if is_banned(identity):
        raise AuthenticationError("Account is disabled")

    row = await user_repo.get_user_by_email(email)
    if not row:
        logger.warning("Auth identity %s has no user profile", identity["id"])
        raise AuthenticationError("User profile not found")

    cache = get_profile_cache()
    user_id = row["id"]
    async with cache.explicit_login(user_id):
        cache.invalidate(user_id)
        profile = await cache.get(user_id, lambda: load_profile(user_id))

    if not profile.is_active:
        cache.invalidate(user_id)
        raise AuthenticationError("Account is disabled")

    logger.info("User %s logged in (role=%s)", email, profile.role.value)
    return LoginResponse(
        access_token=create_access_token(profile.id, profile.role.value),
        refresh_token=create_refresh_token(profile.id),
        user=profile,
    )


async def refresh_access_token(refresh_token_str: str) -> TokenPair:
    """Выдаёт новую пару токенов по валидному refresh-токену."""
    payload = decode_token(refresh_token_str)
    if payload.get("type") != "refresh":
        raise AuthenticationError("Token is not a refresh token")

    user_id = UUID(payload["sub"])
    cache = get_profile_cache()
    profile = await cache.refresh(user_id, lambda: load_profile(user_id))
    if profile is None:
        profile = await load_profile(user_id)
    if not profile.is_active:
        cache.invalidate(user_id)
        raise AuthenticationError("Account is disabled")

    return TokenPair(
        access_token=create_access_token(profile.id, profile.role.value),
        refresh_token=create_refresh_token(profile.id),
    )


def logout(user_id: UUID) -> None:
    """Сбрасывает кешированный профиль. JWT остаётся валидным до истечения."""
    get_profile_cache().invalidate(user_id)
    logger.info("User %s logged out", user_id)
