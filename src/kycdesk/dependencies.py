"""
═══════════════════════════════════════════════════════════════════════════════
KYC Desk — Зависимости FastAPI (Dependency Injection)
═══════════════════════════════════════════════════════════════════════════════

``get_current_user()`` — профиль по JWT через ProfileCache.
``get_current_user_fresh()`` — то же, но профиль всегда читается из БД
(для привилегированных операций).
"""

from __future__ import annotations

from uuid import UUID

from fastapi import Header, HTTPException, status

from kycdesk.exceptions import AuthenticationError
from kycdesk.models.user import UserRead
from kycdesk.services.auth_service import decode_token, load_profile
from kycdesk.services.profile_cache import get_profile_cache


def _user_id_from_header(authorization: str | None) -> UUID:
    # ── Шаг 1: наличие заголовка ──
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header is required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    # ── Шаг 2: формат "Bearer <token>" ──
    if not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header must start with 'Bearer'",
            headers={"WWW-Authenticate": "Bearer"},
        )

    # ── Шаг 3: декодирование JWT ──
    try:
        payload = decode_token(authorization[7:])
        if payload.get("type") != "access":
            raise AuthenticationError("Token is not an access token")
        return UUID(payload["sub"])
    except (AuthenticationError, KeyError, ValueError) as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
        ) from exc


def _ensure_active(user: UserRead) -> UserRead:
    if not user.is_active:
        get_profile_cache().invalidate(user.id)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is disabled",
        )
    return user


async def get_current_user(authorization: str | None = Header(None)) -> UserRead:
    """
    Извлекает и валидирует JWT-токен из заголовка ``Authorization``.

    Raises:
        HTTPException(401): токен отсутствует, невалиден, пользователь не найден.
        HTTPException(403): учётная запись отключена.
    """
    user_id = _user_id_from_header(authorization)
    try:
        user = await get_profile_cache().get(user_id, lambda: load_profile(user_id))
    except AuthenticationError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=exc.message,
        ) from exc
    return _ensure_active(user)


async def get_current_user_fresh(authorization: str | None = Header(None)) -> UserRead:
    """Как ``get_current_user``, но без кеша."""
    user_id = _user_id_from_header(authorization)
    try:
        user = await load_profile(user_id)
    except AuthenticationError as exc:
        get_profile_cache().invalidate(user_id)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=exc.message,
        ) from exc
    get_profile_cache().put(user_id, user)
    return _ensure_active(user)
