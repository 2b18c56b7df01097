"""
kycdesk/api/auth.py — Эндпоинты аутентификации.

Вход по email + пароль, обновление токенов, выход, текущий профиль
и восстановление пароля по ссылке из письма.
"""

from fastapi import APIRouter, Body, Depends, status

from kycdesk.dependencies import get_current_user
from kycdesk.models.user import (
    LoginRequest,
    LoginResponse,
    PasswordRecoveryRequest,
    PasswordResetConfirm,
    TokenPair,
    UserRead,
)
from kycdesk.services import auth_service, password_reset_service

router = APIRouter(tags=["auth"])


@router.post(
    "/login",
    response_model=LoginResponse,
    summary="Вход по email + пароль → JWT-токены и профиль",
)
async def login(body: LoginRequest):
    """Аутентификация: email + пароль → JWT access + refresh."""
    return await auth_service.authenticate(body.email, body.password)


@router.post(
    "/token/refresh",
    response_model=TokenPair,
    summary="Обновить JWT-токен",
)
async def refresh_token(refresh_token: str = Body(..., embed=True)):
    """Выдать новую пару токенов по refresh_token."""
    return await auth_service.refresh_access_token(refresh_token)


@router.post(
    "/logout",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Выход (сброс кешированного профиля)",
)
async def logout(user: UserRead = Depends(get_current_user)):
    auth_service.logout(user.id)


@router.get("/me", response_model=UserRead, summary="Текущий пользователь")
async def me(user: UserRead = Depends(get_current_user)):
    return user


@router.post(
    "/password/recovery",
    status_code=status.HTTP_202_ACCEPTED,
    summary="Запросить письмо восстановления пароля",
)
async def password_recovery(body: PasswordRecoveryRequest):
    """Ответ одинаков для существующих и неизвестных email."""
    await password_reset_service.request_password_reset(body.email)
    return {"success": True}


@router.post("/password/reset", summary="Установить новый пароль по ссылке из письма")
async def password_reset(body: PasswordResetConfirm):
    await password_reset_service.reset_password(body.token, body.password, body.confirm_password)
    return {"success": True}
