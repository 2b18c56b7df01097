"""
kycdesk/services/password_reset_service.py — Восстановление пароля.

Поток:
    1. ``request_password_reset(email)`` — письмо со ссылкой
       ``PASSWORD_RESET_URL?token=…`` (JWT HS256, type=password_reset).
    2. ``reset_password(token, password, confirm_password)`` — новый
       bcrypt-хеш в ``auth_identities``.

Токен содержит отпечаток текущего хеша пароля: после смены пароля
отпечаток перестаёт совпадать, и ссылка становится недействительной.
Для неизвестного или заблокированного email запрос завершается молча,
наличие учётной записи наружу не раскрывается.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import re
from datetime import datetime, timedelta, timezone
from urllib.parse import urlencode

from jose import JWTError, jwt

from kycdesk.config import get_settings
from kycdesk.db.repositories import auth_identity_repo, user_repo
from kycdesk.exceptions import ValidationError
from kycdesk.models.common import EMAIL_PATTERN
from kycdesk.services import notification_service
from kycdesk.services.audit_logger import AuditAction, get_audit_logger
from kycdesk.services.auth_service import hash_password, is_banned, verify_password
from kycdesk.services.profile_cache import get_profile_cache

logger = logging.getLogger(__name__)

TOKEN_TYPE = "password_reset"
INVALID_LINK_MESSAGE = "El enlace de recuperación es inválido o ha expirado."

_EMAIL_RE = re.compile(EMAIL_PATTERN)


def password_fingerprint(password_hash: str) -> str:
    return hashlib.sha256(password_hash.encode("utf-8")).hexdigest()[:16]


# ═══════════════════════════════════════════════════════════════════════════
# ТОКЕН ВОССТАНОВЛЕНИЯ
# ═══════════════════════════════════════════════════════════════════════════


def create_password_reset_token(
    email: str, password_hash: str, expires_delta: timedelta | None = None,
) -> str:
    """Подписанный одноразовый токен восстановления."""
    settings = get_settings()
    exp = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.password_reset_expire_minutes)
    )
    payload = {
        "sub": email,
        "exp": exp,
        "type": TOKEN_TYPE,
        "pwd": password_fingerprint(password_hash),
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def build_reset_url(token: str) -> str:
    return f"{get_settings().password_reset_url}?{urlencode({'token': token})}"


async def _identity_for_token(token: str) -> dict:
    """Идентичность, для которой выпущен токен; иначе ValidationError."""
    settings = get_settings()
    if not token:
        raise ValidationError(INVALID_LINK_MESSAGE, details={"field": "token"})
    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as exc:
        logger.info("Password reset token rejected: %s", exc)
        raise ValidationError(INVALID_LINK_MESSAGE, details={"field": "token"}) from exc

    if payload.get("type") != TOKEN_TYPE or not payload.get("sub"):
        raise ValidationError(INVALID_LINK_MESSAGE, details={"field": "token"})

    identity = await auth_identity_repo.get_identity_by_email(payload["sub"])
    if not identity or is_banned(identity):
        raise ValidationError(INVALID_LINK_MESSAGE, details={"field": "token"})
    if not hmac.compare_digest(
        str(payload.get("pwd", "")), password_fingerprint(identity["password_hash"]),
    ):
        logger.info("Password reset token for %s already used", identity["email"])
        raise ValidationError(INVALID_LINK_MESSAGE, details={"field": "token"})
    return identity


# ═══════════════════════════════════════════════════════════════════════════
# ЗАПРОС И ПОДТВЕРЖДЕНИЕ
# ═══════════════════════════════════════════════════════════════════════════


async def request_password_reset(email: str) -> None:
    """Отправляет ссылку восстановления, если учётная запись существует."""
    email = email.strip()
    if not email:
        raise ValidationError("Por favor ingrese su correo electrónico", details={"field": "email"})
    if not _EMAIL_RE.match(email):
        raise ValidationError("Por favor ingrese un email válido", details={"field": "email"})

    identity = await auth_identity_repo.get_identity_by_email(email)
    if not identity:
        logger.info("Password reset requested for unknown email %s", email)
        return
    if is_banned(identity):
        logger.info("Password reset requested for disabled account %s", email)
        return

    token = create_password_reset_token(identity["email"], identity["password_hash"])
    await notification_service.send_password_reset_email(identity["email"], build_reset_url(token))
    logger.info("Password reset link sent to %s", identity["email"])


def validate_new_password(password: str, confirm_password: str) -> None:
    min_length = get_settings().password_min_length
    if not password:
        raise ValidationError("La contraseña es requerida", details={"field": "password"})
    if len(password) < min_length:
        raise ValidationError(
            f"La contraseña debe tener al menos {min_length} caracteres",
            details={"field": "password"},
        )
    if password != confirm_password:
        raise ValidationError("Las contraseñas no coinciden", details={"field": "confirm_password"})


async def reset_password(token: str, password: str, confirm_password: str) -> None:
    """Устанавливает новый пароль по токену из письма."""
    identity = await _identity_for_token(token)
    validate_new_password(password, confirm_password)
    if verify_password(password, identity["password_hash"]):
        raise ValidationError(
            "La nueva contraseña debe ser diferente a la anterior",
            details={"field": "password"},
        )

    await auth_identity_repo.set_password_hash(identity["id"], hash_password(password))

    profile = await user_repo.get_user_by_email(identity["email"])
    if profile:
        get_profile_cache().invalidate(profile["id"])
    logger.info("Password reset completed for %s", identity["email"])
    await get_audit_logger().log(
        AuditAction.PASSWORD_RESET,
        entity_type="user",
        entity_id=str(profile["id"]) if profile else str(identity["id"]),
        user_id=str(profile["id"]) if profile else None,
        details={"email": identity["email"]},
    )
