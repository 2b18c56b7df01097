"""
kycdesk/services/account_service.py — Администрирование учётных записей.

Учётная запись живёт в двух местах: идентичность для входа
(``auth_identities``) и профиль (``users``). Операции затрагивают обе
стороны последовательно, без общей транзакции:

    • create  — идентичность → профиль; если профиль не создан,
                идентичность удаляется (компенсация);
    • enable/disable — is_active в профиле + блокировка идентичности;
    • delete  — мягкое (отключение) или жёсткое (удаление обеих сторон).

Email идентичности всегда берётся из профиля ``users``.

Записи верификации пользователя никогда не затрагиваются.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta, timezone
from uuid import UUID

from kycdesk.config import get_settings
from kycdesk.db.repositories import auth_identity_repo, user_repo
from kycdesk.exceptions import ConflictError, NotFoundError, PersistenceError, ValidationError
from kycdesk.models.common import EMAIL_PATTERN
from kycdesk.models.enums import UserRole
from kycdesk.models.user import AccountCreate, UserRead
from kycdesk.services.audit_logger import AuditAction, get_audit_logger
from kycdesk.services.auth_service import hash_password
from kycdesk.services.profile_cache import get_profile_cache

logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(EMAIL_PATTERN)

# «Бессрочная» блокировка (~100 лет)
BAN_DURATION = timedelta(hours=876600)

DUPLICATE_EMAIL_MESSAGE = "Ya existe un usuario con este email"
CREATE_FAILED_MESSAGE = "Error al crear el usuario. Intente nuevamente."


def validate_account_form(data: AccountCreate) -> UserRole:
    """Правила формы создания пользователя. Возвращает роль."""
    min_length = get_settings().password_min_length

    if not data.name.strip():
        raise ValidationError("El nombre es requerido", details={"field": "name"})
    if not data.email.strip():
        raise ValidationError("El email es requerido", details={"field": "email"})
    if not _EMAIL_RE.match(data.email):
        raise ValidationError("Ingrese un email válido", details={"field": "email"})
    if not data.password:
        raise ValidationError("La contraseña es requerida", details={"field": "password"})
    if len(data.password) < min_length:
        raise ValidationError(
            f"La contraseña debe tener al menos {min_length} caracteres",
            details={"field": "password"},
        )
    if data.confirm_password is not None and data.password != data.confirm_password:
        raise ValidationError("Las contraseñas no coinciden", details={"field": "confirm_password"})
    try:
        return UserRole(data.role)
    except ValueError:
        raise ValidationError("Seleccione un rol", details={"field": "role"})


# ═══════════════════════════════════════════════════════════════════════════
# СОЗДАНИЕ
# ═══════════════════════════════════════════════════════════════════════════


async def create_account(admin: UserRead, data: AccountCreate) -> UserRead:
    """Создаёт идентичность (email подтверждён) и профиль с is_active=True."""
    role = validate_account_form(data)

    if await auth_identity_repo.get_identity_by_email(data.email) or await user_repo.get_user_by_email(data.email):
        raise ConflictError(DUPLICATE_EMAIL_MESSAGE, details={"field": "email"})

    try:
        identity = await auth_identity_repo.create_identity(
            email=data.email,
            password_hash=hash_password(data.password),
            email_confirmed=True,
        )
    except PersistenceError as exc:
        if exc.details.get("constraint") == "auth_identities_email_key":
            raise ConflictError(DUPLICATE_EMAIL_MESSAGE, details={"field": "email"}) from exc
        raise PersistenceError(CREATE_FAILED_MESSAGE, details=exc.details) from exc

    try:
        row = await user_repo.create_user(
            email=data.email, name=data.name, role=role.value, is_active=True,
        )
    except PersistenceError as exc:
        logger.error(
            "Profile insert failed after auth identity %s <%s> was created: %s",
            identity["id"], data.email, exc.message,
        )
        await _compensate_identity(identity["id"], data.email)
        raise PersistenceError(CREATE_FAILED_MESSAGE, details=exc.details) from exc

    user = UserRead(**row)
    logger.info("Account %s created by %s (role=%s)", user.email, admin.email, role.value)
    await get_audit_logger().log(
        AuditAction.ACCOUNT_CREATE,
        entity_type="user",
        entity_id=str(user.id),
        user_id=str(admin.id),
        details={"email": user.email, "role": role.value},
    )
    return user


async def _compensate_identity(identity_id: UUID, email: str) -> None:
    """Удаляет идентичность, оставшуюся без профиля."""
    try:
        await auth_identity_repo.delete_identity(identity_id)
        logger.warning("Orphaned auth identity %s <%s> removed", identity_id, email)
    except PersistenceError as exc:
        logger.error(
            "ORPHANED auth identity %s <%s> could not be removed, manual cleanup required: %s",
            identity_id, email, exc.message,
        )


# ═══════════════════════════════════════════════════════════════════════════
# ВКЛЮЧЕНИЕ / ОТКЛЮЧЕНИЕ / УДАЛЕНИЕ
# ═══════════════════════════════════════════════════════════════════════════


async def _load_target(user_id: UUID, email: str | None) -> dict:
    """
    Профиль, над которым выполняется операция.

    Email идентичности берётся из профиля; переданный клиентом email
    допускается только как подтверждение и обязан совпадать.
    """
    profile = await user_repo.get_user_by_id(user_id)
    if not profile:
        raise NotFoundError("User", str(user_id))
    if email and email.strip().lower() != profile["email"].lower():
        logger.warning(
            "Email mismatch for user %s: got <%s>, profile has <%s>",
            user_id, email, profile["email"],
        )
        raise ValidationError("El email no corresponde al usuario", details={"field": "email"})
    return profile


async def _mirror_ban(email: str, is_active: bool) -> None:
    """Переносит флаг активности в слой аутентификации (блокировка/разблокировка)."""
    identity = await auth_identity_repo.get_identity_by_email(email)
    if not identity:
        logger.warning("No auth identity for %s, ban state not mirrored", email)
        return
    banned_until = None if is_active else datetime.now(timezone.utc) + BAN_DURATION
    await auth_identity_repo.set_banned_until(identity["id"], banned_until)


async def set_account_active(
    admin: UserRead,
    user_id: UUID,
    email: str | None,
    is_active: bool,
) -> None:
    """Включает или отключает учётную запись."""
    profile = await _load_target(user_id, email)
    if not await user_repo.set_active(user_id, is_active):
        raise NotFoundError("User", str(user_id))

    get_profile_cache().invalidate(user_id)
    await _mirror_ban(profile["email"], is_active)

    logger.info(
        "Account %s %s by %s", profile["email"], "enabled" if is_active else "disabled", admin.email,
    )
    await get_audit_logger().log(
        AuditAction.ACCOUNT_ENABLE if is_active else AuditAction.ACCOUNT_DISABLE,
        entity_type="user",
        entity_id=str(user_id),
        user_id=str(admin.id),
        details={"email": profile["email"]},
    )


async def delete_account(
    admin: UserRead,
    user_id: UUID,
    email: str | None = None,
    hard_delete: bool = False,
) -> None:
    """
    Мягкое удаление — отключение и блокировка идентичности.
    Жёсткое — удаление профиля и идентичности с email профиля.
    """
    profile = await _load_target(user_id, email)
    target_email = profile["email"]

    if not hard_delete:
        if not await user_repo.set_active(user_id, False):
            raise NotFoundError("User", str(user_id))
        await _mirror_ban(target_email, False)
    else:
        if not await user_repo.delete_user(user_id):
            raise NotFoundError("User", str(user_id))
        identity = await auth_identity_repo.get_identity_by_email(target_email)
        if identity:
            await auth_identity_repo.delete_identity(identity["id"])
        else:
            logger.warning("No auth identity for %s, nothing to delete", target_email)

    get_profile_cache().invalidate(user_id)
    logger.info(
        "Account %s %s-deleted by %s", target_email, "hard" if hard_delete else "soft", admin.email,
    )
    await get_audit_logger().log(
        AuditAction.ACCOUNT_DELETE,
        entity_type="user",
        entity_id=str(user_id),
        user_id=str(admin.id),
        details={"email": target_email, "hard_delete": hard_delete},
    )


async def list_accounts() -> list[UserRead]:
    """Все учётные записи, новые первыми."""
    return [UserRead(**row) for row in await user_repo.list_users()]
