"""
kycdesk/services/notification_service.py — Транзакционные письма.

Ссылка верификации (``templates/verification_email.html``) и ссылка
восстановления пароля (``templates/password_reset_email.html``); все
подставляемые значения экранируются. Ошибка отправки (EmailDeliveryError)
не откатывает уже созданную запись верификации.
"""

from __future__ import annotations

import html
import logging
import re
from pathlib import Path
from uuid import UUID

from kycdesk.adapters.resend_client import get_resend_client
from kycdesk.config import get_settings
from kycdesk.exceptions import EmailDeliveryError, ValidationError
from kycdesk.models.common import EMAIL_PATTERN
from kycdesk.models.user import UserRead
from kycdesk.services.audit_logger import AuditAction, get_audit_logger
from kycdesk.services.verification_service import get_record_for_user

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"
_EMAIL_RE = re.compile(EMAIL_PATTERN)


def _load_template(template_name: str) -> str:
    template_path = TEMPLATES_DIR / template_name
    if not template_path.exists():
        raise FileNotFoundError(f"Template {template_name} not found")
    return template_path.read_text(encoding="utf-8")


def render_template(template: str, **kwargs: object) -> str:
    """Подставляет ``{{key}}`` с HTML-экранированием значений."""
    rendered = template
    for key, value in kwargs.items():
        rendered = rendered.replace(f"{{{{{key}}}}}", html.escape(str(value)))
    return rendered


async def send_verification_email(to: str, name: str, verification_url: str) -> dict:
    """Отправляет клиенту письмо со ссылкой верификации."""
    if not to or not name or not verification_url:
        raise ValidationError("Missing required fields: to, name, verificationUrl")
    if not _EMAIL_RE.match(to):
        raise ValidationError("Ingrese un email válido", details={"field": "to"})

    settings = get_settings()
    body = render_template(
        _load_template("verification_email.html"),
        name=name,
        verification_url=verification_url,
        company_name=settings.company_name,
    )
    try:
        return await get_resend_client().send(
            from_address=f"{settings.company_name} <{settings.resend_from_email}>",
            to=to,
            subject=f"{settings.company_name} - Verificación de Identidad (KYC)",
            html=body,
        )
    except EmailDeliveryError as exc:
        logger.error("Verification email to %s failed: %s", to, exc.message)
        raise EmailDeliveryError(
            "Error al enviar el correo. Verifique la configuración de email.",
            details=exc.details,
        ) from exc


async def send_record_email(user: UserRead, record_id: UUID) -> dict:
    """Письмо по существующей записи (в области видимости пользователя)."""
    record = await get_record_for_user(user, record_id)
    result = await send_verification_email(record.user_email, record.name, record.kyc_url)
    await get_audit_logger().log(
        AuditAction.EMAIL_SEND,
        entity_type="verification",
        entity_id=str(record.id),
        user_id=str(user.id),
        details={"to": record.user_email},
    )
    return result


async def send_password_reset_email(to: str, reset_url: str) -> dict:
    """Письмо со ссылкой восстановления пароля."""
    settings = get_settings()
    body = render_template(
        _load_template("password_reset_email.html"),
        email=to,
        reset_url=reset_url,
        expire_minutes=settings.password_reset_expire_minutes,
        company_name=settings.company_name,
    )
    try:
        return await get_resend_client().send(
            from_address=f"{settings.company_name} <{settings.resend_from_email}>",
            to=to,
            subject=f"{settings.company_name} - Recuperación de contraseña",
            html=body,
        )
    except EmailDeliveryError as exc:
        logger.error("Password reset email to %s failed: %s", to, exc.message)
        raise EmailDeliveryError(
            "Error al enviar el correo de recuperación. Intente nuevamente.",
            details=exc.details,
        ) from exc
