"""
kycdesk/services/verification_service.py — Жизненный цикл ссылок верификации.

    generate_link  — валидация → сессия DIDit → запись в verified_users
    list_records   — записи в области видимости пользователя + фильтр/поиск
    fetch_report   — PDF-отчёт DIDit по записи (+ флаг downloaded)
    delete_record  — жёсткое удаление (только повышенные роли)

Ошибки провайдера и хранилища на границе каждой операции превращаются
в локализованные сообщения; повторов нет.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable
from uuid import UUID

from kycdesk.adapters.didit_client import get_didit_client
from kycdesk.db.repositories import verification_repo
from kycdesk.exceptions import (
    AuthorizationError,
    NotFoundError,
    PersistenceError,
    ProviderUnavailable,
    ValidationError,
)
from kycdesk.models.common import EMAIL_PATTERN
from kycdesk.models.enums import KycStatus
from kycdesk.models.user import UserRead
from kycdesk.models.verification import ReportArtifact, VerificationLinkCreate, VerificationRecord
from kycdesk.services import rbac
from kycdesk.services.audit_logger import AuditAction, get_audit_logger
from kycdesk.services.status_filter import expand_display_labels, filter_records

logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(EMAIL_PATTERN)

GENERATE_FAILED_MESSAGE = "Error al generar el enlace. Intente nuevamente."


def validate_link_form(data: VerificationLinkCreate) -> None:
    """Правила формы клиента; срабатывают до любого сетевого вызова."""
    if not data.name.strip():
        raise ValidationError("El nombre es requerido", details={"field": "name"})
    if not data.phone.strip():
        raise ValidationError("El teléfono es requerido", details={"field": "phone"})
    if not data.email.strip():
        raise ValidationError("El email es requerido", details={"field": "email"})
    if not _EMAIL_RE.match(data.email):
        raise ValidationError("Ingrese un email válido", details={"field": "email"})


# ═══════════════════════════════════════════════════════════════════════════
# СОЗДАНИЕ ССЫЛКИ
# ═══════════════════════════════════════════════════════════════════════════


async def generate_link(agent: UserRead, data: VerificationLinkCreate) -> VerificationRecord:
    """
    Создаёт сессию DIDit и сохраняет запись о ней.

    Запись создаётся только после успешной сессии. Если сессия создана,
    а запись — нет, URL остаётся «осиротевшим»: это логируется, ссылка и
    session id возвращаются в ``details`` ошибки.
    """
    validate_link_form(data)

    try:
        session = await get_didit_client().create_session()
    except ProviderUnavailable as exc:
        logger.error("Generate link failed for agent %s: %s", agent.email, exc.message)
        raise ProviderUnavailable(GENERATE_FAILED_MESSAGE, details=exc.details) from exc

    try:
        row = await verification_repo.create(
            name=data.name,
            phone=data.phone,
            user_email=data.email,
            agent_email=agent.email,
            agent_name=agent.name or agent.email,
            kyc_url=session.url,
            kyc_id=session.session_id,
            kyc_status=KycStatus.NOT_STARTED.value,
            downloaded=False,
        )
    except PersistenceError as exc:
        logger.error(
            "Orphaned DIDit session: session_id=%s url=%s was created for agent %s "
            "but the record was not stored (%s)",
            session.session_id, session.url, agent.email, exc.message,
        )
        raise PersistenceError(
            GENERATE_FAILED_MESSAGE,
            details={"session_id": session.session_id, "kyc_url": session.url},
        ) from exc

    record = VerificationRecord(**row)
    await get_audit_logger().log(
        AuditAction.LINK_CREATE,
        entity_type="verification",
        entity_id=str(record.id),
        user_id=str(agent.id),
        details={"kyc_id": record.kyc_id},
    )
    return record


# ═══════════════════════════════════════════════════════════════════════════
# ЧТЕНИЕ
# ═══════════════════════════════════════════════════════════════════════════


async def list_records(
    user: UserRead,
    statuses: Iterable[KycStatus | str] = (),
    labels: Iterable[str] = (),
    search: str = "",
) -> list[VerificationRecord]:
    """Записи в области видимости пользователя (новые первыми), отфильтрованные."""
    rows = await verification_repo.list_by_owner_scope(
        user.email, include_all=rbac.sees_all_records(user)
    )
    records = [VerificationRecord(**r) for r in rows]
    selected = [*statuses, *expand_display_labels(labels)]
    return filter_records(records, selected, search)


async def get_record_for_user(user: UserRead, record_id: UUID) -> VerificationRecord:
    """Запись по id; чужая запись для агента — как несуществующая."""
    row = await verification_repo.get_by_id(record_id)
    if not row:
        raise NotFoundError("VerificationRecord", str(record_id))
    if not rbac.sees_all_records(user) and row["agent_email"] != user.email:
        raise NotFoundError("VerificationRecord", str(record_id))
    return VerificationRecord(**row)


# ═══════════════════════════════════════════════════════════════════════════
# ОТЧЁТ И УДАЛЕНИЕ
# ═══════════════════════════════════════════════════════════════════════════


async def fetch_report(user: UserRead, record_id: UUID) -> ReportArtifact:
    """
    PDF-отчёт DIDit. Статус не проверяется: ошибку провайдера (например,
    отчёт не готов) получает вызывающий как ProviderError.
    """
    record = await get_record_for_user(user, record_id)
    if record.kyc_status != KycStatus.APPROVED:
        logger.info(
            "Report requested for session %s in status %s",
            record.kyc_id, record.kyc_status.value,
        )

    artifact = await get_didit_client().fetch_report(record.kyc_id)

    await verification_repo.mark_downloaded(record.id)
    await get_audit_logger().log(
        AuditAction.REPORT_DOWNLOAD,
        entity_type="verification",
        entity_id=str(record.id),
        user_id=str(user.id),
        details={"kyc_id": record.kyc_id},
    )
    return artifact


async def delete_record(user: UserRead, record_id: UUID) -> None:
    """Жёсткое удаление записи (повышенные роли)."""
    if not rbac.has_permission(user, "links.delete"):
        raise AuthorizationError("Only administrators can delete verification records")

    deleted = await verification_repo.delete(record_id)
    if not deleted:
        raise NotFoundError("VerificationRecord", str(record_id))

    logger.info("Verification record %s deleted by %s", record_id, user.email)
    await get_audit_logger().log(
        AuditAction.LINK_DELETE,
        entity_type="verification",
        entity_id=str(record_id),
        user_id=str(user.id),
    )
