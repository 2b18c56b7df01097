"""
kycdesk/api/links.py — Ссылки верификации: создание, список, отчёт, письмо, удаление.

Область видимости записей определяется ролью (см. ``services/rbac.py``).
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status

from kycdesk.dependencies import get_current_user
from kycdesk.models.enums import KycStatus, display_label
from kycdesk.models.user import UserRead
from kycdesk.models.verification import StatusOption, VerificationLinkCreate, VerificationRecord
from kycdesk.services import notification_service, verification_service
from kycdesk.services.rbac import require_permission

router = APIRouter(prefix="/links", tags=["links"])


@router.post(
    "",
    response_model=VerificationRecord,
    status_code=status.HTTP_201_CREATED,
    summary="Создать ссылку верификации для клиента",
)
async def create_link(
    body: VerificationLinkCreate,
    user: UserRead = Depends(require_permission("links.create")),
):
    """Создаёт сессию DIDit и запись со статусом «Not Started»."""
    return await verification_service.generate_link(user, body)


@router.get(
    "",
    response_model=list[VerificationRecord],
    summary="Записи верификации (новые первыми)",
)
async def list_links(
    status_filter: list[str] = Query(default=[], alias="status"),
    label: list[str] = Query(default=[]),
    search: str = "",
    user: UserRead = Depends(get_current_user),
):
    """
    Фильтр по статусу (``status``, канонические значения) и/или по
    подписи дашборда (``label``) — OR внутри выборки; ``search`` — подстрока
    в имени, email или телефоне. Оба фильтра объединяются через AND.
    """
    return await verification_service.list_records(
        user, statuses=status_filter, labels=label, search=search,
    )


@router.get(
    "/statuses",
    response_model=list[StatusOption],
    summary="Словарь статусов с подписями",
)
async def list_statuses():
    return [StatusOption(value=s, label=display_label(s)) for s in KycStatus]


@router.delete(
    "/{record_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Удалить запись верификации",
)
async def delete_link(
    record_id: UUID,
    user: UserRead = Depends(require_permission("links.delete", fresh=True)),
):
    await verification_service.delete_record(user, record_id)


@router.get(
    "/{record_id}/report",
    response_class=Response,
    summary="Скачать PDF-отчёт DIDit",
)
async def download_report(
    record_id: UUID,
    user: UserRead = Depends(require_permission("reports.download")),
):
    artifact = await verification_service.fetch_report(user, record_id)
    return Response(
        content=artifact.content,
        media_type=artifact.media_type,
        headers={"Content-Disposition": f'attachment; filename="{artifact.filename}"'},
    )


@router.post(
    "/{record_id}/email",
    summary="Отправить клиенту ссылку по email",
)
async def email_link(
    record_id: UUID,
    user: UserRead = Depends(get_current_user),
):
    result = await notification_service.send_record_email(user, record_id)
    return {"success": True, "data": result}
