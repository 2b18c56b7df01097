"""
kycdesk/models/verification.py — Модели записей верификации и webhook DIDit.

VerificationRecord — одна строка ``verified_users`` на каждую созданную
ссылку. Владелец (agent_email/agent_name) неизменен после создания,
статус меняется только через webhook.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field, computed_field

from kycdesk.models.common import KycDeskBase
from kycdesk.models.enums import KycStatus, display_label


class VerificationLinkCreate(KycDeskBase):
    """Данные клиента для генерации ссылки верификации."""
    name: str = Field(default="", examples=["Juan Pérez"])
    phone: str = Field(default="", examples=["+52 55 1234 5678"])
    email: str = Field(default="", examples=["cliente@correo.com"])


class VerificationRecord(KycDeskBase):
    """Запись о запрошенной верификации."""
    id: UUID
    name: str
    phone: str
    user_email: str
    agent_email: str
    agent_name: str
    kyc_url: str
    kyc_id: str
    kyc_status: KycStatus = KycStatus.NOT_STARTED
    date_sent: datetime | None = None
    downloaded: bool = False

    @computed_field  # type: ignore[prop-decorator]
    @property
    def status_label(self) -> str:
        return display_label(self.kyc_status)


class ProviderSession(BaseModel):
    """Ответ DIDit на создание сессии."""
    url: str
    session_id: str


class ReportArtifact(BaseModel):
    """PDF-отчёт DIDit по завершённой сессии."""
    content: bytes
    filename: str
    media_type: str = "application/pdf"


class StatusOption(BaseModel):
    """Элемент словаря статусов для чипов фильтра."""
    value: KycStatus
    label: str


# ═══════════════════════════════════════════════════════════════════════════
# Webhook DIDit
# ═══════════════════════════════════════════════════════════════════════════


class WebhookDecision(BaseModel):
    result: str | None = None
    details: dict[str, Any] | None = None

    model_config = {"extra": "allow"}


class WebhookPayload(BaseModel):
    """Тело webhook DIDit. Обязательны только session_id и status."""
    session_id: str = ""
    status: str = ""
    webhook_type: str | None = Field(default=None, examples=["status.updated", "data.updated"])
    timestamp: str | int | None = None
    workflow_id: str | None = None
    vendor_data: str | None = None
    metadata: dict[str, Any] | None = None
    decision: WebhookDecision | None = None

    model_config = {"extra": "ignore"}


class WebhookAck(BaseModel):
    message: str = "Updated successfully"
    session_id: str
    status: KycStatus
