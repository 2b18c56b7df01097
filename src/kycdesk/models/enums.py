"""
kycdesk/models/enums.py — Перечисления домена KYC Desk.

Содержит enum'ы:
    • UserRole — роль учётной записи ('1' агент, '2' оператор, '3' организация)
    • KycStatus — канонический статус сессии DIDit (8 значений)

И отображение статусов на испанские подписи панели (и обратно).
"""

from enum import Enum


class UserRole(str, Enum):
    """Роль учётной записи. Значения совпадают с колонкой users.role."""
    AGENT = "1"
    OPERATOR_ADMIN = "2"
    ORGANIZATION_ADMIN = "3"

    @property
    def label(self) -> str:
        return ROLE_LABELS[self]


ROLE_LABELS: dict[UserRole, str] = {
    UserRole.AGENT: "Agente",
    UserRole.OPERATOR_ADMIN: "Operador (Admin)",
    UserRole.ORGANIZATION_ADMIN: "Organización (Admin)",
}


class KycStatus(str, Enum):
    """Статус верификации в словаре провайдера (источник истины)."""
    NOT_STARTED = "Not Started"
    IN_PROGRESS = "In Progress"
    APPROVED = "Approved"
    DECLINED = "Declined"
    IN_REVIEW = "In Review"
    EXPIRED = "Expired"
    ABANDONED = "Abandoned"
    KYC_EXPIRED = "Kyc Expired"


# Порядок ключей = порядок чипов фильтра в панели
STATUS_DISPLAY: dict[KycStatus, str] = {
    KycStatus.NOT_STARTED: "Enviado",
    KycStatus.IN_PROGRESS: "En Progreso",
    KycStatus.APPROVED: "Aprobado",
    KycStatus.DECLINED: "Declinado",
    KycStatus.IN_REVIEW: "En Revisión",
    KycStatus.EXPIRED: "Expirado",
    KycStatus.ABANDONED: "Abandonado",
    KycStatus.KYC_EXPIRED: "KYC Expirado",
}

# Подпись → статусы (одной подписи может соответствовать несколько)
STATUS_REVERSE: dict[str, list[KycStatus]] = {}
for _status, _label in STATUS_DISPLAY.items():
    STATUS_REVERSE.setdefault(_label, []).append(_status)
del _status, _label


def display_label(status: KycStatus | str) -> str:
    """Испанская подпись для канонического статуса."""
    return STATUS_DISPLAY[KycStatus(status)]


def statuses_for_label(label: str) -> list[KycStatus]:
    """Канонические статусы для подписи; неизвестная подпись → пустой список."""
    return list(STATUS_REVERSE.get(label, []))
