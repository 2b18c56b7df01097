"""
kycdesk.models — Модели данных KYC Desk.

Реэкспорт основных классов для удобства:
    from kycdesk.models import KycStatus, VerificationRecord, UserRead
"""

from kycdesk.models.enums import (  # noqa: F401
    KycStatus,
    UserRole,
    display_label,
    statuses_for_label,
)
from kycdesk.models.user import AccountCreate, UserRead  # noqa: F401
from kycdesk.models.verification import (  # noqa: F401
    ProviderSession,
    ReportArtifact,
    VerificationLinkCreate,
    VerificationRecord,
    WebhookAck,
    WebhookPayload,
)
