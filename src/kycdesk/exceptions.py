"""
═══════════════════════════════════════════════════════════════════════════════
KYC Desk — Иерархия доменных ошибок (Custom Exception Hierarchy)
═══════════════════════════════════════════════════════════════════════════════

Базовый класс ``KycDeskError``. HTTP-маппинг кодов выполняется в
``kycdesk.main:kycdesk_error_handler`` (webhook-ошибки — в
``kycdesk.api.webhook``, в плоском формате для провайдера).
"""


class KycDeskError(Exception):
    """
    Базовое исключение для всех доменных ошибок KYC Desk.

    Атрибуты
    ────────
        message (str):  Описание ошибки. Передаётся клиенту в JSON.
        code (str):     Строковый код. Используется для маппинга на HTTP-статус.
        details (dict): Дополнительные данные (entity, id и т.д.).
    """

    def __init__(
        self,
        message: str,
        code: str = "KYC_ERROR",
        details: dict | None = None,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)


class ValidationError(KycDeskError):
    """Ошибка валидации входных данных: 422. Возникает до любого сетевого вызова."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, code="KYC_VALIDATION_ERROR", details=details)


class AuthenticationError(KycDeskError):
    """Ошибка аутентификации: 401 Unauthorized."""

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message, code="KYC_AUTH_ERROR")


class AuthorizationError(KycDeskError):
    """Ошибка авторизации: 403 Forbidden."""

    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(message, code="KYC_AUTHZ_ERROR")


class NotFoundError(KycDeskError):
    """Сущность не найдена: 404 Not Found."""

    def __init__(self, entity: str, entity_id: str):
        super().__init__(
            message=f"{entity} not found: {entity_id}",
            code="KYC_NOT_FOUND",
            details={"entity": entity, "id": entity_id},
        )


class RecordNotFound(NotFoundError):
    """Нет записи верификации с данным provider session id."""

    def __init__(self, session_id: str):
        super().__init__("VerificationRecord", session_id)


class ConflictError(KycDeskError):
    """Конфликт с текущим состоянием: 409 Conflict."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, code="KYC_CONFLICT", details=details)


class PersistenceError(KycDeskError):
    """Хранилище недоступно или нарушено ограничение: 500."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, code="KYC_PERSISTENCE_ERROR", details=details)


class ProviderUnavailable(KycDeskError):
    """DIDit недоступен или ответил неуспешно при создании сессии: 502."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, code="KYC_PROVIDER_UNAVAILABLE", details=details)


class ProviderError(KycDeskError):
    """DIDit вернул ошибку (например, отчёт ещё не готов). HTTP-статус — как у провайдера."""

    def __init__(self, status_code: int, details: str = ""):
        self.status_code = status_code
        super().__init__(
            message=f"Provider returned HTTP {status_code}",
            code="KYC_PROVIDER_ERROR",
            details={"status": status_code, "details": details},
        )


class EmailDeliveryError(KycDeskError):
    """Письмо не отправлено (Resend): 502. Запись верификации не откатывается."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, code="KYC_EMAIL_ERROR", details=details)


# ═══════════════════════════════════════════════════════════════════════════════
# Ошибки webhook (DIDit → KYC Desk)
# ═══════════════════════════════════════════════════════════════════════════════

class WebhookError(KycDeskError):
    """Базовая ошибка входящего webhook; ``status_code`` отдаётся провайдеру."""

    status_code = 500

    def __init__(self, message: str, code: str):
        super().__init__(message, code=code)


class WebhookUnauthorized(WebhookError):
    status_code = 401

    def __init__(self, message: str = "Invalid signature"):
        super().__init__(message, code="KYC_WEBHOOK_UNAUTHORIZED")


class WebhookBadRequest(WebhookError):
    status_code = 400

    def __init__(self, message: str = "Missing session_id or status in request body"):
        super().__init__(message, code="KYC_WEBHOOK_BAD_REQUEST")


class WebhookNotFound(WebhookError):
    status_code = 404

    def __init__(self, message: str = "No record found for this session_id"):
        super().__init__(message, code="KYC_WEBHOOK_NOT_FOUND")


__all__ = [
    "KycDeskError",
    "ValidationError",
    "AuthenticationError",
    "AuthorizationError",
    "NotFoundError",
    "RecordNotFound",
    "ConflictError",
    "PersistenceError",
    "ProviderUnavailable",
    "ProviderError",
    "EmailDeliveryError",
    "WebhookError",
    "WebhookUnauthorized",
    "WebhookBadRequest",
    "WebhookNotFound",
]
