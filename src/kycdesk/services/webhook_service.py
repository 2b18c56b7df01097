"""
kycdesk/services/webhook_service.py — Приём статусов DIDit (webhook).

Контракт обработки одного запроса:
    1. Тело берётся как сырые байты (HMAC считается по ним, не по JSON).
    2. Если задан DIDIT_WEBHOOK_SECRET — проверка ``X-Timestamp`` (окно
       ±WEBHOOK_TOLERANCE_SECONDS) и ``X-Signature`` (HMAC-SHA256, hex,
       сравнение за постоянное время). Любая ошибка → WebhookUnauthorized.
       Без секрета проверка пропускается (с предупреждением в лог).
    3. JSON должен содержать ``session_id`` и ``status`` → иначе WebhookBadRequest.
    4. Статус записывается в первую по PK запись с этим session id;
       нет записи → WebhookNotFound.
    5. Ответ — подтверждение; других побочных эффектов нет.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
from datetime import datetime, timezone

from pydantic import ValidationError as PydanticValidationError

from kycdesk.config import get_settings
from kycdesk.db.repositories import verification_repo
from kycdesk.exceptions import (
    RecordNotFound,
    WebhookBadRequest,
    WebhookNotFound,
    WebhookUnauthorized,
)
from kycdesk.models.enums import KycStatus
from kycdesk.models.verification import WebhookAck, WebhookPayload

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Signature"
TIMESTAMP_HEADER = "X-Timestamp"


# ═══════════════════════════════════════════════════════════════════════════
# ПОДПИСЬ И ВРЕМЕННОЕ ОКНО
# ═══════════════════════════════════════════════════════════════════════════


def parse_webhook_timestamp(value: str) -> datetime:
    """
    Разбирает ``X-Timestamp``: ISO-8601 или epoch (секунды; миллисекунды,
    если число больше 10^12). Время без зоны считается UTC.
    """
    raw = value.strip()
    try:
        number = float(raw)
    except ValueError:
        number = None

    if number is not None:
        if number > 1e12:
            number /= 1000.0
        return datetime.fromtimestamp(number, tz=timezone.utc)

    parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def compute_signature(secret: str, raw_body: bytes) -> str:
    """HMAC-SHA256(secret, raw_body) в hex."""
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()


def verify_signature(
    raw_body: bytes,
    signature: str | None,
    timestamp: str | None,
    secret: str,
    tolerance_seconds: int = 300,
    now: datetime | None = None,
) -> None:
    """
    Проверяет подпись и свежесть webhook. Ничего не возвращает; при
    любой ошибке — ``WebhookUnauthorized``.
    """
    if not signature or not timestamp:
        logger.error("Webhook rejected: missing signature or timestamp header")
        raise WebhookUnauthorized()

    try:
        sent_at = parse_webhook_timestamp(timestamp)
    except (ValueError, OverflowError, OSError):
        logger.error("Webhook rejected: unparseable timestamp %r", timestamp)
        raise WebhookUnauthorized()

    current = now or datetime.now(timezone.utc)
    skew = abs((current - sent_at).total_seconds())
    if skew > tolerance_seconds:
        logger.error("Webhook rejected: timestamp outside window (%.0fs)", skew)
        raise WebhookUnauthorized()

    provided = signature.strip()
    if provided.startswith("sha256="):
        provided = provided[len("sha256="):]
    expected = compute_signature(secret, raw_body)
    if not hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8")):
        logger.error("Webhook rejected: signature mismatch")
        raise WebhookUnauthorized()


# ═══════════════════════════════════════════════════════════════════════════
# ОБРАБОТКА
# ═══════════════════════════════════════════════════════════════════════════


def parse_payload(raw_body: bytes) -> WebhookPayload:
    """JSON → WebhookPayload; без ``session_id``/``status`` — WebhookBadRequest."""
    try:
        data = json.loads(raw_body)
    except (UnicodeDecodeError, json.JSONDecodeError):
        raise WebhookBadRequest("Request body is not valid JSON")
    if not isinstance(data, dict):
        raise WebhookBadRequest("Request body must be a JSON object")

    try:
        payload = WebhookPayload.model_validate(data)
    except PydanticValidationError as exc:
        raise WebhookBadRequest(f"Malformed webhook payload: {exc.error_count()} errors")

    if not payload.session_id or not payload.status:
        raise WebhookBadRequest()
    return payload


async def handle_status_webhook(
    raw_body: bytes,
    signature: str | None,
    timestamp: str | None,
    now: datetime | None = None,
) -> WebhookAck:
    """Полный цикл обработки webhook DIDit → WebhookAck."""
    settings = get_settings()

    if settings.didit_webhook_secret:
        verify_signature(
            raw_body,
            signature,
            timestamp,
            secret=settings.didit_webhook_secret,
            tolerance_seconds=settings.webhook_tolerance_seconds,
            now=now,
        )
    else:
        logger.warning("Webhook signature verification skipped - no secret configured")

    payload = parse_payload(raw_body)
    logger.info(
        "DIDit webhook received: session_id=%s status=%s type=%s",
        payload.session_id, payload.status, payload.webhook_type,
    )

    try:
        status = KycStatus(payload.status)
    except ValueError:
        raise WebhookBadRequest(f"Unknown status: {payload.status}")

    try:
        row = await verification_repo.update_status(payload.session_id, status.value)
    except RecordNotFound:
        logger.info("No record found for session_id: %s", payload.session_id)
        raise WebhookNotFound()

    logger.info(
        "KYC status updated for session %s: %s -> %s",
        payload.session_id, row.get("previous_status"), status.value,
    )
    return WebhookAck(session_id=payload.session_id, status=status)
