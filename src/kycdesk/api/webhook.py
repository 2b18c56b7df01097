"""
kycdesk/api/webhook.py — Входящий webhook DIDit (смена статуса сессии).

Аутентификация — HMAC-подпись тела, не JWT. Ошибки отдаются провайдеру
в плоском формате ``{"error": "..."}``.
"""

import logging

from fastapi import APIRouter, Header, Request
from fastapi.responses import JSONResponse

from kycdesk.exceptions import PersistenceError, WebhookError
from kycdesk.services import webhook_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhook", tags=["webhook"])


@router.post("/didit", summary="Приём статуса верификации от DIDit")
async def didit_webhook(
    request: Request,
    signature: str | None = Header(None, alias=webhook_service.SIGNATURE_HEADER),
    timestamp: str | None = Header(None, alias=webhook_service.TIMESTAMP_HEADER),
):
    # Подпись считается по сырому телу
    raw_body = await request.body()
    try:
        ack = await webhook_service.handle_status_webhook(raw_body, signature, timestamp)
    except WebhookError as exc:
        logger.warning("DIDit webhook rejected (%s): %s", exc.status_code, exc.message)
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})
    except PersistenceError as exc:
        logger.error("DIDit webhook failed: %s", exc.message)
        return JSONResponse(status_code=500, content={"error": exc.message})
    return ack


@router.get("/didit", summary="Проверка доступности webhook")
async def didit_webhook_liveness():
    return {"status": "ok", "message": "DIDit webhook endpoint"}
