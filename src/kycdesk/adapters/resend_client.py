"""
kycdesk/adapters/resend_client.py — Клиент транзакционной почты Resend.

POST https://api.resend.com/emails, ``Authorization: Bearer <RESEND_API_KEY>``.
Любая неудача → ``EmailDeliveryError``.
"""

from __future__ import annotations

import logging
from functools import lru_cache

import httpx

from kycdesk.config import get_settings
from kycdesk.exceptions import EmailDeliveryError

logger = logging.getLogger(__name__)


class ResendClient:
    def __init__(
        self,
        api_key: str,
        api_url: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.api_url = api_url
        self.timeout = timeout
        self._transport = transport

    async def send(self, from_address: str, to: str, subject: str, html: str) -> dict:
        """Отправляет HTML-письмо. Возвращает ответ Resend (``{"id": ...}``)."""
        if not self.api_key:
            raise EmailDeliveryError("Missing RESEND_API_KEY environment variable")

        payload = {
            "from": from_address,
            "to": [to],
            "subject": subject,
            "html": html,
        }
        logger.info("Sending email - From: %s, To: %s", from_address, to)
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    self.api_url,
                    json=payload,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                )
        except httpx.HTTPError as exc:
            logger.error("Failed to send email via Resend: %s", exc)
            raise EmailDeliveryError(f"Email transport failed: {exc}") from exc

        if response.is_error:
            logger.error(
                "Resend rejected email to %s: HTTP %s %s",
                to, response.status_code, response.text[:500],
            )
            raise EmailDeliveryError(
                "Email provider rejected the message",
                details={"status": response.status_code, "body": response.text},
            )
        return response.json() if response.content else {}


@lru_cache
def get_resend_client() -> ResendClient:
    settings = get_settings()
    return ResendClient(
        api_key=settings.resend_api_key,
        api_url=settings.resend_api_url,
        timeout=settings.http_timeout_seconds,
    )
