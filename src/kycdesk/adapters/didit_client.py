"""
kycdesk/adapters/didit_client.py — HTTP-клиент DIDit (провайдер KYC).

Две операции:
    • create_session() — POST /v2/session/ → {url, session_id}
    • fetch_report()   — GET /v1/session/{id}/generate-pdf → PDF

Аутентификация — статический API-ключ в заголовке ``x-api-key``.
Ключ никогда не пишется в лог целиком. Повторов нет: одна попытка.
"""

from __future__ import annotations

import logging
from functools import lru_cache

import httpx

from kycdesk.config import get_settings, mask_secret
from kycdesk.exceptions import ProviderError, ProviderUnavailable
from kycdesk.models.verification import ProviderSession, ReportArtifact

logger = logging.getLogger(__name__)


class DiditClient:
    """Тонкий клиент к API DIDit."""

    def __init__(
        self,
        api_key: str,
        base_url: str,
        workflow_id: str,
        vendor_data: str,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.workflow_id = workflow_id
        self.vendor_data = vendor_data
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
        )

    async def create_session(self) -> ProviderSession:
        """
        Открывает новую сессию верификации.

        Raises:
            ProviderUnavailable: нет ключа, сетевая ошибка, не-2xx ответ
                или ответ без ``url`` / ``session_id``.
        """
        if not self.api_key:
            raise ProviderUnavailable("DIDit API key not configured")

        logger.info(
            "Creating DIDit session (workflow=%s, key=%s)",
            self.workflow_id, mask_secret(self.api_key),
        )
        try:
            async with self._client() as client:
                response = await client.post(
                    "/v2/session/",
                    headers={"x-api-key": self.api_key},
                    json={
                        "workflow_id": self.workflow_id,
                        "vendor_data": self.vendor_data,
                    },
                )
        except httpx.HTTPError as exc:
            logger.error("DIDit session request failed: %s", exc)
            raise ProviderUnavailable(f"DIDit request failed: {exc}") from exc

        if response.is_error:
            logger.error(
                "DIDit session error: HTTP %s %s", response.status_code, response.text[:500]
            )
            raise ProviderUnavailable(
                "Failed to create session",
                details={"status": response.status_code, "body": response.text},
            )

        try:
            data = response.json()
            session = ProviderSession(url=data["url"], session_id=data["session_id"])
        except (ValueError, KeyError, TypeError) as exc:
            logger.error("Unexpected DIDit session response: %s", response.text[:500])
            raise ProviderUnavailable("Malformed session response from DIDit") from exc

        logger.info("DIDit session created: %s", session.session_id)
        return session

    async def fetch_report(self, session_id: str, api_key: str | None = None) -> ReportArtifact:
        """
        Скачивает PDF-отчёт по сессии.

        Статус сессии здесь не проверяется: ошибка провайдера (например,
        отчёт ещё не готов) возвращается как ``ProviderError``.
        """
        key = api_key or self.api_key
        if not key:
            raise ProviderUnavailable("DIDit API key not configured")

        try:
            async with self._client() as client:
                response = await client.get(
                    f"/v1/session/{session_id}/generate-pdf",
                    headers={"x-api-key": key},
                )
        except httpx.HTTPError as exc:
            logger.error("DIDit report request failed for %s: %s", session_id, exc)
            raise ProviderUnavailable(f"DIDit request failed: {exc}") from exc

        if response.is_error:
            logger.error(
                "DIDit report error for %s: HTTP %s %s",
                session_id, response.status_code, response.text[:500],
            )
            raise ProviderError(response.status_code, response.text)

        return ReportArtifact(
            content=response.content,
            filename=f"kyc-report-{session_id}.pdf",
            media_type="application/pdf",
        )


@lru_cache
def get_didit_client() -> DiditClient:
    """Клиент DIDit с параметрами из настроек (singleton)."""
    settings = get_settings()
    return DiditClient(
        api_key=settings.didit_api_key,
        base_url=settings.didit_base_url,
        workflow_id=settings.didit_workflow_id,
        vendor_data=settings.didit_vendor_data,
        timeout=settings.http_timeout_seconds,
    )
