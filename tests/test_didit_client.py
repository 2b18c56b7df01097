"""
Tests for the DIDit HTTP adapter (session creation and PDF report download).
"""

import json

import httpx
import pytest

from conftest import didit_client_for
from kycdesk.exceptions import ProviderError, ProviderUnavailable


class TestCreateSession:
    @pytest.mark.asyncio
    async def test_posts_workflow_and_vendor_data(self, didit_session_transport):
        client = didit_client_for(didit_session_transport.transport)

        session = await client.create_session()

        assert session.session_id == "sess-1"
        assert session.url == "https://verify.didit.me/session/sess-1"
        request = didit_session_transport.calls[0]
        assert request.method == "POST"
        assert request.url == "https://verification.didit.me/v2/session/"
        assert request.headers["x-api-key"] == "test-didit-key"
        assert json.loads(request.content) == {"workflow_id": "wf-test", "vendor_data": "c-ikyc-app"}

    @pytest.mark.asyncio
    async def test_missing_api_key(self, didit_session_transport):
        client = didit_client_for(didit_session_transport.transport, api_key="")
        with pytest.raises(ProviderUnavailable):
            await client.create_session()
        assert didit_session_transport.calls == []

    @pytest.mark.asyncio
    async def test_non_2xx_is_unavailable(self):
        transport = httpx.MockTransport(lambda r: httpx.Response(500, text="boom"))
        with pytest.raises(ProviderUnavailable) as exc_info:
            await didit_client_for(transport).create_session()
        assert exc_info.value.details["status"] == 500

    @pytest.mark.asyncio
    async def test_malformed_body_is_unavailable(self):
        transport = httpx.MockTransport(lambda r: httpx.Response(200, json={"url": "x"}))
        with pytest.raises(ProviderUnavailable):
            await didit_client_for(transport).create_session()

    @pytest.mark.asyncio
    async def test_network_failure_is_unavailable(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(ProviderUnavailable):
            await didit_client_for(httpx.MockTransport(handler)).create_session()


class TestFetchReport:
    @pytest.mark.asyncio
    async def test_returns_pdf_artifact(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, content=b"%PDF-1.7 report")

        artifact = await didit_client_for(httpx.MockTransport(handler)).fetch_report("abc123")

        assert artifact.content == b"%PDF-1.7 report"
        assert artifact.filename == "kyc-report-abc123.pdf"
        assert artifact.media_type == "application/pdf"
        assert seen[0].method == "GET"
        assert seen[0].url.path == "/v1/session/abc123/generate-pdf"

    @pytest.mark.asyncio
    async def test_explicit_api_key_overrides_default(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, content=b"%PDF")

        await didit_client_for(httpx.MockTransport(handler)).fetch_report("abc123", api_key="other")
        assert seen[0].headers["x-api-key"] == "other"

    @pytest.mark.asyncio
    async def test_provider_status_is_propagated(self):
        transport = httpx.MockTransport(lambda r: httpx.Response(404, text="report not ready"))
        with pytest.raises(ProviderError) as exc_info:
            await didit_client_for(transport).fetch_report("abc123")
        assert exc_info.value.status_code == 404
        assert exc_info.value.details["details"] == "report not ready"
