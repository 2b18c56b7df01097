"""
Tests for verification-link email dispatch through Resend.
"""

import httpx
import pytest

from conftest import make_record
from kycdesk.adapters.resend_client import ResendClient
from kycdesk.exceptions import EmailDeliveryError, NotFoundError, ValidationError
from kycdesk.services import notification_service


@pytest.fixture
def use_resend(monkeypatch):
    def _use(client):
        monkeypatch.setattr(notification_service, "get_resend_client", lambda: client)
    return _use


class TestRenderTemplate:
    def test_values_are_html_escaped(self):
        html = notification_service.render_template(
            "<p>{{name}}</p>", name='<script>alert("x")</script>'
        )
        assert "<script>" not in html
        assert "&lt;script&gt;" in html


class TestSendVerificationEmail:
    @pytest.mark.asyncio
    async def test_sends_branded_message(self, resend_outbox, use_resend):
        use_resend(resend_outbox.client)

        result = await notification_service.send_verification_email(
            "juan@correo.com", "Juan", "https://verify.didit.me/session/abc"
        )

        assert result == {"id": "email-1"}
        sent = resend_outbox.sent[0]
        assert sent["to"] == ["juan@correo.com"]
        assert sent["from"] == "C-IKYC <noreply@resend.dev>"
        assert sent["subject"] == "C-IKYC - Verificación de Identidad (KYC)"
        assert "https://verify.didit.me/session/abc" in sent["html"]
        assert "Juan" in sent["html"]

    @pytest.mark.asyncio
    async def test_missing_fields_rejected(self, resend_outbox, use_resend):
        use_resend(resend_outbox.client)
        with pytest.raises(ValidationError):
            await notification_service.send_verification_email("", "Juan", "https://x")
        assert resend_outbox.sent == []

    @pytest.mark.asyncio
    async def test_provider_rejection_is_delivery_error(self, use_resend):
        use_resend(ResendClient(
            api_key="re_test_key",
            api_url="https://api.resend.com/emails",
            transport=httpx.MockTransport(lambda r: httpx.Response(422, json={"message": "bad"})),
        ))
        with pytest.raises(EmailDeliveryError):
            await notification_service.send_verification_email("juan@correo.com", "Juan", "https://x")

    @pytest.mark.asyncio
    async def test_missing_api_key_is_delivery_error(self, use_resend):
        use_resend(ResendClient(api_key="", api_url="https://api.resend.com/emails"))
        with pytest.raises(EmailDeliveryError):
            await notification_service.send_verification_email("juan@correo.com", "Juan", "https://x")


class TestSendRecordEmail:
    @pytest.mark.asyncio
    async def test_uses_record_fields(self, agent, resend_outbox, use_resend):
        use_resend(resend_outbox.client)
        record = await make_record(agent.email, "abc123", name="Cliente Uno")

        await notification_service.send_record_email(agent, record["id"])

        sent = resend_outbox.sent[0]
        assert sent["to"] == ["cliente@correo.com"]
        assert record["kyc_url"] in sent["html"]

    @pytest.mark.asyncio
    async def test_foreign_record_not_found(self, agent, other_agent, resend_outbox, use_resend):
        use_resend(resend_outbox.client)
        record = await make_record(other_agent.email, "abc123")

        with pytest.raises(NotFoundError):
            await notification_service.send_record_email(agent, record["id"])
        assert resend_outbox.sent == []
