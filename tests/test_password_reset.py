"""
Tests for password recovery: emailed reset link and the token-guarded reset.
"""

import re
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from conftest import TEST_PASSWORD, make_account
from kycdesk import memory_store
from kycdesk.adapters.resend_client import ResendClient
from kycdesk.exceptions import AuthenticationError, EmailDeliveryError, ValidationError
from kycdesk.services import auth_service, notification_service, password_reset_service
from kycdesk.services.audit_logger import get_audit_logger
from kycdesk.services.password_reset_service import (
    INVALID_LINK_MESSAGE,
    create_password_reset_token,
    request_password_reset,
    reset_password,
)
from kycdesk.services.profile_cache import get_profile_cache

NEW_PASSWORD = "nueva-clave-9"


@pytest.fixture
def outbox(resend_outbox, monkeypatch):
    monkeypatch.setattr(notification_service, "get_resend_client", lambda: resend_outbox.client)
    return resend_outbox.sent


def _token_from(message: dict) -> str:
    match = re.search(r"reset-password\?token=([\w\-.]+)", message["html"])
    assert match, "reset link missing from email body"
    return match.group(1)


async def _current_hash(email: str) -> str:
    return (await memory_store.get_identity_by_email(email))["password_hash"]


class TestRequestPasswordReset:
    @pytest.mark.asyncio
    async def test_sends_reset_link(self, agent, outbox):
        await request_password_reset(agent.email)

        assert len(outbox) == 1
        sent = outbox[0]
        assert sent["to"] == [agent.email]
        assert sent["subject"] == "C-IKYC - Recuperación de contraseña"
        assert "http://localhost:3000/reset-password?token=" in sent["html"]
        payload = auth_service.decode_token(_token_from(sent))
        assert payload["type"] == "password_reset"
        assert payload["sub"] == agent.email

    @pytest.mark.asyncio
    async def test_surrounding_spaces_in_email_are_ignored(self, agent, outbox):
        await request_password_reset(f"  {agent.email} ")
        assert outbox[0]["to"] == [agent.email]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "email,message",
        [
            ("", "Por favor ingrese su correo electrónico"),
            ("   ", "Por favor ingrese su correo electrónico"),
            ("not-an-email", "Por favor ingrese un email válido"),
        ],
    )
    async def test_invalid_email(self, outbox, email, message):
        with pytest.raises(ValidationError) as exc_info:
            await request_password_reset(email)
        assert exc_info.value.message == message
        assert outbox == []

    @pytest.mark.asyncio
    async def test_unknown_email_is_silent(self, outbox):
        await request_password_reset("nadie@empresa.com")
        assert outbox == []

    @pytest.mark.asyncio
    async def test_banned_account_gets_no_email(self, agent, outbox):
        identity = await memory_store.get_identity_by_email(agent.email)
        await memory_store.set_banned_until(identity["id"], datetime.now(timezone.utc) + timedelta(days=1))

        await request_password_reset(agent.email)

        assert outbox == []

    @pytest.mark.asyncio
    async def test_provider_failure_is_delivery_error(self, agent, monkeypatch):
        failing = ResendClient(
            api_key="re_test_key",
            api_url="https://api.resend.com/emails",
            transport=httpx.MockTransport(lambda r: httpx.Response(500, json={"message": "down"})),
        )
        monkeypatch.setattr(notification_service, "get_resend_client", lambda: failing)

        with pytest.raises(EmailDeliveryError) as exc_info:
            await request_password_reset(agent.email)
        assert exc_info.value.message == "Error al enviar el correo de recuperación. Intente nuevamente."


class TestResetPassword:
    @pytest.mark.asyncio
    async def test_emailed_token_sets_new_password(self, agent, outbox):
        await request_password_reset(agent.email)

        await reset_password(_token_from(outbox[0]), NEW_PASSWORD, NEW_PASSWORD)

        response = await auth_service.authenticate(agent.email, NEW_PASSWORD)
        assert response.user.id == agent.id
        with pytest.raises(AuthenticationError):
            await auth_service.authenticate(agent.email, TEST_PASSWORD)
        assert get_audit_logger().buffered[-1]["action"] == "account.password_reset"

    @pytest.mark.asyncio
    async def test_token_is_single_use(self, agent):
        token = create_password_reset_token(agent.email, await _current_hash(agent.email))
        await reset_password(token, NEW_PASSWORD, NEW_PASSWORD)

        with pytest.raises(ValidationError) as exc_info:
            await reset_password(token, "otra-clave-7", "otra-clave-7")
        assert exc_info.value.message == INVALID_LINK_MESSAGE

    @pytest.mark.asyncio
    async def test_expired_token_rejected(self, agent):
        token = create_password_reset_token(
            agent.email, await _current_hash(agent.email), expires_delta=timedelta(seconds=-1),
        )
        with pytest.raises(ValidationError, match="inválido o ha expirado"):
            await reset_password(token, NEW_PASSWORD, NEW_PASSWORD)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("token", ["", "garbage", "a.b.c"])
    async def test_malformed_token_rejected(self, agent, token):
        with pytest.raises(ValidationError, match="inválido o ha expirado"):
            await reset_password(token, NEW_PASSWORD, NEW_PASSWORD)

    @pytest.mark.asyncio
    async def test_access_token_is_not_a_reset_token(self, agent):
        token = auth_service.create_access_token(agent.id, agent.role.value)
        with pytest.raises(ValidationError, match="inválido o ha expirado"):
            await reset_password(token, NEW_PASSWORD, NEW_PASSWORD)

    @pytest.mark.asyncio
    async def test_banned_account_cannot_reset(self, agent):
        token = create_password_reset_token(agent.email, await _current_hash(agent.email))
        identity = await memory_store.get_identity_by_email(agent.email)
        await memory_store.set_banned_until(identity["id"], datetime.now(timezone.utc) + timedelta(days=1))

        with pytest.raises(ValidationError, match="inválido o ha expirado"):
            await reset_password(token, NEW_PASSWORD, NEW_PASSWORD)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "password,confirm,message",
        [
            ("", "", "La contraseña es requerida"),
            ("12345", "12345", "La contraseña debe tener al menos 6 caracteres"),
            (NEW_PASSWORD, "distinta-1", "Las contraseñas no coinciden"),
            (TEST_PASSWORD, TEST_PASSWORD, "La nueva contraseña debe ser diferente a la anterior"),
        ],
    )
    async def test_password_rules(self, agent, password, confirm, message):
        original_hash = await _current_hash(agent.email)
        token = create_password_reset_token(agent.email, original_hash)

        with pytest.raises(ValidationError) as exc_info:
            await reset_password(token, password, confirm)

        assert exc_info.value.message == message
        assert await _current_hash(agent.email) == original_hash

    @pytest.mark.asyncio
    async def test_cached_profile_is_dropped(self, agent):
        await auth_service.authenticate(agent.email, TEST_PASSWORD)
        assert get_profile_cache().peek(agent.id) is not None

        token = create_password_reset_token(agent.email, await _current_hash(agent.email))
        await reset_password(token, NEW_PASSWORD, NEW_PASSWORD)

        assert get_profile_cache().peek(agent.id) is None

    @pytest.mark.asyncio
    async def test_token_for_other_account_does_not_leak(self, agent):
        other = await make_account("otra@empresa.com")
        token = create_password_reset_token(other.email, await _current_hash(other.email))

        await password_reset_service.reset_password(token, NEW_PASSWORD, NEW_PASSWORD)

        await auth_service.authenticate(agent.email, TEST_PASSWORD)
        await auth_service.authenticate(other.email, NEW_PASSWORD)
