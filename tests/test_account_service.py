"""
Test suite for account administration: create with compensation, enable/disable, delete.
"""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from conftest import make_account, make_record
from kycdesk import memory_store
from kycdesk.db.repositories import user_repo
from kycdesk.exceptions import ConflictError, NotFoundError, PersistenceError, ValidationError
from kycdesk.models.enums import UserRole
from kycdesk.models.user import AccountCreate
from kycdesk.services import account_service
from kycdesk.services.auth_service import verify_password


def _form(**overrides) -> AccountCreate:
    fields = {
        "email": "nuevo@empresa.com",
        "password": "secret123",
        "confirm_password": "secret123",
        "name": "Nuevo Agente",
        "role": "1",
    }
    fields.update(overrides)
    return AccountCreate(**fields)


class TestCreateAccount:
    @pytest.mark.asyncio
    async def test_creates_confirmed_identity_and_active_profile(self, admin):
        user = await account_service.create_account(admin, _form())

        assert user.role is UserRole.AGENT
        assert user.is_active is True
        identity = await memory_store.get_identity_by_email("nuevo@empresa.com")
        assert identity["email_confirmed"] is True
        assert verify_password("secret123", identity["password_hash"])

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "overrides,message",
        [
            ({"name": ""}, "El nombre es requerido"),
            ({"email": "bad"}, "Ingrese un email válido"),
            ({"password": "12345", "confirm_password": "12345"}, "La contraseña debe tener al menos 6 caracteres"),
            ({"confirm_password": "different"}, "Las contraseñas no coinciden"),
            ({"role": "9"}, "Seleccione un rol"),
        ],
    )
    async def test_validation(self, admin, overrides, message):
        with pytest.raises(ValidationError) as exc_info:
            await account_service.create_account(admin, _form(**overrides))
        assert exc_info.value.message == message
        assert await memory_store.get_identity_by_email("nuevo@empresa.com") is None

    @pytest.mark.asyncio
    async def test_password_is_stored_unstripped_other_fields_trimmed(self, admin):
        form = _form(
            email="  nuevo@empresa.com ", name=" Nuevo Agente ",
            password=" secret123 ", confirm_password=" secret123 ",
        )
        user = await account_service.create_account(admin, form)

        assert user.email == "nuevo@empresa.com"
        assert user.name == "Nuevo Agente"
        identity = await memory_store.get_identity_by_email("nuevo@empresa.com")
        assert verify_password(" secret123 ", identity["password_hash"])
        assert not verify_password("secret123", identity["password_hash"])

    @pytest.mark.asyncio
    async def test_duplicate_email_conflicts(self, admin, agent):
        with pytest.raises(ConflictError):
            await account_service.create_account(admin, _form(email=agent.email))

    @pytest.mark.asyncio
    async def test_profile_failure_removes_orphaned_identity(self, admin, monkeypatch):
        async def failing_create_user(**kwargs):
            raise PersistenceError("Database error: boom")

        monkeypatch.setattr(user_repo, "create_user", failing_create_user)

        with pytest.raises(PersistenceError):
            await account_service.create_account(admin, _form())

        assert await memory_store.get_identity_by_email("nuevo@empresa.com") is None


class TestSetAccountActive:
    @pytest.mark.asyncio
    async def test_disable_bans_identity_and_keeps_records(self, admin, agent):
        record = await make_record(agent.email, "abc123")

        await account_service.set_account_active(admin, agent.id, agent.email, False)

        profile = await memory_store.get_user_by_id(agent.id)
        assert profile["is_active"] is False
        identity = await memory_store.get_identity_by_email(agent.email)
        assert identity["banned_until"] > datetime.now(timezone.utc) + timedelta(days=365 * 50)
        assert await memory_store.get_record_by_id(record["id"]) is not None

    @pytest.mark.asyncio
    async def test_enable_lifts_ban(self, admin, agent):
        await account_service.set_account_active(admin, agent.id, agent.email, False)
        await account_service.set_account_active(admin, agent.id, agent.email, True)

        identity = await memory_store.get_identity_by_email(agent.email)
        assert identity["banned_until"] is None
        assert (await memory_store.get_user_by_id(agent.id))["is_active"] is True

    @pytest.mark.asyncio
    async def test_missing_identity_is_not_fatal(self, admin):
        profile_only = await memory_store.create_user(
            email="solo@empresa.com", name="Solo", role="1", is_active=True,
        )
        await account_service.set_account_active(admin, profile_only["id"], "solo@empresa.com", False)
        assert (await memory_store.get_user_by_id(profile_only["id"]))["is_active"] is False

    @pytest.mark.asyncio
    async def test_unknown_user(self, admin):
        with pytest.raises(NotFoundError):
            await account_service.set_account_active(admin, uuid4(), "x@y.com", False)

    @pytest.mark.asyncio
    async def test_foreign_email_is_rejected_and_nothing_changes(self, admin, agent, other_agent):
        with pytest.raises(ValidationError):
            await account_service.set_account_active(admin, agent.id, other_agent.email, False)

        assert (await memory_store.get_user_by_id(agent.id))["is_active"] is True
        assert (await memory_store.get_identity_by_email(agent.email))["banned_until"] is None
        assert (await memory_store.get_identity_by_email(other_agent.email))["banned_until"] is None

    @pytest.mark.asyncio
    async def test_email_is_optional_and_profile_email_is_banned(self, admin, agent):
        await account_service.set_account_active(admin, agent.id, None, False)

        assert (await memory_store.get_identity_by_email(agent.email))["banned_until"] is not None

    @pytest.mark.asyncio
    async def test_email_confirmation_ignores_case(self, admin, agent):
        await account_service.set_account_active(admin, agent.id, agent.email.upper(), False)

        assert (await memory_store.get_user_by_id(agent.id))["is_active"] is False


class TestDeleteAccount:
    @pytest.mark.asyncio
    async def test_soft_delete_disables(self, admin, agent):
        await account_service.delete_account(admin, agent.id, email=agent.email)

        assert (await memory_store.get_user_by_id(agent.id))["is_active"] is False
        assert (await memory_store.get_identity_by_email(agent.email))["banned_until"] is not None

    @pytest.mark.asyncio
    async def test_hard_delete_removes_both_sides(self, admin, agent):
        record = await make_record(agent.email, "abc123")

        await account_service.delete_account(admin, agent.id, email=agent.email, hard_delete=True)

        assert await memory_store.get_user_by_id(agent.id) is None
        assert await memory_store.get_identity_by_email(agent.email) is None
        assert await memory_store.get_record_by_id(record["id"]) is not None

    @pytest.mark.asyncio
    async def test_hard_delete_without_email_uses_profile_email(self, admin, agent):
        await account_service.delete_account(admin, agent.id, hard_delete=True)

        assert await memory_store.get_user_by_id(agent.id) is None
        assert await memory_store.get_identity_by_email(agent.email) is None

    @pytest.mark.asyncio
    async def test_soft_delete_without_email_still_bans(self, admin, agent):
        await account_service.delete_account(admin, agent.id)

        assert (await memory_store.get_identity_by_email(agent.email))["banned_until"] is not None

    @pytest.mark.asyncio
    async def test_hard_delete_with_foreign_email_is_rejected(self, admin, agent, other_agent):
        with pytest.raises(ValidationError) as exc_info:
            await account_service.delete_account(
                admin, agent.id, email=other_agent.email, hard_delete=True,
            )

        assert exc_info.value.details == {"field": "email"}
        assert await memory_store.get_user_by_id(agent.id) is not None
        assert await memory_store.get_identity_by_email(agent.email) is not None
        assert await memory_store.get_identity_by_email(other_agent.email) is not None

    @pytest.mark.asyncio
    async def test_unknown_user(self, admin):
        with pytest.raises(NotFoundError):
            await account_service.delete_account(admin, uuid4(), hard_delete=True)


class TestListAccounts:
    @pytest.mark.asyncio
    async def test_newest_first(self, admin):
        await make_account("second@empresa.com")
        accounts = await account_service.list_accounts()
        assert [a.email for a in accounts] == ["second@empresa.com", "admin@empresa.com"]
