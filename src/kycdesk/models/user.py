"""
kycdesk/models/user.py — Модели учётных записей (агенты и администраторы).

Входные схемы намеренно «мягкие» (пустые строки по умолчанию): правила
формы проверяются в ``account_service`` и возвращаются как
локализованный ``ValidationError``.
"""

from datetime import datetime
from uuid import UUID

from pydantic import Field, computed_field, field_validator

from kycdesk.models.common import CredentialsInput, KycDeskBase
from kycdesk.models.enums import UserRole


class UserRead(KycDeskBase):
    """Профиль учётной записи (строка users)."""
    id: UUID
    email: str
    name: str
    role: UserRole
    is_active: bool = True
    created_at: datetime | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def role_label(self) -> str:
        return self.role.label


class AccountCreate(CredentialsInput):
    """Создание учётной записи администратором."""
    email: str = Field(default="", examples=["agente@empresa.com"])
    password: str = Field(default="")
    confirm_password: str | None = Field(
        default=None,
        description="Если передано — должно совпадать с password",
    )
    name: str = Field(default="", examples=["María López"])
    role: str = Field(default="", examples=["1"])

    @field_validator("email", "name", "role")
    @classmethod
    def _strip(cls, value: str) -> str:
        return value.strip()


class AccountActiveUpdate(KycDeskBase):
    """Включение / отключение учётной записи."""
    user_id: UUID
    email: str | None = Field(
        default=None,
        description="Если передано — должно совпадать с email профиля",
    )
    is_active: bool


class LoginRequest(CredentialsInput):
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def _strip_email(cls, value: str) -> str:
        return value.strip()


class PasswordRecoveryRequest(KycDeskBase):
    email: str = Field(default="", examples=["agente@empresa.com"])


class PasswordResetConfirm(CredentialsInput):
    """Новый пароль по ссылке из письма восстановления."""
    token: str = Field(default="")
    password: str = Field(default="")
    confirm_password: str = Field(default="")

    @field_validator("token")
    @classmethod
    def _strip_token(cls, value: str) -> str:
        return value.strip()


class TokenPair(KycDeskBase):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class LoginResponse(TokenPair):
    user: UserRead
