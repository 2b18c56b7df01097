"""
kycdesk/models/common.py — Базовые типы домена KYC Desk.
"""

from pydantic import BaseModel

EMAIL_PATTERN = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"


class KycDeskBase(BaseModel):
    """Базовая Pydantic-модель для схем KYC Desk."""

    model_config = {"str_strip_whitespace": True}


class CredentialsInput(KycDeskBase):
    """
    Схемы с паролями: строки не обрезаются глобально.

    Пароль хранится ровно в том виде, в каком его ввели; обрезку
    остальных полей наследники делают через ``field_validator``.
    """

    model_config = {"str_strip_whitespace": False}
