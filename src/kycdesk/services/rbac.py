"""
kycdesk/services/rbac.py — Роли и права KYC Desk.

Три роли: агент ('1'), оператор ('2'), организация ('3'). Операторы и
организации — «повышенные» роли: видят записи всех агентов и управляют
учётными записями. Агент видит только свои записи.
"""

from __future__ import annotations

import logging

from fastapi import Depends, HTTPException, status

from kycdesk.models.enums import UserRole

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# Роли и иерархия
# ═══════════════════════════════════════════════════════════════════════════════

ROLE_HIERARCHY: dict[str, int] = {
    UserRole.AGENT: 0,
    UserRole.OPERATOR_ADMIN: 1,
    UserRole.ORGANIZATION_ADMIN: 1,
}


# ═══════════════════════════════════════════════════════════════════════════════
# Permissions
# ═══════════════════════════════════════════════════════════════════════════════

PERMISSIONS: dict[str, str] = {
    "links.create": UserRole.AGENT,
    "links.read_own": UserRole.AGENT,
    "links.read_all": UserRole.OPERATOR_ADMIN,
    "links.delete": UserRole.OPERATOR_ADMIN,
    "reports.download": UserRole.AGENT,
    "admin.manage_users": UserRole.OPERATOR_ADMIN,
}


# ═══════════════════════════════════════════════════════════════════════════════
# Вспомогательные функции
# ═══════════════════════════════════════════════════════════════════════════════

def has_role(user, required_role: str) -> bool:
    """Проверяет, имеет ли пользователь достаточный уровень роли."""
    user_role = getattr(user, "role", None) or UserRole.AGENT
    user_level = ROLE_HIERARCHY.get(user_role, 0)
    required_level = ROLE_HIERARCHY.get(required_role, 0)
    return user_level >= required_level


def has_permission(user, permission: str) -> bool:
    """Проверяет, имеет ли пользователь указанное разрешение."""
    required_role = PERMISSIONS.get(permission)
    if required_role is None:
        logger.warning("Unknown permission requested: %s", permission)
        return False
    return has_role(user, required_role)


def sees_all_records(user) -> bool:
    """Область видимости: повышенные роли видят все записи."""
    return has_permission(user, "links.read_all")


def require_permission(permission: str, fresh: bool = False):
    """
    FastAPI dependency: требует конкретное разрешение.

    ``fresh=True`` — профиль читается из БД в обход кеша (привилегированные
    операции).
    """
    from kycdesk.dependencies import get_current_user, get_current_user_fresh

    dependency = get_current_user_fresh if fresh else get_current_user

    async def _check(user=Depends(dependency)):
        if not has_permission(user, permission):
            logger.warning(
                "RBAC: user %s denied permission '%s'",
                getattr(user, "email", "?"), permission,
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission '{permission}' required",
            )
        return user
    return _check
