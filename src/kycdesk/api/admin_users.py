"""
kycdesk/api/admin_users.py — Управление учётными записями (повышенные роли).

Профиль администратора на каждом запросе читается из БД в обход кеша.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from kycdesk.models.user import AccountActiveUpdate, AccountCreate, UserRead
from kycdesk.services import account_service
from kycdesk.services.rbac import require_permission

router = APIRouter(prefix="/admin/users", tags=["admin"])

_require_admin = require_permission("admin.manage_users", fresh=True)


@router.get("", response_model=list[UserRead], summary="Все учётные записи")
async def list_users(admin: UserRead = Depends(_require_admin)):
    return await account_service.list_accounts()


@router.post(
    "",
    response_model=UserRead,
    status_code=status.HTTP_201_CREATED,
    summary="Создать учётную запись",
)
async def create_user(body: AccountCreate, admin: UserRead = Depends(_require_admin)):
    """Email подтверждается сразу; пользователь может войти немедленно."""
    return await account_service.create_account(admin, body)


@router.patch("", summary="Включить или отключить учётную запись")
async def update_user_active(
    body: AccountActiveUpdate,
    admin: UserRead = Depends(_require_admin),
):
    await account_service.set_account_active(admin, body.user_id, body.email, body.is_active)
    return {"success": True}


@router.delete("", summary="Удалить учётную запись (мягко или жёстко)")
async def delete_user(
    user_id: UUID = Query(..., alias="id"),
    email: str | None = None,
    hard_delete: bool = False,
    admin: UserRead = Depends(_require_admin),
):
    await account_service.delete_account(admin, user_id, email=email, hard_delete=hard_delete)
    return {"success": True, "hard_delete": hard_delete}
