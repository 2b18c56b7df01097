"""
═══════════════════════════════════════════════════════════════════════════════
KYC Desk — In-Memory хранилище (замена PostgreSQL для локальной разработки)
═══════════════════════════════════════════════════════════════════════════════

In-memory реализации user_repo, auth_identity_repo и verification_repo +
функция ``activate_memory_store()`` для monkey-patching. Те же контракты,
что и у SQL-версий, включая уникальность email и ``kyc_id``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from uuid import UUID, uuid4

from kycdesk.exceptions import PersistenceError, RecordNotFound

logger = logging.getLogger(__name__)

# ═══════════════════════════════════════════════════════════════════════════════
# Хранилища данных
# ═══════════════════════════════════════════════════════════════════════════════
_users: dict[UUID, dict] = {}
_identities: dict[UUID, dict] = {}
_records: dict[UUID, dict] = {}

_now = lambda: datetime.now(timezone.utc)  # noqa: E731


def reset_memory_store() -> None:
    """Очищает все in-memory таблицы."""
    _users.clear()
    _identities.clear()
    _records.clear()


# ═══════════════════════════════════════════════════════════════════════════════
# user_repo in-memory
# ═══════════════════════════════════════════════════════════════════════════════

async def create_user(email: str, name: str, role: str, is_active: bool = True) -> dict:
    if any(u["email"] == email for u in _users.values()):
        raise PersistenceError(
            "Unique constraint violated", details={"constraint": "users_email_key"}
        )
    uid = uuid4()
    user = {
        "id": uid, "email": email, "name": name, "role": role,
        "is_active": is_active, "created_at": _now(),
    }
    _users[uid] = user
    logger.info("Memory store: created user %s <%s>", name, email)
    return dict(user)


async def get_user_by_id(user_id: UUID) -> dict | None:
    user = _users.get(user_id)
    return dict(user) if user else None


async def get_user_by_email(email: str) -> dict | None:
    for u in _users.values():
        if u["email"] == email:
            return dict(u)
    return None


async def list_users() -> list[dict]:
    return [
        dict(u) for u in sorted(reversed(list(_users.values())), key=lambda u: u["created_at"], reverse=True)
    ]


async def set_active(user_id: UUID, is_active: bool) -> bool:
    if user_id not in _users:
        return False
    _users[user_id]["is_active"] = is_active
    return True


async def delete_user(user_id: UUID) -> bool:
    return _users.pop(user_id, None) is not None


# ═══════════════════════════════════════════════════════════════════════════════
# auth_identity_repo in-memory
# ═══════════════════════════════════════════════════════════════════════════════

async def create_identity(
    email: str, password_hash: str, email_confirmed: bool = False,
) -> dict:
    if any(i["email"] == email for i in _identities.values()):
        raise PersistenceError(
            "Unique constraint violated",
            details={"constraint": "auth_identities_email_key"},
        )
    iid = uuid4()
    identity = {
        "id": iid, "email": email, "password_hash": password_hash,
        "email_confirmed": email_confirmed, "banned_until": None,
        "created_at": _now(),
    }
    _identities[iid] = identity
    return dict(identity)


async def get_identity_by_email(email: str) -> dict | None:
    for i in _identities.values():
        if i["email"] == email:
            return dict(i)
    return None


async def set_banned_until(identity_id: UUID, banned_until: datetime | None) -> None:
    if identity_id in _identities:
        _identities[identity_id]["banned_until"] = banned_until


async def set_password_hash(identity_id: UUID, password_hash: str) -> bool:
    if identity_id not in _identities:
        return False
    _identities[identity_id]["password_hash"] = password_hash
    return True


async def delete_identity(identity_id: UUID) -> bool:
    return _identities.pop(identity_id, None) is not None


# ═══════════════════════════════════════════════════════════════════════════════
# verification_repo in-memory
# ═══════════════════════════════════════════════════════════════════════════════

async def create_record(
    name: str,
    phone: str,
    user_email: str,
    agent_email: str,
    agent_name: str,
    kyc_url: str,
    kyc_id: str,
    kyc_status: str,
    downloaded: bool = False,
) -> dict:
    if any(r["kyc_id"] == kyc_id for r in _records.values()):
        raise PersistenceError(
            "Unique constraint violated",
            details={"constraint": "verified_users_kyc_id_key"},
        )
    rid = uuid4()
    record = {
        "id": rid, "name": name, "phone": phone, "user_email": user_email,
        "agent_email": agent_email, "agent_name": agent_name,
        "kyc_url": kyc_url, "kyc_id": kyc_id, "kyc_status": kyc_status,
        "date_sent": _now(), "downloaded": downloaded,
    }
    _records[rid] = record
    return dict(record)


async def list_by_owner_scope(owner_email: str, include_all: bool) -> list[dict]:
    # reversed: при равных date_sent более поздняя вставка идёт первой
    rows = [
        r for r in reversed(list(_records.values()))
        if include_all or r["agent_email"] == owner_email
    ]
    rows.sort(key=lambda r: r["date_sent"], reverse=True)
    return [dict(r) for r in rows]


async def get_record_by_id(record_id: UUID) -> dict | None:
    record = _records.get(record_id)
    return dict(record) if record else None


def _matching_session(kyc_id: str) -> list[dict]:
    """Записи с данным session id в порядке первичного ключа."""
    rows = sorted(
        (r for r in _records.values() if r["kyc_id"] == kyc_id),
        key=lambda r: r["id"],
    )
    return [dict(r) for r in rows]


async def update_status(kyc_id: str, new_status: str) -> dict:
    matches = _matching_session(kyc_id)
    if not matches:
        raise RecordNotFound(kyc_id)
    if len(matches) > 1:
        logger.warning(
            "Data-integrity anomaly: %d records share session_id=%s, updating id=%s only",
            len(matches), kyc_id, matches[0]["id"],
        )
    target = _records[matches[0]["id"]]
    previous = target["kyc_status"]
    target["kyc_status"] = new_status
    result = dict(target)
    result["previous_status"] = previous
    return result


async def mark_downloaded(record_id: UUID) -> None:
    if record_id in _records:
        _records[record_id]["downloaded"] = True


async def delete_record(record_id: UUID) -> bool:
    return _records.pop(record_id, None) is not None


# ═══════════════════════════════════════════════════════════════════════════════
# Активация in-memory хранилища (monkey-patching)
# ═══════════════════════════════════════════════════════════════════════════════

def activate_memory_store() -> None:
    """
    Подменяет функции в kycdesk.db.repositories.* на in-memory реализации.

    Вызывается из kycdesk.main → lifespan() при недоступности PostgreSQL
    и из тестов.
    """
    from kycdesk.db.repositories import auth_identity_repo, user_repo, verification_repo

    # ── user_repo ──
    user_repo.create_user = create_user
    user_repo.get_user_by_id = get_user_by_id
    user_repo.get_user_by_email = get_user_by_email
    user_repo.list_users = list_users
    user_repo.set_active = set_active
    user_repo.delete_user = delete_user

    # ── auth_identity_repo ──
    auth_identity_repo.create_identity = create_identity
    auth_identity_repo.get_identity_by_email = get_identity_by_email
    auth_identity_repo.set_banned_until = set_banned_until
    auth_identity_repo.set_password_hash = set_password_hash
    auth_identity_repo.delete_identity = delete_identity

    # ── verification_repo ──
    verification_repo.create = create_record
    verification_repo.list_by_owner_scope = list_by_owner_scope
    verification_repo.get_by_id = get_record_by_id
    verification_repo.update_status = update_status
    verification_repo.mark_downloaded = mark_downloaded
    verification_repo.delete = delete_record

    # ── audit_log → только буфер ──
    from kycdesk.services.audit_logger import get_audit_logger
    get_audit_logger().persistent = False

    logger.warning(
        "🧠 KYC Desk memory store ACTIVATED — all data is in-memory (lost on restart)."
    )
