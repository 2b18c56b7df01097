"""
kycdesk/services/audit_logger.py — Аудит-лог KYC Desk.

Действия:
    • link.create, link.delete, report.download, email.send
    • account.create, account.enable, account.disable, account.delete

Пишет в таблицу audit_log; при недоступности БД (или в режиме
memory store) — в in-memory буфер.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class AuditAction(str, Enum):
    """Типы аудируемых действий."""

    # Verification links
    LINK_CREATE = "link.create"
    LINK_DELETE = "link.delete"
    REPORT_DOWNLOAD = "report.download"
    EMAIL_SEND = "email.send"

    # Accounts
    ACCOUNT_CREATE = "account.create"
    ACCOUNT_ENABLE = "account.enable"
    ACCOUNT_DISABLE = "account.disable"
    ACCOUNT_DELETE = "account.delete"
    PASSWORD_RESET = "account.password_reset"


class AuditLogger:
    """
    Аудит-логгер.

    Поддерживает:
    - PostgreSQL (audit_log)
    - In-memory буфер (fallback)
    """

    def __init__(self, max_buffer_size: int = 10000) -> None:
        self._buffer: list[dict[str, Any]] = []
        self._max_buffer = max_buffer_size
        self.persistent = True

    async def log(
        self,
        action: AuditAction | str,
        entity_type: str,
        entity_id: str,
        user_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Записать аудит-событие."""
        action_str = action.value if isinstance(action, AuditAction) else action
        record = {
            "action": action_str,
            "entity_type": entity_type,
            "entity_id": entity_id,
            "user_id": user_id,
            "details": details or {},
            "created_at": datetime.now(timezone.utc).isoformat(),
        }

        if not self.persistent:
            self._write_to_buffer(record)
            return

        try:
            await self._write_to_db(record)
        except Exception as e:
            logger.warning("Audit DB write failed, buffering: %s", e)
            self._write_to_buffer(record)

    async def _write_to_db(self, record: dict[str, Any]) -> None:
        """Записать в PostgreSQL."""
        from kycdesk.database import get_connection

        async with get_connection() as conn:
            await conn.execute(
                """
                INSERT INTO audit_log (action, entity_type, entity_id, user_id, details)
                VALUES ($1, $2, $3, $4, $5::jsonb)
                """,
                record["action"],
                record["entity_type"],
                record["entity_id"],
                record["user_id"],
                json.dumps(record["details"], default=str),
            )

    def _write_to_buffer(self, record: dict[str, Any]) -> None:
        """Fallback в in-memory буфер."""
        if len(self._buffer) >= self._max_buffer:
            self._buffer.pop(0)
        self._buffer.append(record)

    @property
    def buffered(self) -> list[dict[str, Any]]:
        return list(self._buffer)

    def clear_buffer(self) -> None:
        self._buffer.clear()


# ═══════════════════════════════════════════════════════════════════════════════
# Singleton
# ═══════════════════════════════════════════════════════════════════════════════

_audit_logger: AuditLogger | None = None


def get_audit_logger() -> AuditLogger:
    """Получить единственный экземпляр AuditLogger."""
    global _audit_logger
    if _audit_logger is None:
        _audit_logger = AuditLogger()
    return _audit_logger
