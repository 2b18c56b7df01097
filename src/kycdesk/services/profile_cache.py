"""
kycdesk/services/profile_cache.py — Кеш профилей аутентифицированных пользователей.

Read-through кеш по ключу идентичности (id пользователя). Источник истины —
таблица users; кеш лишь ускоряет ``get_current_user``:
    • инвалидируется при logout, ошибке загрузки и смене is_active / удалении;
    • наличие записи в кеше не является доказательством валидной сессии —
      привилегированные операции читают профиль напрямую.

Режим владельца: пока идёт явный вход (``explicit_login``), пассивные
обновления (``refresh``) того же ключа отбрасываются — согласование
профиля выполняет сам поток входа.
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Hashable

logger = logging.getLogger(__name__)

Loader = Callable[[], Awaitable[Any]]


class ProfileCache:
    def __init__(self, ttl_seconds: float = 300.0, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[Hashable, tuple[float, Any]] = {}
        self._explicit: set[Hashable] = set()

    def peek(self, key: Hashable) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, value = entry
        if self._clock() - stored_at > self.ttl_seconds:
            self._entries.pop(key, None)
            return None
        return value

    def put(self, key: Hashable, value: Any) -> None:
        if self.ttl_seconds <= 0 or value is None:
            return
        self._entries[key] = (self._clock(), value)

    def invalidate(self, key: Hashable) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()
        self._explicit.clear()

    async def get(self, key: Hashable, loader: Loader) -> Any:
        """Значение из кеша или из ``loader``; ошибка загрузки сбрасывает ключ."""
        cached = self.peek(key)
        if cached is not None:
            return cached
        try:
            value = await loader()
        except Exception:
            self.invalidate(key)
            raise
        self.put(key, value)
        return value

    async def refresh(self, key: Hashable, loader: Loader) -> Any | None:
        """
        Пассивное обновление (например, при refresh-токене).

        Во время явного входа для того же ключа — отбрасывается и
        возвращает ``None``.
        """
        if key in self._explicit:
            logger.debug("Profile refresh for %s skipped: explicit login in progress", key)
            return None
        self.invalidate(key)
        return await self.get(key, loader)

    @asynccontextmanager
    async def explicit_login(self, key: Hashable) -> AsyncIterator[None]:
        """Режим владельца: явный вход сам согласует профиль для ``key``."""
        self._explicit.add(key)
        try:
            yield
        finally:
            self._explicit.discard(key)

    def is_login_in_progress(self, key: Hashable) -> bool:
        return key in self._explicit


_cache: ProfileCache | None = None


def get_profile_cache() -> ProfileCache:
    """Единственный экземпляр ProfileCache."""
    global _cache
    if _cache is None:
        from kycdesk.config import get_settings
        _cache = ProfileCache(ttl_seconds=get_settings().profile_cache_ttl_seconds)
    return _cache
