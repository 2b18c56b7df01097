"""
kycdesk/services/status_filter.py — Фильтр и поиск по загруженным записям.

Чистые функции без побочных эффектов: входная коллекция не изменяется,
порядок сохраняется.
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Sequence, TypeVar

from kycdesk.models.enums import KycStatus, statuses_for_label

R = TypeVar("R")

SEARCH_FIELDS = ("name", "user_email", "phone")


def _field(record: Any, name: str) -> Any:
    if isinstance(record, Mapping):
        return record.get(name)
    return getattr(record, name, None)


def _status_value(value: Any) -> str | None:
    if isinstance(value, KycStatus):
        return value.value
    return value


def expand_display_labels(labels: Iterable[str]) -> list[str]:
    """
    Испанские подписи → канонические статусы.

    Неизвестная подпись передаётся как есть (и ничему не соответствует).
    """
    expanded: list[str] = []
    for label in labels:
        statuses = statuses_for_label(label)
        if statuses:
            expanded.extend(s.value for s in statuses)
        else:
            expanded.append(label)
    return expanded


def filter_records(
    records: Sequence[R],
    selected_statuses: Iterable[KycStatus | str],
    search_text: str = "",
) -> list[R]:
    """
    Фильтрует записи по статусам и строке поиска.

    Статусы — OR по выбранным (пустой выбор — без фильтра). Поиск —
    подстрока без учёта регистра в name, user_email или phone (OR).
    Оба фильтра вместе — AND.
    """
    wanted = {_status_value(s) for s in selected_statuses}
    needle = (search_text or "").strip().lower()

    result: list[R] = []
    for record in records:
        if wanted and _status_value(_field(record, "kyc_status")) not in wanted:
            continue
        if needle and not any(
            needle in str(_field(record, name) or "").lower() for name in SEARCH_FIELDS
        ):
            continue
        result.append(record)
    return result
