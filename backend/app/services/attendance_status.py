from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Mapping

from app.models.attendance import AttendanceStatus, FullDayStatus


def resolve_full_day(per_slot_statuses: Mapping[str, AttendanceStatus | str]) -> FullDayStatus:
    """Collapse one student's per-slot marks for a day into a single status.

    An empty map counts as absent. A single distinct status is returned as is.
    When statuses disagree, medical wins over any mixture; otherwise the
    result is ``mixed`` and callers need the slot-level detail.
    """
    distinct = {AttendanceStatus(value) for value in per_slot_statuses.values()}
    if not distinct:
        return FullDayStatus.absent
    if len(distinct) == 1:
        return FullDayStatus(distinct.pop().value)
    if AttendanceStatus.medical in distinct:
        return FullDayStatus.medical
    return FullDayStatus.mixed


def count_full_day_statuses(resolved: Iterable[FullDayStatus]) -> dict[FullDayStatus, int]:
    counts = Counter(resolved)
    return {status: counts.get(status, 0) for status in FullDayStatus}


def attendance_percentage(present_count: int, total_students: int) -> int:
    if total_students <= 0:
        return 0
    return round(present_count * 100 / total_students)
