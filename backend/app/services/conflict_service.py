from __future__ import annotations

from datetime import date
import logging

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.models.time_slot import TimeSlot
from app.models.timetable_entry import DAY_ORDER, DayOfWeek, EntryType, TimetableEntry
from app.schemas.conflict import (
    Alternative,
    AlternativeTimeSlot,
    ConflictCheckRequest,
    ConflictDetail,
    ConflictingEntry,
    ConflictingExamPeriod,
    ConflictingHoliday,
    ConflictReport,
    ConflictSummary,
    FacultySlotProbe,
)
from app.services.calendar import blocking_exam_periods, holidays_on
from app.services.lookups import active_time_slots, get_active_time_slot, get_batch, get_faculty

logger = logging.getLogger(__name__)


class ConflictService:
    """Decides whether a placement is legal and proposes free cells when it is not.

    Read-only: callers run it inside the same transaction as the write it gates.
    """

    def __init__(self, db: Session, *, alternative_day_limit: int | None = None):
        self.db = db
        if alternative_day_limit is None:
            alternative_day_limit = get_settings().alternative_day_limit
        self.alternative_day_limit = max(0, alternative_day_limit)

    def _window_filters(
        self,
        *,
        on_date: date | None,
        exclude_entry_id: str | None,
        time_slot_id: str | None = None,
        day_of_week: DayOfWeek | None = None,
    ) -> list:
        filters = [TimetableEntry.is_active.is_(True)]
        if time_slot_id is not None:
            filters.append(TimetableEntry.time_slot_id == time_slot_id)
        if day_of_week is not None:
            filters.append(TimetableEntry.day_of_week == day_of_week)
        if on_date is not None:
            filters.append(TimetableEntry.date == on_date)
        if exclude_entry_id:
            filters.append(TimetableEntry.id != exclude_entry_id)
        return filters

    def _entries_for(self, column, owner_id: str, request: ConflictCheckRequest) -> list[TimetableEntry]:
        filters = self._window_filters(
            on_date=request.date,
            exclude_entry_id=request.exclude_entry_id,
            time_slot_id=request.time_slot_id,
            day_of_week=request.day_of_week,
        )
        statement = select(TimetableEntry).where(column == owner_id, *filters).order_by(TimetableEntry.created_at)
        return list(self.db.execute(statement).scalars())

    def _weekly_faculty_entries_on(self, request: ConflictCheckRequest) -> list[TimetableEntry]:
        """Weekly entries of the faculty that still run on the requested date.

        A weekly entry stops applying on a date when its batch has a pinned entry
        in the same slot. The requesting batch is skipped because the placement
        under check is itself such an override.
        """
        filters = self._window_filters(
            on_date=None,
            exclude_entry_id=request.exclude_entry_id,
            time_slot_id=request.time_slot_id,
            day_of_week=request.day_of_week,
        )
        weekly = list(
            self.db.execute(
                select(TimetableEntry)
                .where(
                    TimetableEntry.faculty_id == request.faculty_id,
                    TimetableEntry.batch_id != request.batch_id,
                    TimetableEntry.date.is_(None),
                    *filters,
                )
                .order_by(TimetableEntry.created_at)
            ).scalars()
        )
        if not weekly:
            return []
        overridden = set(
            self.db.execute(
                select(TimetableEntry.batch_id).where(
                    TimetableEntry.batch_id.in_({entry.batch_id for entry in weekly}),
                    *self._window_filters(
                        on_date=request.date,
                        exclude_entry_id=request.exclude_entry_id,
                        time_slot_id=request.time_slot_id,
                    ),
                )
            ).scalars()
        )
        return [entry for entry in weekly if entry.batch_id not in overridden]

    def detect_conflicts(self, request: ConflictCheckRequest) -> list[ConflictDetail]:
        """Dated checks see entries pinned to that date plus, for the faculty, weekly
        entries still running that day. Weekly checks see every entry on the weekday.
        """
        conflicts: list[ConflictDetail] = []
        batch = get_batch(self.db, request.batch_id)

        batch_hits = self._entries_for(TimetableEntry.batch_id, request.batch_id, request)
        if batch_hits:
            conflicts.append(
                ConflictDetail(
                    type="BATCH_DOUBLE_BOOKING",
                    severity="error",
                    message="Batch already has a class at this time",
                    entries=[ConflictingEntry.model_validate(item) for item in batch_hits],
                )
            )

        if request.faculty_id:
            faculty_hits = self._entries_for(TimetableEntry.faculty_id, request.faculty_id, request)
            if request.date is not None:
                faculty_hits += self._weekly_faculty_entries_on(request)
            if faculty_hits:
                conflicts.append(
                    ConflictDetail(
                        type="FACULTY_CONFLICT",
                        severity="error",
                        message="Faculty is already teaching another class at this time",
                        entries=[ConflictingEntry.model_validate(item) for item in faculty_hits],
                    )
                )

        # Calendar rules only apply to a concrete date, not to the weekly template.
        if request.date is not None:
            holidays = holidays_on(self.db, on_date=request.date, batch=batch)
            if holidays:
                conflicts.append(
                    ConflictDetail(
                        type="HOLIDAY_SCHEDULING",
                        severity="warning",
                        message=f"This date is a holiday: {', '.join(item.name for item in holidays)}",
                        holidays=[ConflictingHoliday.model_validate(item) for item in holidays],
                    )
                )

            if request.entry_type == EntryType.regular:
                exam_periods = blocking_exam_periods(self.db, on_date=request.date, batch=batch)
                if exam_periods:
                    conflicts.append(
                        ConflictDetail(
                            type="EXAM_PERIOD_CONFLICT",
                            severity="error",
                            message=(
                                "Regular classes are blocked during exam period: "
                                f"{', '.join(item.name for item in exam_periods)}"
                            ),
                            exam_periods=[ConflictingExamPeriod.model_validate(item) for item in exam_periods],
                        )
                    )
        return conflicts

    def _occupied_cells(self, request: ConflictCheckRequest) -> set[tuple[str, DayOfWeek]]:
        owners = [TimetableEntry.batch_id == request.batch_id]
        if request.faculty_id:
            owners.append(TimetableEntry.faculty_id == request.faculty_id)
        filters = self._window_filters(on_date=None, exclude_entry_id=request.exclude_entry_id)
        if request.date is not None:
            # Other days of a dated request are judged by the weekly template.
            filters.append(or_(TimetableEntry.date == request.date, TimetableEntry.date.is_(None)))
        rows = self.db.execute(
            select(TimetableEntry.time_slot_id, TimetableEntry.day_of_week).where(or_(*owners), *filters)
        ).all()
        return {(time_slot_id, day_of_week) for time_slot_id, day_of_week in rows}

    def suggest_alternatives(self, request: ConflictCheckRequest) -> list[Alternative]:
        """Free cells for both the batch and the faculty, ignoring calendar rules.

        Every free slot on the same day is returned in slot order. Only when the
        day has none are other days tried for the same slot, up to the day limit.
        """
        occupied = self._occupied_cells(request)

        same_day: list[Alternative] = []
        for slot in active_time_slots(self.db):
            if slot.id == request.time_slot_id:
                continue
            if (slot.id, request.day_of_week) in occupied:
                continue
            same_day.append(self._alternative(slot, request.day_of_week, same_day=True))
        if same_day:
            return same_day

        slot = self.db.get(TimeSlot, request.time_slot_id)
        if slot is None:
            return []
        other_days: list[Alternative] = []
        for day in DAY_ORDER:
            if len(other_days) >= self.alternative_day_limit:
                break
            if day == request.day_of_week or (slot.id, day) in occupied:
                continue
            other_days.append(self._alternative(slot, day, same_day=False))
        return other_days

    @staticmethod
    def _alternative(slot: TimeSlot, day: DayOfWeek, *, same_day: bool) -> Alternative:
        return Alternative(
            day_of_week=day,
            time_slot=AlternativeTimeSlot.model_validate(slot),
            same_day=same_day,
        )

    def check(self, request: ConflictCheckRequest) -> ConflictReport:
        get_active_time_slot(self.db, request.time_slot_id)
        if request.faculty_id:
            get_faculty(self.db, request.faculty_id)

        conflicts = self.detect_conflicts(request)
        error_count = sum(1 for item in conflicts if item.severity == "error")
        warning_count = len(conflicts) - error_count

        alternatives: list[Alternative] = []
        if error_count:
            alternatives = self.suggest_alternatives(request)
            logger.info(
                "Placement blocked for batch %s slot %s on %s: %s (%d alternatives)",
                request.batch_id,
                request.time_slot_id,
                request.date.isoformat() if request.date else request.day_of_week.value,
                ", ".join(item.type for item in conflicts if item.severity == "error"),
                len(alternatives),
            )

        return ConflictReport(
            has_conflicts=bool(conflicts),
            conflicts=conflicts,
            alternatives=alternatives,
            summary=ConflictSummary(
                error_count=error_count,
                warning_count=warning_count,
                alternative_count=len(alternatives),
            ),
        )

    def check_faculty_slot(
        self,
        *,
        faculty_id: str,
        day_of_week: DayOfWeek,
        time_slot_id: str,
        exclude_entry_id: str | None = None,
    ) -> FacultySlotProbe:
        filters = self._window_filters(
            on_date=None,
            exclude_entry_id=exclude_entry_id,
            time_slot_id=time_slot_id,
            day_of_week=day_of_week,
        )
        entry = self.db.execute(
            select(TimetableEntry).where(TimetableEntry.faculty_id == faculty_id, *filters).limit(1)
        ).scalar_one_or_none()
        if entry is None:
            return FacultySlotProbe(has_conflict=False)
        return FacultySlotProbe(
            has_conflict=True,
            conflict_type="FACULTY_CONFLICT",
            entry=ConflictingEntry.model_validate(entry),
        )
