from __future__ import annotations

from datetime import date
import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.models.time_slot import TimeSlot
from app.models.timetable_entry import DAY_ORDER, DayOfWeek, EntryType, TimetableEntry, occurrence_key_for
from app.models.user import User
from app.schemas.conflict import ConflictCheckRequest, ConflictDetail
from app.schemas.timetable import TimetableEntryBase
from app.services.audit import log_activity
from app.services.conflict_service import ConflictService
from app.services.lookups import get_active_time_slot, get_batch, get_faculty, get_subject_for_batch

logger = logging.getLogger(__name__)


def _validate_references(db: Session, payload: TimetableEntryBase) -> None:
    get_batch(db, payload.batch_id)
    if payload.entry_type == EntryType.event:
        if not (payload.custom_event_title or "").strip():
            raise ValidationError("Events require a custom_event_title")
    elif not payload.subject_id or not payload.faculty_id:
        raise ValidationError("Classes require both subject_id and faculty_id")

    if payload.subject_id:
        get_subject_for_batch(db, subject_id=payload.subject_id, batch_id=payload.batch_id)
    if payload.faculty_id:
        get_faculty(db, payload.faculty_id)
    get_active_time_slot(db, payload.time_slot_id)


def _gate_placement(db: Session, payload: TimetableEntryBase, *, exclude_entry_id: str | None) -> list[ConflictDetail]:
    report = ConflictService(db).check(
        ConflictCheckRequest(
            batch_id=payload.batch_id,
            faculty_id=payload.faculty_id,
            time_slot_id=payload.time_slot_id,
            day_of_week=payload.day_of_week,
            date=payload.date,
            entry_type=payload.entry_type,
            exclude_entry_id=exclude_entry_id,
        )
    )
    if report.is_blocking:
        raise ConflictError(
            "Scheduling conflicts detected",
            details={
                "conflicts": [item.model_dump(mode="json") for item in report.conflicts],
                "alternatives": [item.model_dump(mode="json") for item in report.alternatives],
            },
        )
    return [item for item in report.conflicts if item.severity == "warning"]


def _flush_placement(db: Session, entry: TimetableEntry, payload: TimetableEntryBase) -> None:
    try:
        with db.begin_nested():
            _apply_payload(entry, payload)
            db.add(entry)
    except IntegrityError as exc:
        logger.warning("Unique cell constraint rejected entry for batch %s: %s", payload.batch_id, exc.orig)
        raise ConflictError(
            "A timetable entry already exists for this time slot",
            details={
                "batch_id": payload.batch_id,
                "time_slot_id": payload.time_slot_id,
                "day_of_week": payload.day_of_week.value,
                "date": payload.date.isoformat() if payload.date else None,
            },
        ) from exc


def _apply_payload(entry: TimetableEntry, payload: TimetableEntryBase) -> None:
    entry.batch_id = payload.batch_id
    entry.subject_id = payload.subject_id
    entry.faculty_id = payload.faculty_id
    entry.time_slot_id = payload.time_slot_id
    entry.day_of_week = payload.day_of_week
    entry.date = payload.date
    entry.occurrence_key = occurrence_key_for(payload.date)
    entry.entry_type = payload.entry_type
    entry.notes = payload.notes
    entry.custom_event_title = payload.custom_event_title
    entry.requires_attendance = payload.requires_attendance


def create_entry(
    db: Session,
    payload: TimetableEntryBase,
    *,
    actor: User | None,
) -> tuple[TimetableEntry, list[ConflictDetail]]:
    _validate_references(db, payload)
    warnings = _gate_placement(db, payload, exclude_entry_id=None)

    entry = TimetableEntry(is_active=True, created_by_id=actor.id if actor else None)
    _flush_placement(db, entry, payload)
    log_activity(
        db,
        user=actor,
        action="timetable_entry.create",
        entity_type="timetable_entry",
        entity_id=entry.id,
        details={"warnings": [item.type for item in warnings]},
    )
    return entry, warnings


def get_entry(db: Session, entry_id: str) -> TimetableEntry:
    entry = db.get(TimetableEntry, entry_id)
    if entry is None:
        raise NotFoundError.for_resource("Timetable entry", entry_id)
    return entry


def update_entry(
    db: Session,
    entry_id: str,
    payload: TimetableEntryBase,
    *,
    actor: User | None,
) -> tuple[TimetableEntry, list[ConflictDetail]]:
    entry = get_entry(db, entry_id)
    if not entry.is_active:
        raise NotFoundError("Timetable entry is inactive", details={"entry_id": entry_id})
    _validate_references(db, payload)
    warnings = _gate_placement(db, payload, exclude_entry_id=entry.id)

    _flush_placement(db, entry, payload)
    log_activity(
        db,
        user=actor,
        action="timetable_entry.update",
        entity_type="timetable_entry",
        entity_id=entry.id,
        details={"warnings": [item.type for item in warnings]},
    )
    return entry, warnings


def deactivate_entry(db: Session, entry_id: str, *, actor: User | None) -> TimetableEntry:
    entry = get_entry(db, entry_id)
    if entry.is_active:
        entry.is_active = False
        db.flush()
        log_activity(
            db,
            user=actor,
            action="timetable_entry.deactivate",
            entity_type="timetable_entry",
            entity_id=entry.id,
        )
    return entry


def _day_rank(day: DayOfWeek) -> int:
    return DAY_ORDER.index(day)


def list_entries(
    db: Session,
    *,
    batch_id: str | None = None,
    faculty_id: str | None = None,
    subject_id: str | None = None,
    day_of_week: DayOfWeek | None = None,
    entry_type: EntryType | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    include_inactive: bool = False,
) -> list[TimetableEntry]:
    statement = select(TimetableEntry, TimeSlot.sort_order).join(TimeSlot, TimeSlot.id == TimetableEntry.time_slot_id)
    if not include_inactive:
        statement = statement.where(TimetableEntry.is_active.is_(True))
    if batch_id:
        statement = statement.where(TimetableEntry.batch_id == batch_id)
    if faculty_id:
        statement = statement.where(TimetableEntry.faculty_id == faculty_id)
    if subject_id:
        statement = statement.where(TimetableEntry.subject_id == subject_id)
    if day_of_week:
        statement = statement.where(TimetableEntry.day_of_week == day_of_week)
    if entry_type:
        statement = statement.where(TimetableEntry.entry_type == entry_type)
    if date_from:
        statement = statement.where(TimetableEntry.date >= date_from)
    if date_to:
        statement = statement.where(TimetableEntry.date <= date_to)

    rows = db.execute(statement).all()
    rows.sort(key=lambda row: (_day_rank(row[0].day_of_week), row[1], row[0].date or date.min))
    return [entry for entry, _ in rows]


def effective_entries(db: Session, *, batch_id: str, on_date: date) -> list[TimetableEntry]:
    """Active entries that apply to a batch on a concrete date.

    Date-pinned entries win over the weekly template for the same time slot.
    """
    weekday = DayOfWeek.from_date(on_date)
    candidates = db.execute(
        select(TimetableEntry).where(
            TimetableEntry.batch_id == batch_id,
            TimetableEntry.is_active.is_(True),
            TimetableEntry.day_of_week == weekday,
            (TimetableEntry.date == on_date) | (TimetableEntry.date.is_(None)),
        )
    ).scalars()
    pinned: dict[str, TimetableEntry] = {}
    weekly: dict[str, TimetableEntry] = {}
    for entry in candidates:
        target = pinned if entry.date is not None else weekly
        target[entry.time_slot_id] = entry
    merged = {**weekly, **pinned}
    return list(merged.values())


def scheduled_entry_for_slot(
    db: Session,
    *,
    batch_id: str,
    subject_id: str,
    time_slot_id: str,
    on_date: date,
) -> TimetableEntry | None:
    """The teaching entry that makes (subject, slot) markable on this date, if any."""
    for entry in effective_entries(db, batch_id=batch_id, on_date=on_date):
        if entry.entry_type == EntryType.event:
            continue
        if entry.subject_id == subject_id and entry.time_slot_id == time_slot_id:
            return entry
    return None


def subject_time_slot_ids(db: Session, *, batch_id: str, subject_id: str) -> list[str]:
    """Every time slot the subject has ever been placed in, in canonical slot order.

    EVENT entries are non-teaching and never contribute attendance slots.
    """
    rows = db.execute(
        select(TimetableEntry.time_slot_id, TimeSlot.sort_order)
        .join(TimeSlot, TimeSlot.id == TimetableEntry.time_slot_id)
        .where(
            TimetableEntry.batch_id == batch_id,
            TimetableEntry.subject_id == subject_id,
            TimetableEntry.is_active.is_(True),
            TimetableEntry.requires_attendance.is_(True),
            TimetableEntry.entry_type != EntryType.event,
        )
        .distinct()
        .order_by(TimeSlot.sort_order.asc())
    ).all()
    return list(dict.fromkeys(time_slot_id for time_slot_id, _ in rows))
