from datetime import date

import pytest
from sqlalchemy import select

from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.models.activity_log import ActivityLog
from app.models.timetable_entry import DayOfWeek, EntryType, TimetableEntry
from app.schemas.timetable import TimetableEntryCreate, TimetableEntryUpdate
from app.services import timetable_store

THURSDAY = date(2025, 8, 7)


def _payload(campus, **overrides) -> dict:
    values = {
        "batch_id": campus.batch_a.id,
        "subject_id": campus.maths.id,
        "faculty_id": campus.faculty_one.id,
        "time_slot_id": campus.slot_0930.id,
        "day_of_week": DayOfWeek.thursday,
    }
    values.update(overrides)
    return values


def test_create_entry_persists_and_audits(db, campus):
    entry, warnings = timetable_store.create_entry(
        db, TimetableEntryCreate(**_payload(campus)), actor=campus.faculty_user
    )
    db.commit()

    assert warnings == []
    stored = db.get(TimetableEntry, entry.id)
    assert stored.is_active
    assert stored.occurrence_key == "weekly"
    assert stored.created_by_id == campus.faculty_user.id
    log = db.execute(select(ActivityLog).where(ActivityLog.entity_id == entry.id)).scalar_one()
    assert log.action == "timetable_entry.create"
    assert log.details["actor_role"] == "faculty"


def test_second_placement_in_same_cell_is_rejected(db, campus):
    timetable_store.create_entry(db, TimetableEntryCreate(**_payload(campus)), actor=campus.admin)

    with pytest.raises(ConflictError) as excinfo:
        timetable_store.create_entry(
            db,
            TimetableEntryCreate(**_payload(campus, subject_id=campus.physics.id, faculty_id=campus.faculty_two.id)),
            actor=campus.admin,
        )

    details = excinfo.value.details
    assert details["conflicts"][0]["type"] == "BATCH_DOUBLE_BOOKING"
    assert {item["time_slot"]["id"] for item in details["alternatives"]} == {campus.slot_0830.id, campus.slot_1030.id}


def test_date_is_required_to_agree_with_weekday():
    with pytest.raises(ValueError):
        TimetableEntryCreate(
            batch_id="b",
            subject_id="s",
            faculty_id="f",
            time_slot_id="t",
            day_of_week=DayOfWeek.monday,
            date=THURSDAY,
        )

    derived = TimetableEntryCreate(batch_id="b", subject_id="s", faculty_id="f", time_slot_id="t", date=THURSDAY)
    assert derived.day_of_week == DayOfWeek.thursday


def test_update_excludes_the_entry_being_edited(db, campus):
    entry, _ = timetable_store.create_entry(db, TimetableEntryCreate(**_payload(campus)), actor=campus.admin)

    updated, warnings = timetable_store.update_entry(
        db,
        entry.id,
        TimetableEntryUpdate(**_payload(campus, notes="Moved to seminar hall")),
        actor=campus.admin,
    )

    assert updated.id == entry.id
    assert updated.notes == "Moved to seminar hall"
    assert warnings == []


def test_deactivated_entry_frees_the_cell(db, campus):
    entry, _ = timetable_store.create_entry(db, TimetableEntryCreate(**_payload(campus)), actor=campus.admin)
    timetable_store.deactivate_entry(db, entry.id, actor=campus.admin)

    replacement, _ = timetable_store.create_entry(
        db,
        TimetableEntryCreate(**_payload(campus, subject_id=campus.physics.id)),
        actor=campus.admin,
    )

    assert replacement.is_active
    with pytest.raises(NotFoundError):
        timetable_store.update_entry(db, entry.id, TimetableEntryUpdate(**_payload(campus)), actor=campus.admin)


def test_classes_need_subject_and_faculty_while_events_need_a_title(db, campus):
    with pytest.raises(ValidationError):
        timetable_store.create_entry(
            db, TimetableEntryCreate(**_payload(campus, faculty_id=None)), actor=campus.admin
        )
    with pytest.raises(ValidationError):
        timetable_store.create_entry(
            db,
            TimetableEntryCreate(
                **_payload(campus, subject_id=None, faculty_id=None, entry_type=EntryType.event)
            ),
            actor=campus.admin,
        )

    event, _ = timetable_store.create_entry(
        db,
        TimetableEntryCreate(
            **_payload(
                campus,
                subject_id=None,
                faculty_id=None,
                entry_type=EntryType.event,
                custom_event_title="Tech Fest Briefing",
                requires_attendance=False,
            )
        ),
        actor=campus.admin,
    )
    assert event.custom_event_title == "Tech Fest Briefing"


def test_subject_from_another_batch_is_rejected(db, campus):
    with pytest.raises(NotFoundError):
        timetable_store.create_entry(
            db,
            TimetableEntryCreate(**_payload(campus, subject_id=campus.maths_b.id)),
            actor=campus.admin,
        )


def test_unique_cell_index_backstops_a_bypassed_check(db, campus, monkeypatch):
    monkeypatch.setattr(timetable_store, "_gate_placement", lambda *args, **kwargs: [])
    timetable_store.create_entry(db, TimetableEntryCreate(**_payload(campus)), actor=campus.admin)

    with pytest.raises(ConflictError) as excinfo:
        timetable_store.create_entry(
            db,
            TimetableEntryCreate(**_payload(campus, subject_id=campus.physics.id, faculty_id=campus.faculty_two.id)),
            actor=campus.admin,
        )

    assert excinfo.value.message == "A timetable entry already exists for this time slot"
    active = db.execute(select(TimetableEntry).where(TimetableEntry.is_active.is_(True))).scalars().all()
    assert len(active) == 1


def test_effective_entries_prefer_date_pinned_placements(db, campus, add_entry):
    weekly_maths = add_entry(
        batch=campus.batch_a,
        time_slot=campus.slot_0930,
        day_of_week=DayOfWeek.thursday,
        subject=campus.maths,
        faculty=campus.faculty_one,
    )
    weekly_physics = add_entry(
        batch=campus.batch_a,
        time_slot=campus.slot_1030,
        day_of_week=DayOfWeek.thursday,
        subject=campus.physics,
        faculty=campus.faculty_two,
    )
    makeup = add_entry(
        batch=campus.batch_a,
        time_slot=campus.slot_0930,
        on_date=THURSDAY,
        subject=campus.physics,
        faculty=campus.faculty_two,
        entry_type=EntryType.makeup,
    )

    on_the_day = {item.id for item in timetable_store.effective_entries(db, batch_id=campus.batch_a.id, on_date=THURSDAY)}
    next_week = {
        item.id for item in timetable_store.effective_entries(db, batch_id=campus.batch_a.id, on_date=date(2025, 8, 14))
    }

    assert on_the_day == {makeup.id, weekly_physics.id}
    assert next_week == {weekly_maths.id, weekly_physics.id}


def test_list_entries_orders_by_day_then_slot(db, campus, add_entry):
    friday = add_entry(
        batch=campus.batch_a,
        time_slot=campus.slot_0830,
        day_of_week=DayOfWeek.friday,
        subject=campus.maths,
        faculty=campus.faculty_one,
    )
    monday_late = add_entry(
        batch=campus.batch_a,
        time_slot=campus.slot_1030,
        day_of_week=DayOfWeek.monday,
        subject=campus.physics,
        faculty=campus.faculty_two,
    )
    monday_early = add_entry(
        batch=campus.batch_a,
        time_slot=campus.slot_0830,
        day_of_week=DayOfWeek.monday,
        subject=campus.maths,
        faculty=campus.faculty_one,
    )

    entries = timetable_store.list_entries(db, batch_id=campus.batch_a.id)

    assert [item.id for item in entries] == [monday_early.id, monday_late.id, friday.id]
    assert timetable_store.list_entries(db, faculty_id=campus.faculty_two.id)[0].id == monday_late.id
