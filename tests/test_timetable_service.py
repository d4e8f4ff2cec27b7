"""Timetable lifecycle against an in-memory database.

A rejected write rolls the session back, which expires every loaded ORM object,
so tests copy the ids they need into locals first.
"""

import asyncio
import uuid

import pytest
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm.exc import StaleDataError

from schoolerp.api.v1.teachers.service import TeacherDirectory
from schoolerp.api.v1.timetables.schemas import TimetableCandidate, TimetableEntryCreate, TimetableEntryPatch
from schoolerp.api.v1.timetables.service import TimetableService
from schoolerp.api.v1.timetables.store import TimetableStore
from schoolerp.auth.scope import SchoolScope
from schoolerp.core.enums import ConflictType, ErrorCode
from schoolerp.core.exceptions import ConflictError, NotFoundError, StorageError, ValidationError
from schoolerp.core.models import TimetableEntry
from schoolerp.db.session import build_sessionmaker


def _payload(teacher_id, **overrides) -> TimetableEntryCreate:
    data = dict(
        class_name="Class 5",
        section="A",
        subject_name="Mathematics",
        teacher_id=teacher_id,
        day="monday",
        start_time="09:00",
        end_time="10:00",
        room_number="101",
    )
    data.update(overrides)
    return TimetableEntryCreate(**data)


async def test_create_returns_entry_with_names(service, school, make_teacher) -> None:
    teacher = await make_teacher(school)
    created = await service.create_entry(school.id, _payload(teacher.id))
    assert created.school_id == school.id
    assert created.school_name == "Green Valley School"
    assert created.teacher_name == "Anita Sharma"
    assert (created.day, created.start_time, created.end_time) == ("monday", "09:00", "10:00")


async def test_teacher_double_booking_is_rejected(service, school, make_teacher) -> None:
    teacher = await make_teacher(school)
    school_id, teacher_id = school.id, teacher.id
    first = await service.create_entry(school_id, _payload(teacher_id))

    with pytest.raises(ConflictError) as exc:
        await service.create_entry(
            school_id, _payload(teacher_id, class_name="Class 6", section="B", start_time="09:30", end_time="10:15")
        )
    assert exc.value.code == ErrorCode.TEACHER_CONFLICT
    assert exc.value.status_code == 409
    assert "Class 5-A" in exc.value.message
    assert exc.value.conflicts[0]["entry"]["id"] == str(first.id)

    # Back-to-back is fine
    later = await service.create_entry(
        school_id, _payload(teacher_id, class_name="Class 6", section="B", start_time="10:00", end_time="11:00")
    )
    assert later.start_time == "10:00"


async def test_class_double_booking_with_different_teachers(service, school, make_teacher) -> None:
    x = await make_teacher(school, "Ravi Kumar")
    y = await make_teacher(school, "Meera Iyer")
    school_id, x_id, y_id = school.id, x.id, y.id
    await service.create_entry(school_id, _payload(x_id, day="tuesday", start_time="11:00", end_time="12:00"))

    with pytest.raises(ConflictError) as exc:
        await service.create_entry(
            school_id,
            _payload(y_id, subject_name="Science", day="tuesday", start_time="11:30", end_time="12:30"),
        )
    assert exc.value.code == ErrorCode.CLASS_CONFLICT


async def test_teacher_scan_wins_when_both_conflict(service, school, make_teacher) -> None:
    teacher = await make_teacher(school)
    school_id, teacher_id = school.id, teacher.id
    await service.create_entry(school_id, _payload(teacher_id))

    with pytest.raises(ConflictError) as exc:
        await service.create_entry(school_id, _payload(teacher_id, start_time="09:15", end_time="09:45"))
    assert exc.value.code == ErrorCode.TEACHER_CONFLICT


async def test_absent_and_empty_section_are_the_same_class(service, school, make_teacher) -> None:
    x = await make_teacher(school, "Ravi Kumar")
    y = await make_teacher(school, "Meera Iyer")
    school_id, x_id, y_id = school.id, x.id, y.id
    created = await service.create_entry(school_id, _payload(x_id, section=None))
    assert created.section == ""

    with pytest.raises(ConflictError) as exc:
        await service.create_entry(school_id, _payload(y_id, section="", start_time="09:30", end_time="10:30"))
    assert exc.value.code == ErrorCode.CLASS_CONFLICT


async def test_day_and_times_are_normalized(service, school, make_teacher) -> None:
    teacher = await make_teacher(school)
    created = await service.create_entry(
        school.id, _payload(teacher.id, day="Wednesday", start_time="9:00", end_time="9:45")
    )
    assert (created.day, created.start_time, created.end_time) == ("wednesday", "09:00", "09:45")


async def test_end_must_be_after_start(service, school, make_teacher) -> None:
    teacher = await make_teacher(school)
    with pytest.raises(ValidationError):
        await service.create_entry(school.id, _payload(teacher.id, start_time="10:00", end_time="09:00"))
    with pytest.raises(ValidationError):
        await service.create_entry(school.id, _payload(teacher.id, start_time="10:00", end_time="10:00"))


async def test_inactive_teacher_is_not_assignable(service, school, make_teacher) -> None:
    teacher = await make_teacher(school, status="inactive")
    with pytest.raises(NotFoundError) as exc:
        await service.create_entry(school.id, _payload(teacher.id))
    assert exc.value.code == ErrorCode.TEACHER_NOT_FOUND


async def test_unknown_teacher(service, school) -> None:
    with pytest.raises(NotFoundError) as exc:
        await service.create_entry(school.id, _payload(uuid.uuid4()))
    assert exc.value.code == ErrorCode.TEACHER_NOT_FOUND


async def test_other_schools_teacher(service, school, other_school, make_teacher) -> None:
    outsider = await make_teacher(other_school, "Outside Teacher")
    with pytest.raises(NotFoundError) as exc:
        await service.create_entry(school.id, _payload(outsider.id))
    assert exc.value.code == ErrorCode.TEACHER_NOT_FOUND

    with pytest.raises(ValidationError) as exc:
        await service.create_entry(school.id, _payload(outsider.id), elevated=True)
    assert exc.value.code == ErrorCode.CROSS_TENANT_TEACHER


async def test_elevated_create_for_unknown_school(service, school, make_teacher) -> None:
    teacher = await make_teacher(school)
    with pytest.raises(NotFoundError) as exc:
        await service.create_entry(uuid.uuid4(), _payload(teacher.id), elevated=True)
    assert exc.value.code == ErrorCode.SCHOOL_NOT_FOUND


async def test_entries_are_invisible_across_schools(service, school, other_school, make_teacher) -> None:
    teacher = await make_teacher(other_school)
    entry = await service.create_entry(other_school.id, _payload(teacher.id))

    with pytest.raises(NotFoundError) as exc:
        await service.get_entry(SchoolScope.single(school.id), entry.id)
    assert exc.value.code == ErrorCode.ENTRY_NOT_FOUND
    with pytest.raises(NotFoundError):
        await service.delete_entry(school.id, entry.id)
    with pytest.raises(NotFoundError):
        await service.update_entry(school.id, entry.id, TimetableEntryPatch(room_number="1"))
    assert await service.list_entries(SchoolScope.single(school.id)) == []

    everywhere = await service.list_entries(SchoolScope.everywhere())
    assert [e.id for e in everywhere] == [entry.id]


async def test_same_slot_in_two_schools_is_allowed(service, school, other_school, make_teacher) -> None:
    a = await make_teacher(school)
    b = await make_teacher(other_school)
    await service.create_entry(school.id, _payload(a.id))
    created = await service.create_entry(other_school.id, _payload(b.id))
    assert created.school_id == other_school.id


async def test_delete_missing_entry(service, school) -> None:
    with pytest.raises(NotFoundError) as exc:
        await service.delete_entry(school.id, uuid.uuid4())
    assert exc.value.code == ErrorCode.ENTRY_NOT_FOUND


async def test_delete_frees_the_slot(service, school, make_teacher) -> None:
    teacher = await make_teacher(school)
    school_id, teacher_id = school.id, teacher.id
    entry = await service.create_entry(school_id, _payload(teacher_id))
    await service.delete_entry(school_id, entry.id)

    with pytest.raises(NotFoundError):
        await service.get_entry(SchoolScope.single(school_id), entry.id)
    again = await service.create_entry(school_id, _payload(teacher_id))
    assert again.id != entry.id


async def test_shifting_an_entry_does_not_conflict_with_itself(service, school, make_teacher) -> None:
    teacher = await make_teacher(school)
    entry = await service.create_entry(school.id, _payload(teacher.id))
    updated = await service.update_entry(
        school.id, entry.id, TimetableEntryPatch(start_time="09:01", end_time="10:01")
    )
    assert (updated.start_time, updated.end_time) == ("09:01", "10:01")
    assert updated.room_number == "101"


async def test_update_into_conflict_leaves_entry_unchanged(service, school, make_teacher) -> None:
    teacher = await make_teacher(school)
    school_id, teacher_id = school.id, teacher.id
    await service.create_entry(school_id, _payload(teacher_id))
    second = await service.create_entry(
        school_id, _payload(teacher_id, class_name="Class 6", section="B", start_time="11:00", end_time="12:00")
    )

    with pytest.raises(ConflictError) as exc:
        await service.update_entry(
            school_id, second.id, TimetableEntryPatch(start_time="09:30", end_time="10:30")
        )
    assert exc.value.code == ErrorCode.TEACHER_CONFLICT

    stored = await service.get_entry(SchoolScope.single(school_id), second.id)
    assert (stored.start_time, stored.end_time) == ("11:00", "12:00")


async def test_update_to_another_day_checks_the_new_day(service, school, make_teacher) -> None:
    teacher = await make_teacher(school)
    school_id, teacher_id = school.id, teacher.id
    await service.create_entry(school_id, _payload(teacher_id, day="friday"))
    monday = await service.create_entry(school_id, _payload(teacher_id, class_name="Class 7"))

    with pytest.raises(ConflictError):
        await service.update_entry(school_id, monday.id, TimetableEntryPatch(day="Friday"))


async def test_room_only_update_skips_detection(service, db_session, school, make_teacher) -> None:
    teacher = await make_teacher(school)
    school_id, teacher_id = school.id, teacher.id
    # Overlapping rows written before conflict checking existed
    legacy = [
        TimetableEntry(
            school_id=school_id, class_name="Class 5", section="A", subject_name="Mathematics",
            teacher_id=teacher_id, day="monday", start_time="09:00", end_time="10:00",
        ),
        TimetableEntry(
            school_id=school_id, class_name="Class 6", section="B", subject_name="Mathematics",
            teacher_id=teacher_id, day="monday", start_time="09:30", end_time="10:30",
        ),
    ]
    db_session.add_all(legacy)
    await db_session.commit()
    entry_id = legacy[0].id

    updated = await service.update_entry(school_id, entry_id, TimetableEntryPatch(room_number="204"))
    assert updated.room_number == "204"
    renamed = await service.update_entry(school_id, entry_id, TimetableEntryPatch(subject_name="Physics"))
    assert renamed.subject_name == "Physics"

    with pytest.raises(ConflictError):
        await service.update_entry(school_id, entry_id, TimetableEntryPatch(end_time="10:15"))


async def test_update_without_changes_returns_current(service, school, make_teacher) -> None:
    teacher = await make_teacher(school)
    entry = await service.create_entry(school.id, _payload(teacher.id))
    same = await service.update_entry(school.id, entry.id, TimetableEntryPatch(day="MONDAY", start_time="9:00"))
    assert same.updated_at == entry.updated_at


async def test_update_rejects_inverted_range(service, school, make_teacher) -> None:
    teacher = await make_teacher(school)
    entry = await service.create_entry(school.id, _payload(teacher.id))
    with pytest.raises(ValidationError):
        await service.update_entry(school.id, entry.id, TimetableEntryPatch(end_time="08:00"))


async def test_list_is_ordered_by_weekday_then_time(service, school, make_teacher) -> None:
    teacher = await make_teacher(school)
    await service.create_entry(school.id, _payload(teacher.id, day="friday", start_time="08:00", end_time="09:00"))
    await service.create_entry(school.id, _payload(teacher.id, start_time="10:00", end_time="11:00"))
    await service.create_entry(school.id, _payload(teacher.id, day="sunday", start_time="07:00", end_time="08:00"))
    await service.create_entry(school.id, _payload(teacher.id, start_time="9:00", end_time="10:00"))

    rows = await service.list_entries(SchoolScope.single(school.id))
    assert [(r.day, r.start_time) for r in rows] == [
        ("monday", "09:00"),
        ("monday", "10:00"),
        ("friday", "08:00"),
        ("sunday", "07:00"),
    ]
    mondays = await service.list_entries(SchoolScope.single(school.id), day="Monday")
    assert len(mondays) == 2
    with pytest.raises(ValidationError):
        await service.list_entries(SchoolScope.single(school.id), day="someday")


async def test_class_view_filters_by_section(service, school, make_teacher) -> None:
    teacher = await make_teacher(school)
    await service.create_entry(school.id, _payload(teacher.id))
    await service.create_entry(school.id, _payload(teacher.id, section="B", start_time="10:00", end_time="11:00"))
    await service.create_entry(school.id, _payload(teacher.id, section=None, start_time="11:00", end_time="12:00"))

    scope = SchoolScope.single(school.id)
    assert [e.section for e in await service.get_by_class_section(scope, "Class 5", "B")] == ["B"]
    assert [e.start_time for e in await service.get_by_class_section(scope, "Class 5")] == ["11:00"]


async def test_validate_candidate_reports_every_conflict(service, school, make_teacher) -> None:
    t = await make_teacher(school, "Anita Sharma")
    x = await make_teacher(school, "Ravi Kumar")
    first = await service.create_entry(school.id, _payload(t.id))
    second = await service.create_entry(school.id, _payload(x.id, class_name="Class 6", section="B"))

    candidate = TimetableCandidate(
        class_name="Class 6", section="B", subject_name="Science", teacher_id=t.id,
        day="monday", start_time="09:30", end_time="10:30",
    )
    result = await service.validate_candidate(school.id, candidate)
    assert result.has_conflicts
    assert [(c.conflict_type, c.entry.id) for c in result.conflicts] == [
        (ConflictType.TEACHER_CONFLICT, first.id),
        (ConflictType.CLASS_CONFLICT, second.id),
    ]

    # Nothing was written
    assert len(await service.list_entries(SchoolScope.single(school.id))) == 2

    editing = candidate.model_copy(update={"exclude_id": first.id})
    result = await service.validate_candidate(school.id, editing)
    assert [c.conflict_type for c in result.conflicts] == [ConflictType.CLASS_CONFLICT]


async def test_validate_candidate_clear_slot(service, school, make_teacher) -> None:
    teacher = await make_teacher(school)
    await service.create_entry(school.id, _payload(teacher.id))
    candidate = TimetableCandidate(**_payload(teacher.id, start_time="10:00", end_time="11:00").model_dump())
    result = await service.validate_candidate(school.id, candidate)
    assert not result.has_conflicts
    assert result.conflicts == []


async def test_create_waits_for_the_day_lock(service, locks, school, make_teacher) -> None:
    teacher = await make_teacher(school)
    school_id, teacher_id = school.id, teacher.id

    async with locks.hold([(school_id, "monday")]):
        task = asyncio.create_task(service.create_entry(school_id, _payload(teacher_id)))
        await asyncio.sleep(0.05)
        assert not task.done()

    created = await asyncio.wait_for(task, timeout=2)
    assert created.day == "monday"


def _second_service(engine, locks):
    """Another request: own session, same process-wide lock registry."""
    session = build_sessionmaker(engine)()
    return session, TimetableService(TimetableStore(session), TeacherDirectory(session), locks)


async def test_update_waiting_on_the_lock_keeps_a_concurrent_edit(
    engine, db_session, service, locks, school, make_teacher
) -> None:
    teacher = await make_teacher(school)
    school_id = school.id
    entry = await service.create_entry(school_id, _payload(teacher.id))
    other_session, other = _second_service(engine, locks)

    async with other_session:
        async with locks.hold([(school_id, "monday")]):
            task = asyncio.create_task(
                other.update_entry(school_id, entry.id, TimetableEntryPatch(start_time="09:01"))
            )
            await asyncio.sleep(0.05)
            assert not task.done()
            # Committed by someone else while the update waits
            row = await db_session.get(TimetableEntry, entry.id)
            row.room_number = "202"
            await db_session.commit()

        updated = await asyncio.wait_for(task, timeout=2)

    assert (updated.start_time, updated.room_number) == ("09:01", "202")
    stored = await service.get_entry(SchoolScope.single(school_id), entry.id)
    assert (stored.start_time, stored.room_number) == ("09:01", "202")


async def test_update_of_entry_deleted_while_waiting(
    engine, db_session, service, locks, school, make_teacher
) -> None:
    teacher = await make_teacher(school)
    school_id = school.id
    entry = await service.create_entry(school_id, _payload(teacher.id))
    other_session, other = _second_service(engine, locks)

    async with other_session:
        async with locks.hold([(school_id, "monday")]):
            task = asyncio.create_task(
                other.update_entry(school_id, entry.id, TimetableEntryPatch(start_time="09:01"))
            )
            await asyncio.sleep(0.05)
            row = await db_session.get(TimetableEntry, entry.id)
            await db_session.delete(row)
            await db_session.commit()

        with pytest.raises(NotFoundError) as exc:
            await asyncio.wait_for(task, timeout=2)
    assert exc.value.code == ErrorCode.ENTRY_NOT_FOUND


async def test_update_and_delete_are_serialized(engine, service, locks, school, make_teacher) -> None:
    teacher = await make_teacher(school)
    school_id = school.id
    entry = await service.create_entry(school_id, _payload(teacher.id))
    other_session, other = _second_service(engine, locks)

    async with other_session:
        async with locks.hold([(school_id, "monday")]):
            update = asyncio.create_task(
                other.update_entry(school_id, entry.id, TimetableEntryPatch(room_number="305"))
            )
            await asyncio.sleep(0.05)
            delete = asyncio.create_task(service.delete_entry(school_id, entry.id))
            await asyncio.sleep(0.05)
            assert not update.done() and not delete.done()

        updated = await asyncio.wait_for(update, timeout=2)
        await asyncio.wait_for(delete, timeout=2)

    assert updated.room_number == "305"
    with pytest.raises(NotFoundError):
        await service.get_entry(SchoolScope.single(school_id), entry.id)


async def test_update_follows_an_entry_moved_to_another_day(
    engine, db_session, service, locks, school, make_teacher
) -> None:
    teacher = await make_teacher(school)
    school_id, teacher_id = school.id, teacher.id
    await service.create_entry(school_id, _payload(teacher_id, class_name="Class 7", day="friday"))
    entry = await service.create_entry(school_id, _payload(teacher_id))
    other_session, other = _second_service(engine, locks)

    async with other_session:
        async with locks.hold([(school_id, "monday")]):
            task = asyncio.create_task(
                other.update_entry(school_id, entry.id, TimetableEntryPatch(start_time="09:30", end_time="10:30"))
            )
            await asyncio.sleep(0.05)
            row = await db_session.get(TimetableEntry, entry.id)
            row.day = "friday"
            row.start_time, row.end_time = "13:00", "14:00"
            await db_session.commit()

        # Checked against friday, where the teacher already teaches Class 7 at 09:00
        with pytest.raises(ConflictError) as exc:
            await asyncio.wait_for(task, timeout=2)
    assert exc.value.code == ErrorCode.TEACHER_CONFLICT


@pytest.mark.parametrize("kind", ["unknown", "inactive", "other_school"])
async def test_update_to_unassignable_teacher(kind, service, school, other_school, make_teacher) -> None:
    teacher = await make_teacher(school)
    if kind == "unknown":
        new_teacher_id = uuid.uuid4()
    elif kind == "inactive":
        new_teacher_id = (await make_teacher(school, "Former Teacher", status="inactive")).id
    else:
        new_teacher_id = (await make_teacher(other_school, "Outside Teacher")).id
    school_id, teacher_id = school.id, teacher.id
    entry = await service.create_entry(school_id, _payload(teacher_id))

    with pytest.raises(NotFoundError) as exc:
        await service.update_entry(school_id, entry.id, TimetableEntryPatch(teacher_id=new_teacher_id))
    assert exc.value.code == ErrorCode.TEACHER_NOT_FOUND

    stored = await service.get_entry(SchoolScope.single(school_id), entry.id)
    assert stored.teacher_id == teacher_id


async def test_elevated_update_to_other_schools_teacher(service, school, other_school, make_teacher) -> None:
    teacher = await make_teacher(school)
    outsider = await make_teacher(other_school, "Outside Teacher")
    entry = await service.create_entry(school.id, _payload(teacher.id))

    with pytest.raises(ValidationError) as exc:
        await service.update_entry(school.id, entry.id, TimetableEntryPatch(teacher_id=outsider.id), elevated=True)
    assert exc.value.code == ErrorCode.CROSS_TENANT_TEACHER


class _BrokenSession:
    """Stands in for a session whose connection has gone away."""

    def __init__(self, fail_on: str = "execute") -> None:
        self.fail_on = fail_on
        self.rolled_back = False

    async def execute(self, *args, **kwargs):
        raise DBAPIError("SELECT 1", None, Exception("connection refused"))

    async def commit(self) -> None:
        if self.fail_on == "stale":
            raise StaleDataError("expected to update 1 row(s); 0 were matched")
        raise DBAPIError("COMMIT", None, Exception("connection refused"))

    async def rollback(self) -> None:
        self.rolled_back = True


async def test_database_failure_becomes_storage_error() -> None:
    session = _BrokenSession()
    store = TimetableStore(session)

    with pytest.raises(StorageError) as exc:
        await store.count_entries(SchoolScope.single(uuid.uuid4()))
    assert exc.value.status_code == 503
    assert exc.value.code == ErrorCode.STORAGE_ERROR
    assert exc.value.to_detail() == {"code": "STORAGE_ERROR", "message": "Timetable storage is unavailable"}
    assert session.rolled_back


async def test_service_read_surfaces_storage_error(locks) -> None:
    session = _BrokenSession()
    service = TimetableService(TimetableStore(session), TeacherDirectory(session), locks)
    with pytest.raises(StorageError):
        await service.list_entries(SchoolScope.single(uuid.uuid4()))


async def test_failed_commit_is_rolled_back() -> None:
    session = _BrokenSession()
    with pytest.raises(StorageError):
        await TimetableStore(session).commit()
    assert session.rolled_back

    session = _BrokenSession(fail_on="stale")
    with pytest.raises(NotFoundError) as exc:
        await TimetableStore(session).commit()
    assert exc.value.code == ErrorCode.ENTRY_NOT_FOUND
    assert session.rolled_back
