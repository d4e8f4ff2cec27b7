"""
Timetable lifecycle: create, update, delete and list entries of one school.

Every write runs "check, then mutate" inside the (school, day) critical section from
ScheduleLocks (plus a PostgreSQL advisory lock per key), so two writers can never both
pass the conflict scan for the same slot. Create/update stop at the first conflict
(teacher scan before class scan); validate_candidate reports all of them.
"""

import logging
from typing import FrozenSet, List, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError

from schoolerp.api.v1.teachers.service import TeacherDirectory
from schoolerp.auth.scope import SchoolScope
from schoolerp.core.enums import ErrorCode
from schoolerp.core.exceptions import ConflictError, NotFoundError, ServiceError, ValidationError
from schoolerp.core.models import TimetableEntry

from .conflicts import Conflict, ConflictDetector, SlotCandidate
from .intervals import normalize_day, parse_time
from .locks import ScheduleLocks
from .patching import EntryFields, merge_patch, needs_conflict_check
from .schemas import (
    CandidateValidationResult,
    TimetableCandidate,
    TimetableEntryCreate,
    TimetableEntryPatch,
    TimetableEntryResponse,
)
from .store import TimetableStore

logger = logging.getLogger(__name__)


def _to_response(e: TimetableEntry) -> TimetableEntryResponse:
    return TimetableEntryResponse(
        id=e.id,
        school_id=e.school_id,
        school_name=e.school.name if e.school is not None else None,
        class_name=e.class_name,
        section=e.section or "",
        subject_name=e.subject_name,
        teacher_id=e.teacher_id,
        teacher_name=e.teacher.full_name if e.teacher is not None else None,
        day=e.day,
        start_time=e.start_time,
        end_time=e.end_time,
        room_number=e.room_number,
        created_at=e.created_at,
        updated_at=e.updated_at,
    )


def _check_times(start_time: str, end_time: str) -> None:
    if parse_time(end_time) <= parse_time(start_time):
        raise ValidationError("end_time must be after start_time")


def _conflict_error(conflict: Conflict) -> ConflictError:
    return ConflictError(
        conflict.message,
        ErrorCode(conflict.conflict_type.value),
        [conflict.to_detail().model_dump(mode="json")],
    )


def _integrity_conflict(exc: IntegrityError) -> ConflictError:
    # Exact duplicate slot caught by a unique constraint
    code = ErrorCode.TEACHER_CONFLICT if "teacher" in str(exc.orig) else ErrorCode.CLASS_CONFLICT
    return ConflictError("Time slot conflicts with existing entry", code)


class TimetableService:
    def __init__(self, store: TimetableStore, teachers: TeacherDirectory, locks: ScheduleLocks) -> None:
        self._store = store
        self._teachers = teachers
        self._locks = locks
        self._detector = ConflictDetector(store)

    async def _check_teacher(self, school_id: UUID, teacher_id: UUID, elevated: bool) -> None:
        teacher = await self._teachers.get(teacher_id)
        if not teacher or teacher.status != "active":
            raise NotFoundError("Teacher not found", ErrorCode.TEACHER_NOT_FOUND)
        if teacher.school_id != school_id:
            if elevated:
                raise ValidationError("Teacher belongs to another school", ErrorCode.CROSS_TENANT_TEACHER)
            # Same answer as a missing teacher: other schools' rosters are invisible
            raise NotFoundError("Teacher not found", ErrorCode.TEACHER_NOT_FOUND)

    async def _reject(self, conflict: Conflict, school_id: UUID) -> None:
        # Build the error before rollback expires the blocking row
        error = _conflict_error(conflict)
        logger.warning("Timetable write rejected for school %s: %s (%s)", school_id, error.code.value, error.message)
        await self._store.rollback()
        raise error

    # ----- Reads -----

    async def list_entries(
        self,
        scope: SchoolScope,
        class_name: Optional[str] = None,
        section: Optional[str] = None,
        teacher_id: Optional[UUID] = None,
        day: Optional[str] = None,
    ) -> List[TimetableEntryResponse]:
        if day is not None:
            try:
                day = normalize_day(day)
            except ValueError as e:
                raise ValidationError(str(e))
        rows = await self._store.list_entries(
            scope, class_name=class_name, section=section, teacher_id=teacher_id, day=day
        )
        return [_to_response(e) for e in rows]

    async def get_by_class_section(
        self,
        scope: SchoolScope,
        class_name: str,
        section: Optional[str] = None,
    ) -> List[TimetableEntryResponse]:
        return await self.list_entries(scope, class_name=class_name, section=(section or "").strip())

    async def get_entry(self, scope: SchoolScope, entry_id: UUID) -> TimetableEntryResponse:
        entry = await self._store.get(entry_id, scope)
        if not entry:
            raise NotFoundError("Timetable entry not found")
        return _to_response(entry)

    async def validate_candidate(self, school_id: UUID, payload: TimetableCandidate) -> CandidateValidationResult:
        """Non-mutating: both scans, every blocking entry."""
        _check_times(payload.start_time, payload.end_time)
        conflicts = await self._detector.find_all(
            SlotCandidate.build(school_id, payload), exclude_id=payload.exclude_id
        )
        return CandidateValidationResult(
            has_conflicts=bool(conflicts),
            conflicts=[c.to_detail() for c in conflicts],
        )

    # ----- Writes -----

    async def create_entry(
        self,
        school_id: UUID,
        payload: TimetableEntryCreate,
        elevated: bool = False,
    ) -> TimetableEntryResponse:
        _check_times(payload.start_time, payload.end_time)
        if elevated and not await self._store.school_exists(school_id):
            raise NotFoundError("School not found", ErrorCode.SCHOOL_NOT_FOUND)
        await self._check_teacher(school_id, payload.teacher_id, elevated)

        candidate = SlotCandidate.build(school_id, payload)
        keys = [(school_id, candidate.day)]
        async with self._locks.hold(keys):
            try:
                await self._store.lock_days(keys)
                conflict = await self._detector.find_first(candidate)
                if conflict is not None:
                    await self._reject(conflict, school_id)
                entry = TimetableEntry(
                    school_id=school_id,
                    class_name=payload.class_name,
                    section=payload.section or "",
                    subject_name=payload.subject_name,
                    teacher_id=payload.teacher_id,
                    day=payload.day,
                    start_time=payload.start_time,
                    end_time=payload.end_time,
                    room_number=payload.room_number,
                )
                self._store.add(entry)
                await self._store.commit()
                response = _to_response(await self._store.get(entry.id, SchoolScope.single(school_id)))
            except IntegrityError as exc:
                raise _integrity_conflict(exc) from exc

        logger.info(
            "Created timetable entry %s for school %s (%s %s-%s)",
            response.id, school_id, response.day, response.start_time, response.end_time,
        )
        return response

    async def _apply_patch(
        self,
        school_id: UUID,
        entry: TimetableEntry,
        patch: TimetableEntryPatch,
        elevated: bool,
    ) -> Optional[FrozenSet[str]]:
        """Check and write a patch against a row read under the day lock. None when nothing changed."""
        current = EntryFields.from_entry(entry)
        merged, changed = merge_patch(current, patch)
        if not changed:
            return None
        _check_times(merged.start_time, merged.end_time)
        if "teacher_id" in changed:
            await self._check_teacher(school_id, merged.teacher_id, elevated)
        # Subject/room-only edits cannot create a double-booking and skip the detector
        if needs_conflict_check(changed):
            conflict = await self._detector.find_first(
                SlotCandidate.build(school_id, merged), exclude_id=entry.id
            )
            if conflict is not None:
                await self._reject(conflict, school_id)
        for name in changed:
            setattr(entry, name, getattr(merged, name))
        await self._store.commit()
        return changed

    async def update_entry(
        self,
        school_id: UUID,
        entry_id: UUID,
        patch: TimetableEntryPatch,
        elevated: bool = False,
    ) -> TimetableEntryResponse:
        scope = SchoolScope.single(school_id)
        entry = await self._store.get(entry_id, scope)
        if not entry:
            raise NotFoundError("Timetable entry not found")

        day = entry.day
        while True:
            keys = [(school_id, day)]
            if patch.day is not None:
                keys.append((school_id, patch.day))
            async with self._locks.hold(keys):
                try:
                    await self._store.lock_days(keys)
                    # Another writer may have edited, moved or deleted the row since the first read
                    entry = await self._store.get(entry_id, scope)
                    if not entry:
                        raise NotFoundError("Timetable entry not found")
                    if entry.day != day:
                        day = entry.day
                        await self._store.rollback()
                        continue
                    response = _to_response(entry)
                    changed = await self._apply_patch(school_id, entry, patch, elevated)
                    if changed is None:
                        await self._store.rollback()
                        return response
                    response = _to_response(await self._store.get(entry_id, scope))
                except IntegrityError as exc:
                    raise _integrity_conflict(exc) from exc
                except ServiceError:
                    await self._store.rollback()
                    raise
            break

        logger.info("Updated timetable entry %s for school %s (%s)", entry_id, school_id, ", ".join(sorted(changed)))
        return response

    async def delete_entry(self, school_id: UUID, entry_id: UUID) -> None:
        scope = SchoolScope.single(school_id)
        entry = await self._store.get(entry_id, scope)
        if not entry:
            raise NotFoundError("Timetable entry not found")

        keys = [(school_id, entry.day)]
        async with self._locks.hold(keys):
            try:
                await self._store.lock_days(keys)
                entry = await self._store.get(entry_id, scope)
                if not entry:
                    raise NotFoundError("Timetable entry not found")
                await self._store.delete(entry)
                await self._store.commit()
            except ServiceError:
                await self._store.rollback()
                raise
        logger.info("Deleted timetable entry %s for school %s", entry_id, school_id)
