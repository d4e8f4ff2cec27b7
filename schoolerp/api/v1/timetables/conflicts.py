"""
Conflict detection for timetable entries.

Two independent scans inside one school and weekday:
- teacher: the same teacher already teaches in an overlapping range;
- class: the same class and section already has an overlapping session.
A section of "" is a literal value, not a wildcard.
"""

from dataclasses import dataclass
from typing import Any, Iterable, List, Optional
from uuid import UUID

from schoolerp.core.enums import ConflictType

from .intervals import overlaps, parse_time
from .schemas import BlockingEntry, ConflictDetail


@dataclass(frozen=True)
class SlotCandidate:
    """The scheduling-relevant part of a proposed entry (normalized day, HH:MM times)."""

    school_id: UUID
    day: str
    start_time: str
    end_time: str
    teacher_id: UUID
    class_name: str
    section: str = ""

    @classmethod
    def build(cls, school_id: UUID, fields: Any) -> "SlotCandidate":
        """From anything carrying entry attributes (payload, EntryFields, ORM row)."""
        return cls(
            school_id=school_id,
            day=fields.day,
            start_time=fields.start_time,
            end_time=fields.end_time,
            teacher_id=fields.teacher_id,
            class_name=fields.class_name,
            section=fields.section or "",
        )


def class_label(class_name: str, section: str) -> str:
    return f"{class_name}-{section}" if section else class_name


def _teacher_name(entry: Any) -> Optional[str]:
    teacher = getattr(entry, "teacher", None)
    return teacher.full_name if teacher is not None else None


@dataclass(frozen=True)
class Conflict:
    conflict_type: ConflictType
    entry: Any  # the blocking TimetableEntry

    @property
    def message(self) -> str:
        e = self.entry
        when = f"{e.day.capitalize()} {e.start_time}-{e.end_time}"
        label = class_label(e.class_name, e.section or "")
        if self.conflict_type == ConflictType.TEACHER_CONFLICT:
            name = _teacher_name(e)
            who = f"Teacher {name}" if name else "The selected teacher"
            return f"{who} is already teaching {label} ({e.subject_name}) on {when}"
        return f"{label} already has {e.subject_name} on {when}"

    def to_detail(self) -> ConflictDetail:
        e = self.entry
        return ConflictDetail(
            conflict_type=self.conflict_type,
            message=self.message,
            entry=BlockingEntry(
                id=e.id,
                class_name=e.class_name,
                section=e.section or "",
                subject_name=e.subject_name,
                teacher_id=e.teacher_id,
                teacher_name=_teacher_name(e),
                day=e.day,
                start_time=e.start_time,
                end_time=e.end_time,
                room_number=e.room_number,
            ),
        )


def _slot_order(entry: Any):
    return parse_time(entry.start_time), parse_time(entry.end_time), str(entry.id)


def detect_conflicts(
    candidate: SlotCandidate,
    existing: Iterable[Any],
    exclude_id: Optional[UUID] = None,
) -> List[Conflict]:
    """
    Every existing entry that blocks the candidate: teacher conflicts first, then class
    conflicts, each ordered by start time. The result does not depend on the order of
    `existing`. An entry sharing both teacher and class is reported under both types.
    """
    teacher_hits = []
    class_hits = []
    for entry in existing:
        if entry.school_id != candidate.school_id or entry.day != candidate.day:
            continue
        if exclude_id is not None and entry.id == exclude_id:
            continue
        if not overlaps(candidate.start_time, candidate.end_time, entry.start_time, entry.end_time):
            continue
        if entry.teacher_id == candidate.teacher_id:
            teacher_hits.append(entry)
        if entry.class_name == candidate.class_name and (entry.section or "") == candidate.section:
            class_hits.append(entry)

    return [Conflict(ConflictType.TEACHER_CONFLICT, e) for e in sorted(teacher_hits, key=_slot_order)] + [
        Conflict(ConflictType.CLASS_CONFLICT, e) for e in sorted(class_hits, key=_slot_order)
    ]


class ConflictDetector:
    """Runs detect_conflicts against the stored entries of the candidate's school and day."""

    def __init__(self, store) -> None:
        self._store = store

    async def find_all(self, candidate: SlotCandidate, exclude_id: Optional[UUID] = None) -> List[Conflict]:
        rows = await self._store.list_scheduling_neighbours(
            school_id=candidate.school_id,
            day=candidate.day,
            teacher_id=candidate.teacher_id,
            class_name=candidate.class_name,
            section=candidate.section,
            exclude_id=exclude_id,
        )
        return detect_conflicts(candidate, rows, exclude_id=exclude_id)

    async def find_first(self, candidate: SlotCandidate, exclude_id: Optional[UUID] = None) -> Optional[Conflict]:
        """
        Used by create/update: the teacher scan wins over the class scan, and within a
        scan the earliest-starting blocking entry is reported.
        """
        conflicts = await self.find_all(candidate, exclude_id=exclude_id)
        return conflicts[0] if conflicts else None
