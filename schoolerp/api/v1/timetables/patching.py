"""Partial update merge for timetable entries. Pure: no session, no I/O."""

from dataclasses import dataclass, fields, replace
from typing import FrozenSet, Optional, Tuple
from uuid import UUID

from .schemas import TimetableEntryPatch

# Changing any of these can create a double-booking
SCHEDULING_FIELDS = frozenset({"day", "start_time", "end_time", "class_name", "section", "teacher_id"})

# Explicit null for these is ignored rather than applied
REQUIRED_FIELDS = frozenset({"class_name", "subject_name", "teacher_id", "day", "start_time", "end_time"})


@dataclass(frozen=True)
class EntryFields:
    class_name: str
    section: str
    subject_name: str
    teacher_id: UUID
    day: str
    start_time: str
    end_time: str
    room_number: Optional[str] = None

    @classmethod
    def from_entry(cls, entry) -> "EntryFields":
        return cls(**{f.name: getattr(entry, f.name) for f in fields(cls)})


def merge_patch(current: EntryFields, patch: TimetableEntryPatch) -> Tuple[EntryFields, FrozenSet[str]]:
    """
    Apply only the fields present in the request.
    Returns the merged fields and the names of fields whose value actually changed.
    """
    updates = {}
    for name, value in patch.model_dump(exclude_unset=True).items():
        if value is None:
            if name in REQUIRED_FIELDS:
                continue
            if name == "section":
                value = ""
        updates[name] = value
    merged = replace(current, **updates)
    changed = frozenset(name for name in updates if getattr(merged, name) != getattr(current, name))
    return merged, changed


def needs_conflict_check(changed: FrozenSet[str]) -> bool:
    return bool(changed & SCHEDULING_FIELDS)
