from datetime import datetime, time
from typing import Dict, List, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from schoolerp.core.enums import ConflictType

from .intervals import normalize_day, normalize_time


def _clean_required(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    v = v.strip()
    if not v:
        raise ValueError("must not be blank")
    return v


def _clean_optional(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    return v.strip() or None


class TimetableEntryCreate(BaseModel):
    class_name: str = Field(..., max_length=100, description="e.g. Class 5")
    section: Optional[str] = Field("", max_length=50, description="e.g. A; empty for classes without sections")
    subject_name: str = Field(..., max_length=150)
    teacher_id: UUID
    day: str = Field(..., description="monday .. sunday, case-insensitive")
    start_time: Union[str, time] = Field(..., description="24-hour format, e.g. 09:00")
    end_time: Union[str, time] = Field(..., description="24-hour format, e.g. 09:45")
    room_number: Optional[str] = Field(None, max_length=50)

    @field_validator("class_name", "subject_name", mode="before")
    @classmethod
    def strip_required(cls, v: str) -> str:
        return _clean_required(v)

    @field_validator("section", mode="before")
    @classmethod
    def unify_section(cls, v: Optional[str]) -> str:
        # Absent and empty sections are the same value
        return (v or "").strip()

    @field_validator("room_number", mode="before")
    @classmethod
    def strip_room(cls, v: Optional[str]) -> Optional[str]:
        return _clean_optional(v)

    @field_validator("day", mode="before")
    @classmethod
    def parse_day(cls, v: str) -> str:
        return normalize_day(v)

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def parse_time(cls, v: Union[str, time]) -> str:
        return normalize_time(v)


class TimetableEntryPatch(BaseModel):
    """Partial update: only fields present in the request body are applied."""

    class_name: Optional[str] = Field(None, max_length=100)
    section: Optional[str] = Field(None, max_length=50)
    subject_name: Optional[str] = Field(None, max_length=150)
    teacher_id: Optional[UUID] = None
    day: Optional[str] = None
    start_time: Optional[Union[str, time]] = Field(None, description="24-hour format, e.g. 09:00")
    end_time: Optional[Union[str, time]] = Field(None, description="24-hour format, e.g. 09:45")
    room_number: Optional[str] = Field(None, max_length=50)

    @field_validator("class_name", "subject_name", mode="before")
    @classmethod
    def strip_required(cls, v: Optional[str]) -> Optional[str]:
        return _clean_required(v)

    @field_validator("section", mode="before")
    @classmethod
    def unify_section(cls, v: Optional[str]) -> str:
        return (v or "").strip()

    @field_validator("room_number", mode="before")
    @classmethod
    def strip_room(cls, v: Optional[str]) -> Optional[str]:
        return _clean_optional(v)

    @field_validator("day", mode="before")
    @classmethod
    def parse_day(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return normalize_day(v)

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def parse_time(cls, v: Optional[Union[str, time]]) -> Optional[str]:
        if v is None:
            return None
        return normalize_time(v)


class TimetableCandidate(TimetableEntryCreate):
    """Validate-only request. exclude_id skips the entry being edited."""

    exclude_id: Optional[UUID] = None


class TimetableEntryResponse(BaseModel):
    id: UUID
    school_id: UUID
    school_name: Optional[str] = None
    class_name: str
    section: str
    subject_name: str
    teacher_id: UUID
    teacher_name: Optional[str] = None
    day: str
    start_time: str
    end_time: str
    room_number: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class BlockingEntry(BaseModel):
    """The existing entry that blocks a candidate; enough to pick another slot."""

    id: UUID
    class_name: str
    section: str
    subject_name: str
    teacher_id: UUID
    teacher_name: Optional[str] = None
    day: str
    start_time: str
    end_time: str
    room_number: Optional[str] = None


class ConflictDetail(BaseModel):
    conflict_type: ConflictType
    message: str
    entry: BlockingEntry


class CandidateValidationResult(BaseModel):
    has_conflicts: bool
    conflicts: List[ConflictDetail] = Field(default_factory=list)


class TimeSlot(BaseModel):
    start_time: str
    end_time: str
    label: str = Field(..., description="e.g. 09:00 - 09:45")


class TimetableStats(BaseModel):
    total_entries: int
    teacher_count: int
    by_day: Dict[str, int] = Field(default_factory=dict)
    by_class: Dict[str, int] = Field(default_factory=dict)
    by_subject: Dict[str, int] = Field(default_factory=dict)


class WeeklyTimetable(BaseModel):
    """Entries grouped by weekday (monday first); days without entries are omitted."""

    class_name: Optional[str] = None
    section: Optional[str] = None
    teacher_id: Optional[UUID] = None
    days: Dict[str, List[TimetableEntryResponse]] = Field(default_factory=dict)
