"""Read-only views derived from the stored entries; nothing here is persisted."""

from typing import List, Optional
from uuid import UUID

from schoolerp.auth.scope import SchoolScope
from schoolerp.core.enums import WEEKDAY_ORDER
from schoolerp.core.models import TimetableEntry

from .schemas import TimeSlot, TimetableStats, WeeklyTimetable
from .service import TimetableService
from .store import TimetableStore


async def derive_classes(store: TimetableStore, scope: SchoolScope) -> List[str]:
    return await store.distinct_class_names(scope)


async def derive_sections(store: TimetableStore, scope: SchoolScope, class_name: str) -> List[str]:
    return await store.distinct_sections(scope, class_name)


async def derive_time_slots(
    store: TimetableStore,
    scope: SchoolScope,
    class_name: Optional[str] = None,
) -> List[TimeSlot]:
    pairs = await store.distinct_time_slots(scope, class_name=class_name)
    return [TimeSlot(start_time=s, end_time=e, label=f"{s} - {e}") for s, e in pairs]


async def summarize(store: TimetableStore, scope: SchoolScope) -> TimetableStats:
    by_day = await store.count_by(scope, TimetableEntry.day)
    return TimetableStats(
        total_entries=await store.count_entries(scope),
        teacher_count=await store.count_teachers(scope),
        by_day={d: by_day[d] for d in sorted(by_day, key=lambda d: WEEKDAY_ORDER.get(d, len(WEEKDAY_ORDER)))},
        by_class=await store.count_by(scope, TimetableEntry.class_name),
        by_subject=await store.count_by(scope, TimetableEntry.subject_name),
    )


async def weekly_view(
    service: TimetableService,
    scope: SchoolScope,
    class_name: Optional[str] = None,
    section: Optional[str] = None,
    teacher_id: Optional[UUID] = None,
) -> WeeklyTimetable:
    """Entries grouped by day, e.g. a student's week (class + section) or a teacher's week."""
    entries = await service.list_entries(scope, class_name=class_name, section=section, teacher_id=teacher_id)
    view = WeeklyTimetable(class_name=class_name, section=section, teacher_id=teacher_id)
    # list_entries is already ordered by weekday, then start time
    for entry in entries:
        view.days.setdefault(entry.day, []).append(entry)
    return view
