"""
Report stored timetable entries that break the double-booking rules
(e.g. rows written by older releases without write serialization).

Read-only. Exit code 1 when violations are found.
Usage: python -m schoolerp.scripts.audit_timetable [--school-id UUID]
"""

import argparse
import asyncio
import sys
from itertools import groupby
from typing import List, Optional, Tuple
from uuid import UUID

from schoolerp.api.v1.timetables.conflicts import Conflict, SlotCandidate, class_label, detect_conflicts
from schoolerp.api.v1.timetables.intervals import parse_time
from schoolerp.api.v1.timetables.store import TimetableStore
from schoolerp.auth.scope import SchoolScope
from schoolerp.core.config import settings
from schoolerp.core.logging import setup_logging
from schoolerp.db.session import build_engine, build_sessionmaker


def find_violations(entries) -> List[Tuple[object, Conflict]]:
    """Each overlapping pair once: (later entry, conflict against the earlier one). Also flags end <= start."""
    found = []
    ordered = sorted(entries, key=lambda e: (str(e.school_id), e.day))
    for _, group in groupby(ordered, key=lambda e: (str(e.school_id), e.day)):
        day_entries = sorted(group, key=lambda e: (parse_time(e.start_time), str(e.id)))
        for index, entry in enumerate(day_entries):
            candidate = SlotCandidate.build(entry.school_id, entry)
            for conflict in detect_conflicts(candidate, day_entries[:index]):
                found.append((entry, conflict))
    return found


def _describe(entry) -> str:
    return (
        f"{entry.id} {class_label(entry.class_name, entry.section or '')} {entry.subject_name} "
        f"{entry.day} {entry.start_time}-{entry.end_time}"
    )


async def audit(school_id: Optional[UUID]) -> int:
    engine = build_engine(settings.database_url)
    try:
        async with build_sessionmaker(engine)() as session:
            store = TimetableStore(session)
            scope = SchoolScope.single(school_id) if school_id else SchoolScope.everywhere()
            entries = await store.list_entries(scope)
    finally:
        await engine.dispose()

    problems = 0
    for entry in entries:
        if parse_time(entry.end_time) <= parse_time(entry.start_time):
            print(f"INVALID RANGE  {_describe(entry)}")
            problems += 1
    for entry, conflict in find_violations(entries):
        print(f"{conflict.conflict_type.value:<16} {_describe(entry)}  <->  {_describe(conflict.entry)}")
        problems += 1

    print(f"Checked {len(entries)} entries, {problems} problem(s).")
    return 1 if problems else 0


def main() -> int:
    setup_logging(settings.log_level)
    parser = argparse.ArgumentParser(description="Audit stored timetable entries for double-bookings.")
    parser.add_argument("--school-id", type=UUID, default=None, help="Limit to one school (default: all)")
    args = parser.parse_args()
    return asyncio.run(audit(args.school_id))


if __name__ == "__main__":
    sys.exit(main())
