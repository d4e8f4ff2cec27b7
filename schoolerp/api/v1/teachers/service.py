"""Teacher directory (read-only). Answers "does teacher X belong to school Y and is active?"."""

import json
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from schoolerp.core.models import Teacher

from .schemas import TeacherDropdownItem


def _subjects(raw) -> List[str]:
    # Older rows stored the list as a JSON-encoded string
    if raw is None:
        return []
    if isinstance(raw, str):
        try:
            raw = json.loads(raw or "[]")
        except ValueError:
            return [raw]
    return [str(s) for s in raw]


async def get_teacher(db: AsyncSession, teacher_id: UUID) -> Optional[Teacher]:
    return await db.get(Teacher, teacher_id)


async def list_active_teachers(db: AsyncSession, school_id: UUID) -> List[TeacherDropdownItem]:
    result = await db.execute(
        select(Teacher)
        .where(Teacher.school_id == school_id, Teacher.status == "active")
        .order_by(Teacher.full_name)
    )
    return [
        TeacherDropdownItem(
            id=t.id,
            name=t.full_name,
            designation=t.designation,
            subjects=_subjects(t.subjects),
        )
        for t in result.scalars().all()
    ]


class TeacherDirectory:
    """Session-bound facade handed to the timetable service."""

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def get(self, teacher_id: UUID) -> Optional[Teacher]:
        return await get_teacher(self._db, teacher_id)
