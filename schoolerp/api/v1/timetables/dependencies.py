from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from schoolerp.api.v1.teachers.service import TeacherDirectory
from schoolerp.db.session import get_db

from .locks import ScheduleLocks
from .service import TimetableService
from .store import TimetableStore


def get_schedule_locks(request: Request) -> ScheduleLocks:
    return request.app.state.schedule_locks


def get_timetable_store(db: AsyncSession = Depends(get_db)) -> TimetableStore:
    return TimetableStore(db)


def get_timetable_service(
    db: AsyncSession = Depends(get_db),
    locks: ScheduleLocks = Depends(get_schedule_locks),
) -> TimetableService:
    return TimetableService(TimetableStore(db), TeacherDirectory(db), locks)
