"""Timetable Store: every SQL statement the timetable module runs, scoped by school."""

import logging
from typing import Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import and_, case, func, or_, select, text
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from schoolerp.auth.scope import SchoolScope
from schoolerp.core.enums import WEEKDAY_ORDER
from schoolerp.core.exceptions import NotFoundError, StorageError
from schoolerp.core.models import School, TimetableEntry

from .locks import LockKey, advisory_lock_id, ordered_keys

logger = logging.getLogger(__name__)

_day_rank = case(WEEKDAY_ORDER, value=TimetableEntry.day, else_=len(WEEKDAY_ORDER))


class TimetableStore:
    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    @property
    def dialect_name(self) -> str:
        return self._db.get_bind().dialect.name

    async def _execute(self, stmt, params=None):
        try:
            return await self._db.execute(stmt, params)
        except IntegrityError:
            raise
        except DBAPIError as exc:
            await self._db.rollback()
            logger.error("Timetable query failed: %s", exc)
            raise StorageError() from exc

    @staticmethod
    def _scoped(stmt, scope: SchoolScope):
        if scope.all_schools:
            return stmt
        return stmt.where(TimetableEntry.school_id == scope.school_id)

    # ----- Writes -----

    async def lock_days(self, keys: Iterable[LockKey]) -> None:
        """Transaction-scoped advisory locks; released by commit/rollback. PostgreSQL only."""
        if self.dialect_name != "postgresql":
            return
        for key in ordered_keys(keys):
            await self._execute(text("SELECT pg_advisory_xact_lock(:lock_id)"), {"lock_id": advisory_lock_id(key)})

    def add(self, entry: TimetableEntry) -> None:
        self._db.add(entry)

    async def delete(self, entry: TimetableEntry) -> None:
        await self._db.delete(entry)

    async def commit(self) -> None:
        try:
            await self._db.commit()
        except IntegrityError:
            await self._db.rollback()
            raise
        except StaleDataError as exc:
            # Row deleted underneath the flush
            await self._db.rollback()
            raise NotFoundError("Timetable entry not found") from exc
        except DBAPIError as exc:
            await self._db.rollback()
            logger.error("Timetable commit failed: %s", exc)
            raise StorageError() from exc

    async def rollback(self) -> None:
        await self._db.rollback()

    # ----- Reads -----

    async def school_exists(self, school_id: UUID) -> bool:
        result = await self._execute(select(School.id).where(School.id == school_id))
        return result.scalar_one_or_none() is not None

    async def get(self, entry_id: UUID, scope: SchoolScope) -> Optional[TimetableEntry]:
        stmt = self._scoped(select(TimetableEntry).where(TimetableEntry.id == entry_id), scope)
        # Reload teacher/school joins even if the row is already in the identity map
        result = await self._execute(stmt.execution_options(populate_existing=True))
        return result.scalar_one_or_none()

    async def list_entries(
        self,
        scope: SchoolScope,
        class_name: Optional[str] = None,
        section: Optional[str] = None,
        teacher_id: Optional[UUID] = None,
        day: Optional[str] = None,
    ) -> List[TimetableEntry]:
        stmt = self._scoped(select(TimetableEntry), scope)
        if class_name is not None:
            stmt = stmt.where(TimetableEntry.class_name == class_name)
        if section is not None:
            stmt = stmt.where(TimetableEntry.section == section)
        if teacher_id is not None:
            stmt = stmt.where(TimetableEntry.teacher_id == teacher_id)
        if day is not None:
            stmt = stmt.where(TimetableEntry.day == day)
        stmt = stmt.order_by(_day_rank, TimetableEntry.start_time, TimetableEntry.class_name, TimetableEntry.section)
        result = await self._execute(stmt)
        return list(result.scalars().all())

    async def list_scheduling_neighbours(
        self,
        school_id: UUID,
        day: str,
        teacher_id: UUID,
        class_name: str,
        section: str,
        exclude_id: Optional[UUID] = None,
    ) -> List[TimetableEntry]:
        """Same school and day, sharing the teacher or the class/section. Overlap is decided by the caller."""
        stmt = select(TimetableEntry).where(
            TimetableEntry.school_id == school_id,
            TimetableEntry.day == day,
            or_(
                TimetableEntry.teacher_id == teacher_id,
                and_(TimetableEntry.class_name == class_name, TimetableEntry.section == section),
            ),
        )
        if exclude_id is not None:
            stmt = stmt.where(TimetableEntry.id != exclude_id)
        result = await self._execute(stmt)
        return list(result.scalars().all())

    # ----- Derived views -----

    async def distinct_class_names(self, scope: SchoolScope) -> List[str]:
        stmt = self._scoped(select(TimetableEntry.class_name).distinct(), scope).order_by(TimetableEntry.class_name)
        result = await self._execute(stmt)
        return list(result.scalars().all())

    async def distinct_sections(self, scope: SchoolScope, class_name: str) -> List[str]:
        stmt = (
            self._scoped(select(TimetableEntry.section).distinct(), scope)
            .where(TimetableEntry.class_name == class_name)
            .order_by(TimetableEntry.section)
        )
        result = await self._execute(stmt)
        return list(result.scalars().all())

    async def distinct_time_slots(self, scope: SchoolScope, class_name: Optional[str] = None) -> List[Tuple[str, str]]:
        stmt = self._scoped(select(TimetableEntry.start_time, TimetableEntry.end_time).distinct(), scope)
        if class_name is not None:
            stmt = stmt.where(TimetableEntry.class_name == class_name)
        stmt = stmt.order_by(TimetableEntry.start_time, TimetableEntry.end_time)
        result = await self._execute(stmt)
        return [(row.start_time, row.end_time) for row in result.all()]

    async def count_by(self, scope: SchoolScope, column) -> Dict[str, int]:
        stmt = self._scoped(select(column, func.count(TimetableEntry.id)), scope).group_by(column).order_by(column)
        result = await self._execute(stmt)
        return {key: count for key, count in result.all()}

    async def count_entries(self, scope: SchoolScope) -> int:
        result = await self._execute(self._scoped(select(func.count(TimetableEntry.id)), scope))
        return result.scalar_one()

    async def count_teachers(self, scope: SchoolScope) -> int:
        stmt = self._scoped(select(func.count(func.distinct(TimetableEntry.teacher_id))), scope)
        result = await self._execute(stmt)
        return result.scalar_one()
