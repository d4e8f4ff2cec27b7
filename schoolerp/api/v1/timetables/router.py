"""Timetable API. Every route is scoped to the caller's school unless a platform admin overrides it.
RBAC: school admins and teachers edit, only admins delete; students and parents read class views."""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status

from schoolerp.auth.dependencies import get_current_user
from schoolerp.auth.rbac import is_elevated, require_roles
from schoolerp.auth.schemas import CurrentUser
from schoolerp.auth.scope import resolve_read_scope, resolve_write_school
from schoolerp.core.enums import UserRole
from schoolerp.core.exceptions import ServiceError

from .dependencies import get_timetable_service, get_timetable_store
from .schemas import (
    CandidateValidationResult,
    TimeSlot,
    TimetableCandidate,
    TimetableEntryCreate,
    TimetableEntryPatch,
    TimetableEntryResponse,
    TimetableStats,
    WeeklyTimetable,
)
from .service import TimetableService
from .store import TimetableStore
from . import reports

router = APIRouter(prefix="/api/v1/timetables", tags=["timetables"])

EDITORS = (UserRole.SCHOOL_ADMIN, UserRole.TEACHER)

SCHOOL_OVERRIDE = Query(None, description="Other school (platform admin only)")
ALL_SCHOOLS = Query(False, description="Every school (platform admin only)")


def _http_error(e: ServiceError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.get(
    "",
    response_model=List[TimetableEntryResponse],
    dependencies=[Depends(require_roles(*EDITORS))],
)
async def list_entries(
    class_name: Optional[str] = Query(None),
    section: Optional[str] = Query(None),
    teacher_id: Optional[UUID] = Query(None),
    day: Optional[str] = Query(None, description="monday .. sunday"),
    school_id: Optional[UUID] = SCHOOL_OVERRIDE,
    all_schools: bool = ALL_SCHOOLS,
    service: TimetableService = Depends(get_timetable_service),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        scope = resolve_read_scope(current_user, school_id, all_schools)
        return await service.list_entries(
            scope, class_name=class_name, section=section, teacher_id=teacher_id, day=day
        )
    except ServiceError as e:
        raise _http_error(e)


@router.post(
    "",
    response_model=TimetableEntryResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_roles(*EDITORS))],
)
async def create_entry(
    payload: TimetableEntryCreate,
    school_id: Optional[UUID] = SCHOOL_OVERRIDE,
    service: TimetableService = Depends(get_timetable_service),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        target = resolve_write_school(current_user, school_id)
        return await service.create_entry(target, payload, elevated=is_elevated(current_user))
    except ServiceError as e:
        raise _http_error(e)


@router.post(
    "/validate",
    response_model=CandidateValidationResult,
    dependencies=[Depends(require_roles(*EDITORS))],
)
async def validate_candidate(
    payload: TimetableCandidate,
    school_id: Optional[UUID] = SCHOOL_OVERRIDE,
    service: TimetableService = Depends(get_timetable_service),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        target = resolve_write_school(current_user, school_id)
        return await service.validate_candidate(target, payload)
    except ServiceError as e:
        raise _http_error(e)


@router.get("/classes", response_model=List[str])
async def derive_classes(
    school_id: Optional[UUID] = SCHOOL_OVERRIDE,
    store: TimetableStore = Depends(get_timetable_store),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await reports.derive_classes(store, resolve_read_scope(current_user, school_id))
    except ServiceError as e:
        raise _http_error(e)


@router.get("/classes/{class_name}/sections", response_model=List[str])
async def derive_sections(
    class_name: str,
    school_id: Optional[UUID] = SCHOOL_OVERRIDE,
    store: TimetableStore = Depends(get_timetable_store),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await reports.derive_sections(store, resolve_read_scope(current_user, school_id), class_name)
    except ServiceError as e:
        raise _http_error(e)


@router.get("/time-slots", response_model=List[TimeSlot])
async def derive_time_slots(
    class_name: Optional[str] = Query(None),
    school_id: Optional[UUID] = SCHOOL_OVERRIDE,
    store: TimetableStore = Depends(get_timetable_store),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        scope = resolve_read_scope(current_user, school_id)
        return await reports.derive_time_slots(store, scope, class_name=class_name)
    except ServiceError as e:
        raise _http_error(e)


@router.get(
    "/stats",
    response_model=TimetableStats,
    dependencies=[Depends(require_roles(UserRole.SCHOOL_ADMIN))],
)
async def timetable_stats(
    school_id: Optional[UUID] = SCHOOL_OVERRIDE,
    all_schools: bool = ALL_SCHOOLS,
    store: TimetableStore = Depends(get_timetable_store),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await reports.summarize(store, resolve_read_scope(current_user, school_id, all_schools))
    except ServiceError as e:
        raise _http_error(e)


@router.get("/weekly", response_model=WeeklyTimetable)
async def weekly_timetable(
    class_name: Optional[str] = Query(None),
    section: Optional[str] = Query(None),
    teacher_id: Optional[UUID] = Query(None),
    school_id: Optional[UUID] = SCHOOL_OVERRIDE,
    service: TimetableService = Depends(get_timetable_service),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        scope = resolve_read_scope(current_user, school_id)
        return await reports.weekly_view(
            service, scope, class_name=class_name, section=section, teacher_id=teacher_id
        )
    except ServiceError as e:
        raise _http_error(e)


@router.get("/class/{class_name}", response_model=List[TimetableEntryResponse])
async def get_by_class_section(
    class_name: str,
    section: Optional[str] = Query(None, description="Omit for classes without sections"),
    school_id: Optional[UUID] = SCHOOL_OVERRIDE,
    service: TimetableService = Depends(get_timetable_service),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        scope = resolve_read_scope(current_user, school_id)
        return await service.get_by_class_section(scope, class_name, section)
    except ServiceError as e:
        raise _http_error(e)


@router.get("/{entry_id}", response_model=TimetableEntryResponse)
async def get_entry(
    entry_id: UUID,
    school_id: Optional[UUID] = SCHOOL_OVERRIDE,
    service: TimetableService = Depends(get_timetable_service),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.get_entry(resolve_read_scope(current_user, school_id), entry_id)
    except ServiceError as e:
        raise _http_error(e)


@router.put(
    "/{entry_id}",
    response_model=TimetableEntryResponse,
    dependencies=[Depends(require_roles(*EDITORS))],
)
async def update_entry(
    entry_id: UUID,
    payload: TimetableEntryPatch,
    school_id: Optional[UUID] = SCHOOL_OVERRIDE,
    service: TimetableService = Depends(get_timetable_service),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        target = resolve_write_school(current_user, school_id)
        return await service.update_entry(target, entry_id, payload, elevated=is_elevated(current_user))
    except ServiceError as e:
        raise _http_error(e)


@router.delete(
    "/{entry_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_roles(UserRole.SCHOOL_ADMIN))],
)
async def delete_entry(
    entry_id: UUID,
    school_id: Optional[UUID] = SCHOOL_OVERRIDE,
    service: TimetableService = Depends(get_timetable_service),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        await service.delete_entry(resolve_write_school(current_user, school_id), entry_id)
    except ServiceError as e:
        raise _http_error(e)
