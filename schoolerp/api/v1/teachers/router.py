from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from schoolerp.auth.dependencies import get_current_user
from schoolerp.auth.rbac import require_roles
from schoolerp.auth.schemas import CurrentUser
from schoolerp.auth.scope import resolve_write_school
from schoolerp.core.enums import UserRole
from schoolerp.core.exceptions import ServiceError
from schoolerp.db.session import get_db

from .schemas import TeacherDropdownItem
from . import service

router = APIRouter(prefix="/api/v1/teachers", tags=["teachers"])


@router.get(
    "",
    response_model=List[TeacherDropdownItem],
    dependencies=[Depends(require_roles(UserRole.SCHOOL_ADMIN, UserRole.TEACHER))],
)
async def list_active_teachers(
    school_id: Optional[UUID] = Query(None, description="Other school (platform admin only)"),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        target = resolve_write_school(current_user, school_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
    return await service.list_active_teachers(db, target)
