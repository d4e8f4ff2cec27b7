"""
School scope resolution. Every timetable read and write is filtered to one school;
only PLATFORM_ADMIN may name another school or ask for all schools, and each such
override is logged with the caller id.
"""

import logging
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from schoolerp.auth.rbac import is_elevated
from schoolerp.auth.schemas import CurrentUser
from schoolerp.core.exceptions import PermissionDeniedError, ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SchoolScope:
    """school_id None means every school (elevated override only)."""

    school_id: Optional[UUID]

    @property
    def all_schools(self) -> bool:
        return self.school_id is None

    @classmethod
    def single(cls, school_id: UUID) -> "SchoolScope":
        return cls(school_id=school_id)

    @classmethod
    def everywhere(cls) -> "SchoolScope":
        return cls(school_id=None)


def _check_override(current_user: CurrentUser, school_id: Optional[UUID]) -> None:
    if school_id is None or school_id == current_user.school_id:
        return
    if not is_elevated(current_user):
        raise PermissionDeniedError("You can only access your own school's timetable")
    logger.info("Scope override by user %s (%s): school %s", current_user.id, current_user.role, school_id)


def resolve_read_scope(
    current_user: CurrentUser,
    school_id: Optional[UUID] = None,
    all_schools: bool = False,
) -> SchoolScope:
    """Default is the caller's own school for every role."""
    if all_schools:
        if not is_elevated(current_user):
            raise PermissionDeniedError("Only platform administrators can read all schools")
        logger.info("Scope override by user %s (%s): all schools", current_user.id, current_user.role)
        return SchoolScope.everywhere()
    _check_override(current_user, school_id)
    target = school_id or current_user.school_id
    if target is None:
        raise ValidationError("school_id is required for accounts without a school")
    return SchoolScope.single(target)


def resolve_write_school(current_user: CurrentUser, school_id: Optional[UUID] = None) -> UUID:
    """Writes always target exactly one school."""
    _check_override(current_user, school_id)
    target = school_id or current_user.school_id
    if target is None:
        raise ValidationError("school_id is required for accounts without a school")
    return target
