from fastapi import Depends, HTTPException, status

from schoolerp.auth.dependencies import get_current_user
from schoolerp.auth.schemas import CurrentUser
from schoolerp.core.enums import UserRole


ELEVATED_ROLES = (UserRole.PLATFORM_ADMIN.value,)


def is_elevated(current_user: CurrentUser) -> bool:
    """Elevated callers may widen school scope and assign any school's teachers."""
    return current_user.role in ELEVATED_ROLES


def require_roles(*roles: UserRole):
    """
    Dependency factory to restrict an endpoint to the given roles.

    Example:
        Depends(require_roles(UserRole.SCHOOL_ADMIN, UserRole.TEACHER))
    """
    allowed = {r.value for r in roles}

    async def _checker(current_user: CurrentUser = Depends(get_current_user)) -> None:
        if is_elevated(current_user):
            return
        if current_user.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )

    return _checker
