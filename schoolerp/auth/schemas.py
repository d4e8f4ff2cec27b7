from typing import Optional
from uuid import UUID

from pydantic import BaseModel


class CurrentUser(BaseModel):
    """Lightweight representation of the authenticated user for RBAC and school scoping.
    school_id is None only for PLATFORM_ADMIN accounts that are not attached to a school.
    """

    id: UUID
    school_id: Optional[UUID] = None
    role: str
    full_name: Optional[str] = None
