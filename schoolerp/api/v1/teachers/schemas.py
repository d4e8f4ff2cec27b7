from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class TeacherDropdownItem(BaseModel):
    """Teacher option for the timetable editor."""

    id: UUID = Field(..., description="Teacher UUID")
    name: str = Field(..., description="Full name")
    designation: Optional[str] = None
    subjects: List[str] = Field(default_factory=list)
