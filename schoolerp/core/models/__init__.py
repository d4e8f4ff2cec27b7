from schoolerp.core.models.school import School
from schoolerp.core.models.teacher import Teacher
from schoolerp.core.models.timetable import TimetableEntry

__all__ = [
    "School",
    "Teacher",
    "TimetableEntry",
]
