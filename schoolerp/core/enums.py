from enum import Enum


class Weekday(str, Enum):
    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"


# Monday first; used for ordering listings and grouped views
WEEKDAY_ORDER = {day.value: index for index, day in enumerate(Weekday)}


class UserRole(str, Enum):
    PLATFORM_ADMIN = "PLATFORM_ADMIN"
    SCHOOL_ADMIN = "SCHOOL_ADMIN"
    TEACHER = "TEACHER"
    STUDENT = "STUDENT"
    PARENT = "PARENT"


class ConflictType(str, Enum):
    TEACHER_CONFLICT = "TEACHER_CONFLICT"
    CLASS_CONFLICT = "CLASS_CONFLICT"


class ErrorCode(str, Enum):
    VALIDATION = "VALIDATION"
    CROSS_TENANT_TEACHER = "CROSS_TENANT_TEACHER"
    FORBIDDEN = "FORBIDDEN"
    ENTRY_NOT_FOUND = "ENTRY_NOT_FOUND"
    TEACHER_NOT_FOUND = "TEACHER_NOT_FOUND"
    SCHOOL_NOT_FOUND = "SCHOOL_NOT_FOUND"
    TEACHER_CONFLICT = "TEACHER_CONFLICT"
    CLASS_CONFLICT = "CLASS_CONFLICT"
    STORAGE_ERROR = "STORAGE_ERROR"
