from typing import Any, Dict, List, Optional

from fastapi import status

from schoolerp.core.enums import ErrorCode


class ServiceError(Exception):
    """Base exception for service layer errors."""

    code: ErrorCode = ErrorCode.STORAGE_ERROR

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        code: Optional[ErrorCode] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        if code is not None:
            self.code = code

    def to_detail(self) -> Dict[str, Any]:
        """Body of the HTTP error: discriminant tag plus human message."""
        return {"code": self.code.value, "message": self.message}


class ValidationError(ServiceError):
    """Missing or malformed input. Always a client mistake."""

    code = ErrorCode.VALIDATION

    def __init__(self, message: str, code: ErrorCode = ErrorCode.VALIDATION) -> None:
        super().__init__(message, status.HTTP_400_BAD_REQUEST, code)


class PermissionDeniedError(ServiceError):
    code = ErrorCode.FORBIDDEN

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_403_FORBIDDEN, ErrorCode.FORBIDDEN)


class NotFoundError(ServiceError):
    """
    Entry, teacher or school absent, or owned by another school.
    Both cases look the same to the caller so tenant existence does not leak.
    """

    code = ErrorCode.ENTRY_NOT_FOUND

    def __init__(self, message: str, code: ErrorCode = ErrorCode.ENTRY_NOT_FOUND) -> None:
        super().__init__(message, status.HTTP_404_NOT_FOUND, code)


class ConflictError(ServiceError):
    """Teacher or class/section double-booking. Carries the blocking entries for display."""

    code = ErrorCode.TEACHER_CONFLICT

    def __init__(self, message: str, code: ErrorCode, conflicts: Optional[List[Dict[str, Any]]] = None) -> None:
        super().__init__(message, status.HTTP_409_CONFLICT, code)
        self.conflicts = conflicts or []

    def to_detail(self) -> Dict[str, Any]:
        detail = super().to_detail()
        detail["conflicts"] = self.conflicts
        return detail


class StorageError(ServiceError):
    """Transient database failure. Not retried here; the storage client owns retries."""

    code = ErrorCode.STORAGE_ERROR

    def __init__(self, message: str = "Timetable storage is unavailable") -> None:
        super().__init__(message, status.HTTP_503_SERVICE_UNAVAILABLE, ErrorCode.STORAGE_ERROR)
