import logging

from fastapi import Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from schoolerp.core.enums import ErrorCode

logger = logging.getLogger(__name__)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request body or query: same {code, message} detail as service errors, plus the field errors."""
    logger.info("Rejected request to %s: %d invalid field(s)", request.url.path, len(exc.errors()))
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "detail": {
                "code": ErrorCode.VALIDATION.value,
                "message": "Request validation failed",
                "errors": jsonable_encoder(exc.errors()),
            }
        },
    )
