"""
Domain errors for capacity and reservation accounting.

Services raise these; the exception handler registered in main.py turns
them into JSON responses. Each error carries its HTTP status and a stable
machine-readable code so clients can tell "sold out" from "too late".
"""

from fastapi import Request, status
from fastapi.responses import JSONResponse

from app.core.logging import get_logger

logger = get_logger(__name__)


class CapacityError(Exception):
    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "CAPACITY_ERROR"

    def __init__(self, detail: str, **context):
        super().__init__(detail)
        self.detail = detail
        self.context = context


class CapacityExceeded(CapacityError):
    status_code = status.HTTP_409_CONFLICT
    code = "CAPACITY_EXCEEDED"


class InvalidHoldTransition(CapacityError):
    status_code = status.HTTP_409_CONFLICT
    code = "INVALID_HOLD_TRANSITION"


class HoldExpired(CapacityError):
    status_code = status.HTTP_410_GONE
    code = "HOLD_EXPIRED"


class ReconciliationConflict(CapacityError):
    """Sweep found a hold that was already terminal. Never surfaced to users."""

    status_code = status.HTTP_409_CONFLICT
    code = "RECONCILIATION_CONFLICT"


class ReservationContention(CapacityError):
    status_code = status.HTTP_409_CONFLICT
    code = "RESERVATION_CONTENTION"


class CapacityNotConfigured(CapacityError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "CAPACITY_NOT_CONFIGURED"


class CapacityConfigurationError(CapacityError):
    status_code = status.HTTP_409_CONFLICT
    code = "INVALID_CAPACITY_CONFIGURATION"


class ResourceNotFound(CapacityError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"


class WaitlistDisabled(CapacityError):
    status_code = status.HTTP_409_CONFLICT
    code = "WAITLIST_DISABLED"


class AlreadyOnWaitlist(CapacityError):
    status_code = status.HTTP_409_CONFLICT
    code = "ALREADY_ON_WAITLIST"


class InvalidWaitlistTransition(CapacityError):
    status_code = status.HTTP_409_CONFLICT
    code = "INVALID_WAITLIST_STATUS"


class WaitlistOfferExpired(CapacityError):
    status_code = status.HTTP_410_GONE
    code = "WAITLIST_EXPIRED"


async def capacity_error_handler(request: Request, exc: CapacityError) -> JSONResponse:
    if exc.status_code >= status.HTTP_409_CONFLICT:
        logger.warning(
            "capacity_error",
            code=exc.code,
            status_code=exc.status_code,
            detail=exc.detail,
            **exc.context,
        )
    body = {"detail": exc.detail, "code": exc.code}
    if exc.context:
        body["context"] = exc.context
    return JSONResponse(status_code=exc.status_code, content=body)
