from __future__ import annotations

from fastapi import HTTPException

from app.application.exceptions import (
    AlreadyDecided,
    AlreadyHasActiveReservation,
    BookingError,
    CapacityConflict,
    InvalidInput,
    NotAuthenticated,
    PastDeadline,
    PermissionDenied,
    SlotTaken,
    TransactionConflict,
)

STATUS_BY_ERROR: dict[type[BookingError], int] = {
    NotAuthenticated: 401,
    PermissionDenied: 403,
    InvalidInput: 400,
    CapacityConflict: 409,
    SlotTaken: 409,
    AlreadyHasActiveReservation: 409,
    AlreadyDecided: 409,
    TransactionConflict: 409,
    PastDeadline: 410,
}


def to_http_exception(error: BookingError) -> HTTPException:
    status_code = 500
    for error_type, code in STATUS_BY_ERROR.items():
        if isinstance(error, error_type):
            status_code = code
            break
    return HTTPException(
        status_code=status_code,
        detail={"code": error.code, "message": str(error), "retryable": error.retryable},
    )
