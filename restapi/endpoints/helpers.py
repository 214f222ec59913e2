"""Helpers shared by the billing endpoints."""

from fastapi import HTTPException

from components.core.exceptions import (
    BillingError,
    BillingValidationError,
    ConcurrencyConflict,
    NotFoundError,
)


def http_error(error: BillingError) -> HTTPException:
    """Translate a billing error into the HTTP error reported to the client."""
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, ConcurrencyConflict):
        return HTTPException(status_code=409, detail=str(error))
    if isinstance(error, BillingValidationError):
        return HTTPException(status_code=400, detail=str(error))
    return HTTPException(status_code=500, detail=str(error))
