"""Proration endpoints for monthly priced courses."""

from datetime import date

from fastapi import APIRouter

from components.core.exceptions import BillingError
from components.proration import calculator, schemas
from restapi.endpoints.helpers import http_error

router = APIRouter(
    prefix="/proration",
    tags=["proration"],
    responses={400: {"description": "Invalid request"}},
)


@router.post("/calculate", response_model=schemas.ProrationResult)
async def calculate(request: schemas.ProrationRequest):
    """
    Count lessons per month and compare full-month and prorated pricing.

    Returns:
    - Lesson counts of every billed month
    - Lessons before and after the enrollment date in the first month
    - Total when every month is billed in full
    - Total when the first month is charged per remaining lesson, and the savings
    - Total when every lesson is charged separately
    """
    try:
        return calculator.calculate_proration(request, date.today())
    except BillingError as e:
        raise http_error(e) from e
