"""Payment plan endpoints for the API."""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from components.core.exceptions import BillingError
from components.core.init_db import get_db
from components.plan import schemas
from components.plan.repository import PaymentPlanRepository
from restapi.endpoints.helpers import http_error

router = APIRouter(
    prefix="/payment-plans",
    tags=["payment-plans"],
    responses={404: {"description": "Not found"}},
)


@router.post("/preview", response_model=schemas.PaymentPlan)
async def preview_plan(request: schemas.PlanPreviewRequest, db: AsyncSession = Depends(get_db)):
    """
    Build a payment plan from the billing choices without saving it.

    The quote carries warnings (for example a discount larger than the
    total, or custom amounts exceeding the base) instead of failing, so the
    user can see and correct them.
    """
    repo = PaymentPlanRepository(db)
    try:
        return await repo.preview(request.institution_id, request.config)
    except BillingError as e:
        raise http_error(e) from e


@router.post("/", response_model=schemas.PaymentPlan, status_code=201)
async def create_plan(data: schemas.PaymentPlanCreate, db: AsyncSession = Depends(get_db)):
    """Build a payment plan for an enrollment and save it."""
    repo = PaymentPlanRepository(db)
    try:
        return await repo.create(data)
    except BillingError as e:
        raise http_error(e) from e


@router.get("/", response_model=List[schemas.PaymentPlan])
async def get_plans(
    institution_id: Optional[int] = Query(None, description="Filter by institution"),
    enrollment_id: Optional[int] = Query(None, description="Filter by enrollment"),
    db: AsyncSession = Depends(get_db),
):
    """Get payment plans with optional filtering."""
    repo = PaymentPlanRepository(db)
    return await repo.get_all(institution_id=institution_id, enrollment_id=enrollment_id)


@router.get("/{plan_id}", response_model=schemas.PaymentPlan)
async def get_plan(plan_id: int, db: AsyncSession = Depends(get_db)):
    """Get a payment plan with its installments."""
    repo = PaymentPlanRepository(db)
    plan = await repo.get_by_id(plan_id)
    if plan is None:
        raise HTTPException(status_code=404, detail="Payment plan not found")
    return plan


@router.put("/{plan_id}", response_model=schemas.PaymentPlan)
async def edit_plan(plan_id: int, edit: schemas.PlanEdit, db: AsyncSession = Depends(get_db)):
    """
    Change the total or the discount of a saved plan.

    Amounts are redistributed over the installments; custom amounts and
    installments that already received payments keep their amounts.
    """
    repo = PaymentPlanRepository(db)
    try:
        return await repo.edit(plan_id, edit)
    except BillingError as e:
        raise http_error(e) from e


@router.put("/{plan_id}/installments/{installment_number}/amount", response_model=schemas.PaymentPlan)
async def set_custom_amount(
    plan_id: int,
    installment_number: int,
    data: schemas.CustomAmountUpdate,
    db: AsyncSession = Depends(get_db),
):
    """Give an installment a custom amount; the others share what is left."""
    repo = PaymentPlanRepository(db)
    try:
        return await repo.set_custom_amount(plan_id, installment_number, data.amount)
    except BillingError as e:
        raise http_error(e) from e


@router.post("/{plan_id}/installments/{installment_number}/reset", response_model=schemas.PaymentPlan)
async def reset_to_automatic(plan_id: int, installment_number: int, db: AsyncSession = Depends(get_db)):
    """Return an installment to the automatic split."""
    repo = PaymentPlanRepository(db)
    try:
        return await repo.reset_to_automatic(plan_id, installment_number)
    except BillingError as e:
        raise http_error(e) from e


@router.delete("/{plan_id}")
async def delete_plan(plan_id: int, db: AsyncSession = Depends(get_db)):
    """Delete a payment plan that has no recorded payments."""
    repo = PaymentPlanRepository(db)
    try:
        deleted = await repo.delete(plan_id)
    except BillingError as e:
        raise http_error(e) from e
    if not deleted:
        raise HTTPException(status_code=404, detail="Payment plan not found")
    return {"message": "Payment plan deleted"}


@router.post("/{plan_id}/payments", response_model=schemas.PaymentApplication)
async def apply_payment(plan_id: int, payment: schemas.PaymentCreate, db: AsyncSession = Depends(get_db)):
    """
    Record a received payment against an installment.

    Whatever exceeds the target installment cascades to the following
    ones in order. An amount left after the last installment is returned
    as `surplus` and kept as the plan's credit balance.
    Sending `expected_version` makes the request fail with 409 when the
    plan changed since it was read.
    """
    repo = PaymentPlanRepository(db)
    try:
        return await repo.apply_payment(plan_id, payment)
    except BillingError as e:
        raise http_error(e) from e


@router.post("/{plan_id}/refund-installment", response_model=schemas.RefundResult)
async def refund_installment(plan_id: int, data: schemas.RefundCreate, db: AsyncSession = Depends(get_db)):
    """Reverse the payments recorded on one installment."""
    repo = PaymentPlanRepository(db)
    try:
        return await repo.refund_installment(plan_id, data.installment_number, data.refund_reason)
    except BillingError as e:
        raise http_error(e) from e
