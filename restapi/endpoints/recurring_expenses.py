"""Recurring expense endpoints for the API."""

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from components.core.exceptions import BillingError
from components.core.init_db import get_db
from components.expense import schemas
from components.expense.repository import RecurringExpenseRepository
from restapi.endpoints.helpers import http_error

router = APIRouter(
    prefix="/recurring-expenses",
    tags=["recurring-expenses"],
    responses={404: {"description": "Not found"}},
)


@router.get("/", response_model=List[schemas.RecurringExpense])
async def get_recurring_expenses(
    institution_id: Optional[int] = Query(None, description="Filter by institution"),
    is_active: Optional[bool] = Query(None, description="Filter by active state"),
    category: Optional[str] = Query(None, description="Filter by category"),
    db: AsyncSession = Depends(get_db),
):
    """Get recurring expense templates with optional filtering."""
    repo = RecurringExpenseRepository(db)
    return await repo.get_all(institution_id=institution_id, is_active=is_active, category=category)


@router.post("/", response_model=schemas.RecurringExpense, status_code=201)
async def create_recurring_expense(data: schemas.RecurringExpenseCreate, db: AsyncSession = Depends(get_db)):
    """Create a recurring expense template."""
    repo = RecurringExpenseRepository(db)
    return await repo.create(data)


@router.post("/generate-all", response_model=schemas.GenerateResponse)
async def generate_all(request: schemas.GenerateAllRequest, db: AsyncSession = Depends(get_db)):
    """
    Bring every active template of an institution up to date.

    Occurrences are generated from each template's start date up to
    `end_date` (today by default) plus the configured lookahead.
    Periods that already have an occurrence are skipped.
    """
    repo = RecurringExpenseRepository(db)
    try:
        count = await repo.generate_all(request.institution_id, request.end_date)
    except BillingError as e:
        raise http_error(e) from e
    return schemas.GenerateResponse(message=f"{count} expense(s) generated", generated=count)


@router.get("/pending/list", response_model=schemas.OccurrenceBuckets)
async def get_pending_expenses(
    institution_id: Optional[int] = Query(None, description="Filter by institution"),
    days: Optional[int] = Query(None, ge=0, description="Only include upcoming expenses due within this many days"),
    include_paid: bool = Query(False, description="Also return paid expenses"),
    db: AsyncSession = Depends(get_db),
):
    """
    Get unpaid expenses split for the dashboard.

    Returns overdue, due this week and upcoming expenses, with the count
    and amount of every group.
    """
    repo = RecurringExpenseRepository(db)
    return await repo.pending_dashboard(institution_id, date.today(), days=days, include_paid=include_paid)


@router.post("/pay/{occurrence_id}", response_model=schemas.ExpenseOccurrence)
async def pay_expense(
    occurrence_id: int,
    request: schemas.PayOccurrenceRequest,
    db: AsyncSession = Depends(get_db),
):
    """Mark a generated expense as paid, correcting the amount of variable expenses."""
    repo = RecurringExpenseRepository(db)
    try:
        return await repo.pay_occurrence(occurrence_id, request, date.today())
    except BillingError as e:
        raise http_error(e) from e


@router.delete("/expense/{occurrence_id}")
async def delete_expense(occurrence_id: int, db: AsyncSession = Depends(get_db)):
    """Delete a generated expense that has not been paid."""
    repo = RecurringExpenseRepository(db)
    try:
        deleted = await repo.delete_occurrence(occurrence_id)
    except BillingError as e:
        raise http_error(e) from e
    if not deleted:
        raise HTTPException(status_code=404, detail="Expense not found")
    return {"message": "Expense deleted"}


@router.get("/{template_id}", response_model=schemas.RecurringExpense)
async def get_recurring_expense(template_id: int, db: AsyncSession = Depends(get_db)):
    """Get a recurring expense template."""
    repo = RecurringExpenseRepository(db)
    template = await repo.get_by_id(template_id)
    if template is None:
        raise HTTPException(status_code=404, detail="Recurring expense not found")
    return template


@router.put("/{template_id}", response_model=schemas.RecurringExpense)
async def update_recurring_expense(
    template_id: int,
    data: schemas.RecurringExpenseCreate,
    db: AsyncSession = Depends(get_db),
):
    """Update a recurring expense template. Already generated expenses are left as they are."""
    repo = RecurringExpenseRepository(db)
    template = await repo.update(template_id, data)
    if template is None:
        raise HTTPException(status_code=404, detail="Recurring expense not found")
    return template


@router.delete("/{template_id}")
async def delete_recurring_expense(template_id: int, db: AsyncSession = Depends(get_db)):
    """
    Delete a recurring expense template.

    A template with generated expenses is deactivated instead, so its
    history stays queryable.
    """
    repo = RecurringExpenseRepository(db)
    outcome = await repo.delete(template_id)
    if outcome is None:
        raise HTTPException(status_code=404, detail="Recurring expense not found")
    if outcome == "deactivated":
        return {"message": "Recurring expense has generated expenses and was deactivated"}
    return {"message": "Recurring expense deleted"}


@router.post("/{template_id}/generate", response_model=schemas.GenerateResponse)
async def generate_expenses(
    template_id: int,
    request: schemas.GenerateRequest,
    db: AsyncSession = Depends(get_db),
):
    """Generate the expenses of a template due in a date range, skipping existing ones."""
    repo = RecurringExpenseRepository(db)
    try:
        expenses = await repo.generate(template_id, request.start_date, request.end_date)
    except BillingError as e:
        raise http_error(e) from e
    return schemas.GenerateResponse(
        message=f"{len(expenses)} expense(s) generated",
        generated=len(expenses),
        expenses=expenses,
    )


@router.get("/{template_id}/expenses", response_model=List[schemas.ExpenseOccurrence])
async def get_template_expenses(template_id: int, db: AsyncSession = Depends(get_db)):
    """Get the generated expenses of a template, newest first."""
    repo = RecurringExpenseRepository(db)
    if await repo.get_by_id(template_id) is None:
        raise HTTPException(status_code=404, detail="Recurring expense not found")
    return await repo.list_occurrences(template_id)
