"""Repository for recurring expense operations."""

import logging
from datetime import date
from enum import Enum
from typing import List, Optional, Set

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from components.core.config import get_settings
from components.core.exceptions import (
    BillingValidationError,
    ConcurrencyConflict,
    NotFoundError,
)
from components.expense import generator, schemas
from components.expense.models import RecurringExpense, ExpenseOccurrence

logger = logging.getLogger(__name__)

settings = get_settings()


def _to_schema(row: RecurringExpense) -> schemas.RecurringExpense:
    template = schemas.RecurringExpense.model_validate(row)
    if not template.is_active:
        return template
    return template.model_copy(update={"next_due_date": generator.next_due_date(template, date.today())})


def _template_values(data: schemas.RecurringExpenseCreate) -> dict:
    return {
        field: value.value if isinstance(value, Enum) else value
        for field, value in data.model_dump().items()
    }


class RecurringExpenseRepository:
    """Repository for recurring expense operations."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session."""
        self.session = session

    async def _load_template(self, template_id: int, for_update: bool = False) -> RecurringExpense:
        query = select(RecurringExpense).where(RecurringExpense.id == template_id)
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        row = result.scalar_one_or_none()
        if row is None:
            raise NotFoundError(f"Recurring expense {template_id} not found")
        return row

    async def _load_occurrence(self, occurrence_id: int) -> ExpenseOccurrence:
        result = await self.session.execute(
            select(ExpenseOccurrence).where(ExpenseOccurrence.id == occurrence_id).with_for_update()
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise NotFoundError(f"Expense {occurrence_id} not found")
        return row

    async def _existing_keys(self, template_ids: List[int]) -> Set[generator.OccurrenceKey]:
        if not template_ids:
            return set()
        result = await self.session.execute(
            select(ExpenseOccurrence.recurring_expense_id, ExpenseOccurrence.period_start)
            .where(ExpenseOccurrence.recurring_expense_id.in_(template_ids))
        )
        return {(row[0], row[1]) for row in result.all()}

    async def _insert_drafts(self, drafts: List[schemas.OccurrenceDraft]) -> List[ExpenseOccurrence]:
        rows = [
            ExpenseOccurrence(
                recurring_expense_id=draft.recurring_expense_id,
                period_start=draft.period_start,
                due_date=draft.due_date,
                window_end=draft.window_end,
                amount=draft.amount,
                estimated_amount=draft.estimated_amount,
                status=schemas.OccurrenceStatus.PENDING.value,
                description=draft.description,
            )
            for draft in drafts
        ]
        self.session.add_all(rows)
        try:
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            logger.warning("Duplicate occurrence rejected during generation: %s", e)
            raise ConcurrencyConflict(
                "Expenses for this period were generated by another request; reload and retry"
            ) from e
        return rows

    async def create(self, data: schemas.RecurringExpenseCreate) -> schemas.RecurringExpense:
        """Create a new recurring expense."""
        row = RecurringExpense(**_template_values(data))
        self.session.add(row)
        await self.session.commit()
        await self.session.refresh(row)
        logger.info("Created recurring expense %s (%s)", row.id, row.title)
        return _to_schema(row)

    async def get_by_id(self, template_id: int) -> Optional[schemas.RecurringExpense]:
        """Get recurring expense by ID."""
        result = await self.session.execute(
            select(RecurringExpense).where(RecurringExpense.id == template_id)
        )
        row = result.scalar_one_or_none()
        return _to_schema(row) if row is not None else None

    async def get_all(
        self,
        institution_id: Optional[int] = None,
        is_active: Optional[bool] = None,
        category: Optional[str] = None,
    ) -> List[schemas.RecurringExpense]:
        """Get all recurring expenses with optional filtering."""
        query = select(RecurringExpense)
        if institution_id is not None:
            query = query.where(RecurringExpense.institution_id == institution_id)
        if is_active is not None:
            query = query.where(RecurringExpense.is_active == is_active)
        if category:
            query = query.where(RecurringExpense.category == category)
        result = await self.session.execute(query.order_by(RecurringExpense.title))
        return [_to_schema(row) for row in result.scalars().all()]

    async def update(
        self, template_id: int, data: schemas.RecurringExpenseCreate
    ) -> Optional[schemas.RecurringExpense]:
        """Update a recurring expense. Occurrences already generated keep their values."""
        result = await self.session.execute(
            select(RecurringExpense).where(RecurringExpense.id == template_id)
        )
        row = result.scalar_one_or_none()
        if row is None:
            return None

        for field, value in _template_values(data).items():
            setattr(row, field, value)
        await self.session.commit()
        await self.session.refresh(row)
        return _to_schema(row)

    async def delete(self, template_id: int) -> Optional[str]:
        """
        Delete a recurring expense.

        Returns "deleted", or "deactivated" when occurrences still reference
        the template, or None when it does not exist.
        """
        result = await self.session.execute(
            select(RecurringExpense).where(RecurringExpense.id == template_id)
        )
        row = result.scalar_one_or_none()
        if row is None:
            return None

        count = await self.session.execute(
            select(func.count(ExpenseOccurrence.id))
            .where(ExpenseOccurrence.recurring_expense_id == template_id)
        )
        if count.scalar() > 0:
            row.is_active = False
            await self.session.commit()
            logger.info("Deactivated recurring expense %s instead of deleting it", template_id)
            return "deactivated"

        await self.session.delete(row)
        await self.session.commit()
        return "deleted"

    async def generate(self, template_id: int, start: date, end: date) -> List[schemas.ExpenseOccurrence]:
        """Generate the missing occurrences of one template for a date range."""
        row = await self._load_template(template_id, for_update=True)
        template = schemas.RecurringExpense.model_validate(row)
        existing = await self._existing_keys([template_id])

        drafts = generator.generate_occurrences(template, start, end, existing)
        rows = await self._insert_drafts(drafts)
        logger.info("Generated %d occurrence(s) for recurring expense %s", len(rows), template_id)
        return [schemas.ExpenseOccurrence.model_validate(r) for r in rows]

    async def generate_all(self, institution_id: int, end: Optional[date] = None) -> int:
        """Generate missing occurrences for every active template of an institution."""
        result = await self.session.execute(
            select(RecurringExpense)
            .where(
                RecurringExpense.institution_id == institution_id,
                RecurringExpense.is_active == True,  # noqa: E712
            )
            .with_for_update()
        )
        templates = [schemas.RecurringExpense.model_validate(row) for row in result.scalars().all()]
        existing = await self._existing_keys([template.id for template in templates])

        drafts = generator.generate_for_templates(
            templates,
            end or date.today(),
            existing,
            lookahead_months=settings.GENERATION_LOOKAHEAD_MONTHS,
        )
        rows = await self._insert_drafts(drafts)
        logger.info("Generated %d occurrence(s) for institution %s", len(rows), institution_id)
        return len(rows)

    async def list_occurrences(
        self, template_id: int, today: Optional[date] = None
    ) -> List[schemas.ExpenseOccurrence]:
        """Get the occurrences of a template, newest first, with overdue ones marked."""
        result = await self.session.execute(
            select(ExpenseOccurrence)
            .where(ExpenseOccurrence.recurring_expense_id == template_id)
            .order_by(ExpenseOccurrence.due_date.desc())
        )
        occurrences = [schemas.ExpenseOccurrence.model_validate(row) for row in result.scalars().all()]
        return generator.refresh_statuses(occurrences, today or date.today())

    async def pending_dashboard(
        self,
        institution_id: Optional[int],
        today: date,
        days: Optional[int] = None,
        include_paid: bool = False,
    ) -> schemas.OccurrenceBuckets:
        """Overdue / this week / upcoming occurrences for the dashboard."""
        statuses = [schemas.OccurrenceStatus.PENDING.value, schemas.OccurrenceStatus.OVERDUE.value]
        if include_paid:
            statuses.append(schemas.OccurrenceStatus.PAID.value)

        query = (
            select(ExpenseOccurrence)
            .join(RecurringExpense, ExpenseOccurrence.recurring_expense_id == RecurringExpense.id)
            .where(ExpenseOccurrence.status.in_(statuses))
        )
        if institution_id is not None:
            query = query.where(RecurringExpense.institution_id == institution_id)
        result = await self.session.execute(query.order_by(ExpenseOccurrence.due_date))
        rows = list(result.scalars().all())

        # Overdue is derived at query time; only "paid" is ever stored over "pending"
        refreshed = generator.refresh_statuses(
            [schemas.ExpenseOccurrence.model_validate(row) for row in rows], today
        )
        return generator.classify_occurrences(
            refreshed, today, horizon_days=days, week_days=settings.DASHBOARD_WEEK_DAYS
        )

    async def pay_occurrence(
        self, occurrence_id: int, request: schemas.PayOccurrenceRequest, today: date
    ) -> schemas.ExpenseOccurrence:
        """Mark an occurrence paid."""
        row = await self._load_occurrence(occurrence_id)
        template_row = await self._load_template(row.recurring_expense_id)

        paid = generator.settle_occurrence(
            schemas.ExpenseOccurrence.model_validate(row),
            schemas.RecurringExpense.model_validate(template_row),
            request,
            today,
        )
        row.amount = paid.amount
        row.status = paid.status.value
        row.paid_date = paid.paid_date
        row.ledger_entry_id = paid.ledger_entry_id
        row.notes = paid.notes
        await self.session.commit()
        logger.info("Expense %s paid: %s", occurrence_id, paid.amount)
        return schemas.ExpenseOccurrence.model_validate(row)

    async def delete_occurrence(self, occurrence_id: int) -> bool:
        """Delete an unpaid occurrence."""
        result = await self.session.execute(
            select(ExpenseOccurrence).where(ExpenseOccurrence.id == occurrence_id)
        )
        row = result.scalar_one_or_none()
        if row is None:
            return False
        if row.status == schemas.OccurrenceStatus.PAID.value:
            raise BillingValidationError("Paid expenses cannot be deleted")
        await self.session.delete(row)
        await self.session.commit()
        return True
