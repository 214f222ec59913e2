"""Recurring expense generation and dashboard classification.

Periods of a template are anchored on the month of its start date and step
by the template frequency, so the same periods come out whatever date range
is asked for. An occurrence is identified by (template id, period start);
keys already present are never generated again.
"""

import calendar
import logging
from datetime import date, timedelta
from typing import Iterable, Iterator, List, Optional, Set, Tuple

from dateutil.relativedelta import relativedelta

from components.core.exceptions import BillingValidationError
from components.core.money import money_sum, quantize
from components.expense.schemas import (
    AmountType,
    BucketTotals,
    DueDayType,
    ExpenseOccurrence,
    OccurrenceBuckets,
    OccurrenceDraft,
    OccurrenceStatus,
    PayOccurrenceRequest,
    RecurringExpense,
)

logger = logging.getLogger(__name__)

OccurrenceKey = Tuple[int, date]


def period_starts(template: RecurringExpense, until: date) -> Iterator[date]:
    """First days of the template's periods, up to `until`."""
    anchor = template.start_date.replace(day=1)
    step = 0
    while True:
        period = anchor + relativedelta(months=step * template.frequency.months)
        if period > until:
            return
        yield period
        step += 1


def _clamp_day(period_start: date, day: int) -> date:
    last_day = calendar.monthrange(period_start.year, period_start.month)[1]
    return period_start.replace(day=min(day, last_day))


def due_window(template: RecurringExpense, period_start: date) -> Tuple[date, date]:
    """Due date and last day of the due window for one period."""
    if template.due_day_type == DueDayType.RANGE:
        return (
            _clamp_day(period_start, template.due_day_range_start),
            _clamp_day(period_start, template.due_day_range_end),
        )
    due = _clamp_day(period_start, template.due_day)
    return due, due


def generate_occurrences(
    template: RecurringExpense,
    start: date,
    end: date,
    existing_keys: Iterable[OccurrenceKey] = (),
) -> List[OccurrenceDraft]:
    """Occurrences of one template due in [start, end] that do not exist yet."""
    if end < start:
        raise BillingValidationError("Generation range end cannot be before its start")
    if not template.is_active:
        logger.debug("Template %s is inactive, nothing generated", template.id)
        return []

    lower = max(start, template.start_date)
    upper = min(end, template.end_date) if template.end_date else end
    if upper < lower:
        return []

    seen: Set[OccurrenceKey] = set(existing_keys)
    drafts = []
    for period in period_starts(template, upper):
        due, window_end = due_window(template, period)
        if due < lower or due > upper:
            continue
        key = (template.id, period)
        if key in seen:
            continue
        seen.add(key)
        drafts.append(OccurrenceDraft(
            recurring_expense_id=template.id,
            period_start=period,
            due_date=due,
            window_end=window_end,
            amount=template.estimated_amount,
            estimated_amount=template.estimated_amount,
            description=f"{template.title} - {due:%B %Y}",
        ))
    return drafts


def generate_for_templates(
    templates: Iterable[RecurringExpense],
    end: date,
    existing_keys: Iterable[OccurrenceKey] = (),
    lookahead_months: int = 1,
) -> List[OccurrenceDraft]:
    """Bring every active template up to date, plus a lookahead."""
    horizon = end + relativedelta(months=lookahead_months)
    existing = set(existing_keys)
    drafts = []
    for template in templates:
        if not template.is_active or template.start_date > horizon:
            continue
        drafts.extend(generate_occurrences(template, template.start_date, horizon, existing))
    return drafts


def next_due_date(template: RecurringExpense, today: date) -> Optional[date]:
    """Next due date on or after today, or None once the template has ended."""
    if template.end_date and template.end_date < today:
        return None
    from_date = max(today, template.start_date)
    until = from_date + relativedelta(months=template.frequency.months)
    for period in period_starts(template, until):
        due, _ = due_window(template, period)
        if due < from_date:
            continue
        if template.end_date and due > template.end_date:
            return None
        return due
    return None


def refresh_statuses(occurrences: Iterable[ExpenseOccurrence], today: date) -> List[ExpenseOccurrence]:
    """Copies with pending occurrences past their window marked overdue."""
    refreshed = []
    for occurrence in occurrences:
        if occurrence.status == OccurrenceStatus.PENDING and occurrence.window_end < today:
            occurrence = occurrence.model_copy(update={"status": OccurrenceStatus.OVERDUE})
        refreshed.append(occurrence)
    return refreshed


def classify_occurrences(
    occurrences: Iterable[ExpenseOccurrence],
    today: date,
    horizon_days: Optional[int] = None,
    week_days: int = 7,
) -> OccurrenceBuckets:
    """Split occurrences into overdue / this week / upcoming / paid."""
    week_end = today + timedelta(days=week_days)
    horizon = today + timedelta(days=horizon_days) if horizon_days is not None else None
    buckets = OccurrenceBuckets()

    for occurrence in sorted(occurrences, key=lambda occ: occ.due_date):
        if occurrence.is_paid:
            buckets.paid.append(occurrence)
        elif occurrence.window_end < today:
            buckets.overdue.append(occurrence)
        elif occurrence.due_date <= week_end:
            buckets.this_week.append(occurrence)
        elif horizon is None or occurrence.due_date <= horizon:
            buckets.upcoming.append(occurrence)

    buckets.totals = BucketTotals(
        overdue_count=len(buckets.overdue),
        overdue_amount=money_sum(occ.amount for occ in buckets.overdue),
        this_week_count=len(buckets.this_week),
        this_week_amount=money_sum(occ.amount for occ in buckets.this_week),
        upcoming_count=len(buckets.upcoming),
        upcoming_amount=money_sum(occ.amount for occ in buckets.upcoming),
        paid_count=len(buckets.paid),
        paid_amount=money_sum(occ.amount for occ in buckets.paid),
    )
    return buckets


def settle_occurrence(
    occurrence: ExpenseOccurrence,
    template: RecurringExpense,
    request: PayOccurrenceRequest,
    today: date,
) -> ExpenseOccurrence:
    """Mark an occurrence paid, correcting the amount for variable expenses."""
    if occurrence.is_paid:
        raise BillingValidationError("This expense has already been paid")

    if request.amount is not None:
        amount = quantize(request.amount)
    else:
        amount = occurrence.amount
    if template.amount_type == AmountType.FIXED and amount != quantize(template.estimated_amount):
        logger.info(
            "Fixed expense %s paid with %s instead of %s",
            template.id, amount, template.estimated_amount,
        )

    return occurrence.model_copy(update={
        "amount": amount,
        "status": OccurrenceStatus.PAID,
        "paid_date": request.paid_date or today,
        "ledger_entry_id": request.ledger_entry_id,
        "notes": request.notes if request.notes is not None else occurrence.notes,
    })
