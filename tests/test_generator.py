"""Tests for recurring expense generation and dashboard classification."""

from datetime import date
from decimal import Decimal

import pytest
from pydantic import ValidationError

from components.core.exceptions import BillingValidationError
from components.expense import generator
from components.expense.schemas import (
    AmountType,
    DueDayType,
    ExpenseOccurrence,
    Frequency,
    OccurrenceStatus,
    PayOccurrenceRequest,
    RecurringExpenseCreate,
)


def due_dates(drafts):
    return [draft.due_date for draft in drafts]


def occurrence(due, status=OccurrenceStatus.PENDING, window_end=None, amount="100"):
    return ExpenseOccurrence(
        id=due.toordinal(),
        recurring_expense_id=1,
        period_start=due.replace(day=1),
        due_date=due,
        window_end=window_end or due,
        amount=Decimal(amount),
        estimated_amount=Decimal(amount),
        status=status,
    )


class TestGenerateOccurrences:
    def test_monthly_fixed_day(self, rent_template):
        drafts = generator.generate_occurrences(rent_template, date(2025, 1, 1), date(2025, 3, 31))

        assert due_dates(drafts) == [date(2025, 1, 5), date(2025, 2, 5), date(2025, 3, 5)]
        assert all(draft.amount == Decimal("15000") for draft in drafts)
        assert drafts[0].description == "Rent - January 2025"

    def test_regeneration_skips_existing_periods(self, rent_template):
        first = generator.generate_occurrences(rent_template, date(2025, 1, 1), date(2025, 3, 31))
        second = generator.generate_occurrences(
            rent_template, date(2025, 2, 1), date(2025, 4, 30), {draft.key for draft in first}
        )
        assert due_dates(second) == [date(2025, 4, 5)]

    def test_overlapping_runs_match_single_run(self, rent_template):
        first = generator.generate_occurrences(rent_template, date(2025, 1, 1), date(2025, 6, 30))
        second = generator.generate_occurrences(
            rent_template, date(2025, 4, 1), date(2025, 9, 30), {draft.key for draft in first}
        )
        union = generator.generate_occurrences(rent_template, date(2025, 1, 1), date(2025, 9, 30))
        assert {d.key for d in first + second} == {d.key for d in union}
        assert len(first + second) == len(union)

    def test_due_day_clamped_to_month_end(self, rent_template):
        template = rent_template.model_copy(update={"due_day": 31})
        drafts = generator.generate_occurrences(template, date(2025, 2, 1), date(2025, 4, 30))
        assert due_dates(drafts) == [date(2025, 2, 28), date(2025, 3, 31), date(2025, 4, 30)]

    def test_quarterly_anchored_on_start_month(self, rent_template):
        template = rent_template.model_copy(update={
            "frequency": Frequency.QUARTERLY,
            "due_day": 10,
            "start_date": date(2025, 1, 15),
        })
        drafts = generator.generate_occurrences(template, date(2025, 1, 1), date(2025, 12, 31))
        # January 10 falls before the template starts
        assert due_dates(drafts) == [date(2025, 4, 10), date(2025, 7, 10), date(2025, 10, 10)]

    def test_yearly(self, rent_template):
        template = rent_template.model_copy(update={"frequency": Frequency.YEARLY})
        drafts = generator.generate_occurrences(template, date(2025, 1, 1), date(2027, 12, 31))
        assert due_dates(drafts) == [date(2025, 1, 5), date(2026, 1, 5), date(2027, 1, 5)]

    def test_stops_at_template_end(self, rent_template):
        template = rent_template.model_copy(update={"end_date": date(2025, 2, 28)})
        drafts = generator.generate_occurrences(template, date(2025, 1, 1), date(2025, 12, 31))
        assert due_dates(drafts) == [date(2025, 1, 5), date(2025, 2, 5)]

    def test_inactive_template_generates_nothing(self, rent_template):
        template = rent_template.model_copy(update={"is_active": False})
        assert generator.generate_occurrences(template, date(2025, 1, 1), date(2025, 12, 31)) == []

    def test_range_due_day(self, rent_template):
        template = rent_template.model_copy(update={
            "due_day_type": DueDayType.RANGE,
            "due_day_range_start": 10,
            "due_day_range_end": 15,
        })
        draft = generator.generate_occurrences(template, date(2025, 1, 1), date(2025, 1, 31))[0]
        assert draft.due_date == date(2025, 1, 10)
        assert draft.window_end == date(2025, 1, 15)

    def test_reversed_range_rejected(self, rent_template):
        with pytest.raises(BillingValidationError):
            generator.generate_occurrences(rent_template, date(2025, 3, 1), date(2025, 1, 1))


class TestGenerateForTemplates:
    def test_brings_templates_up_to_date_with_lookahead(self, rent_template):
        inactive = rent_template.model_copy(update={"id": 2, "is_active": False})
        drafts = generator.generate_for_templates([rent_template, inactive], date(2025, 3, 20))

        assert due_dates(drafts) == [
            date(2025, 1, 5), date(2025, 2, 5), date(2025, 3, 5), date(2025, 4, 5),
        ]

    def test_existing_keys_are_skipped(self, rent_template):
        existing = {(1, date(2025, 1, 1)), (1, date(2025, 2, 1))}
        drafts = generator.generate_for_templates([rent_template], date(2025, 3, 20), existing, lookahead_months=0)
        assert due_dates(drafts) == [date(2025, 3, 5)]


class TestNextDueDate:
    def test_next_in_following_month(self, rent_template):
        assert generator.next_due_date(rent_template, date(2025, 3, 6)) == date(2025, 4, 5)

    def test_due_today(self, rent_template):
        assert generator.next_due_date(rent_template, date(2025, 3, 5)) == date(2025, 3, 5)

    def test_template_starting_later(self, rent_template):
        template = rent_template.model_copy(update={"start_date": date(2025, 6, 1)})
        assert generator.next_due_date(template, date(2025, 3, 1)) == date(2025, 6, 5)

    def test_ended_template(self, rent_template):
        template = rent_template.model_copy(update={"end_date": date(2025, 3, 10)})
        assert generator.next_due_date(template, date(2025, 3, 20)) is None
        assert generator.next_due_date(template, date(2025, 3, 8)) is None


class TestClassifyOccurrences:
    TODAY = date(2025, 3, 10)

    def test_buckets(self):
        occurrences = [
            occurrence(date(2025, 3, 5)),
            occurrence(date(2025, 3, 14), amount="50"),
            occurrence(date(2025, 3, 30)),
            occurrence(date(2025, 3, 1), status=OccurrenceStatus.PAID),
        ]
        buckets = generator.classify_occurrences(occurrences, self.TODAY)

        assert due_dates(buckets.overdue) == [date(2025, 3, 5)]
        assert due_dates(buckets.this_week) == [date(2025, 3, 14)]
        assert due_dates(buckets.upcoming) == [date(2025, 3, 30)]
        assert due_dates(buckets.paid) == [date(2025, 3, 1)]
        assert buckets.totals.overdue_count == 1
        assert buckets.totals.this_week_amount == Decimal("50")
        assert buckets.totals.paid_count == 1

    def test_horizon_limits_upcoming(self):
        buckets = generator.classify_occurrences(
            [occurrence(date(2025, 3, 30))], self.TODAY, horizon_days=10
        )
        assert buckets.upcoming == []

    def test_range_window_not_yet_over(self):
        buckets = generator.classify_occurrences(
            [occurrence(date(2025, 3, 8), window_end=date(2025, 3, 12))], self.TODAY
        )
        assert len(buckets.this_week) == 1
        assert buckets.overdue == []

    def test_linked_ledger_entry_counts_as_paid(self):
        linked = occurrence(date(2025, 3, 5)).model_copy(update={"ledger_entry_id": 7})
        buckets = generator.classify_occurrences([linked], self.TODAY)
        assert len(buckets.paid) == 1

    def test_refresh_statuses(self):
        past = occurrence(date(2025, 3, 5))
        refreshed = generator.refresh_statuses([past, occurrence(date(2025, 3, 20))], self.TODAY)
        assert [occ.status for occ in refreshed] == [OccurrenceStatus.OVERDUE, OccurrenceStatus.PENDING]
        assert past.status == OccurrenceStatus.PENDING


class TestSettleOccurrence:
    def test_variable_amount_corrected(self, rent_template):
        template = rent_template.model_copy(update={"amount_type": AmountType.VARIABLE})
        paid = generator.settle_occurrence(
            occurrence(date(2025, 3, 5)), template,
            PayOccurrenceRequest(amount=Decimal("123.456"), ledger_entry_id=3), date(2025, 3, 6),
        )
        assert paid.amount == Decimal("123.46")
        assert paid.status == OccurrenceStatus.PAID
        assert paid.paid_date == date(2025, 3, 6)
        assert paid.ledger_entry_id == 3

    def test_amount_defaults_to_generated_amount(self, rent_template):
        paid = generator.settle_occurrence(
            occurrence(date(2025, 3, 5)), rent_template,
            PayOccurrenceRequest(paid_date=date(2025, 3, 4)), date(2025, 3, 6),
        )
        assert paid.amount == Decimal("100")
        assert paid.paid_date == date(2025, 3, 4)

    def test_already_paid(self, rent_template):
        with pytest.raises(BillingValidationError):
            generator.settle_occurrence(
                occurrence(date(2025, 3, 5), status=OccurrenceStatus.PAID), rent_template,
                PayOccurrenceRequest(), date(2025, 3, 6),
            )


class TestTemplateValidation:
    def test_range_must_be_ordered(self):
        with pytest.raises(ValidationError):
            RecurringExpenseCreate(
                institution_id=1,
                title="Water",
                estimated_amount=Decimal("100"),
                due_day_type=DueDayType.RANGE,
                due_day_range_start=20,
                due_day_range_end=10,
                start_date=date(2025, 1, 1),
            )

    def test_end_not_before_start(self):
        with pytest.raises(ValidationError):
            RecurringExpenseCreate(
                institution_id=1,
                title="Water",
                estimated_amount=Decimal("100"),
                start_date=date(2025, 1, 1),
                end_date=date(2024, 12, 1),
            )
