"""Lesson counting and first-month proration for monthly priced courses."""

import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import List

import pandas as pd
from dateutil.relativedelta import relativedelta

from components.core.exceptions import BillingValidationError
from components.core.money import quantize, to_decimal
from components.proration.schemas import (
    LessonSchedule,
    MonthLessons,
    PricingOption,
    ProrationRequest,
    ProrationResult,
    Recurrence,
)

logger = logging.getLogger(__name__)

WEEKS_PER_MONTH = 4


def lesson_dates(schedule: LessonSchedule, start: date, end: date) -> List[date]:
    """All lesson dates of the schedule between start and end, inclusive."""
    days = pd.date_range(start=start, end=end, freq="D")
    days = days[(days.dayofweek + 1).isin(schedule.weekdays)]

    if schedule.recurrence == Recurrence.BIWEEKLY:
        anchor = schedule.anchor_date or start
        anchor_monday = pd.Timestamp(anchor - timedelta(days=anchor.weekday()))
        weeks = (days - anchor_monday).days // 7
        days = days[weeks % 2 == 0]

    excluded = set(schedule.excluded_dates)
    return [day.date() for day in days if day.date() not in excluded]


def expected_lessons_per_month(schedule: LessonSchedule) -> int:
    """Nominal lessons in a month: four weeks of the weekly pattern."""
    per_month = schedule.lessons_per_week * WEEKS_PER_MONTH
    if schedule.recurrence == Recurrence.BIWEEKLY:
        per_month //= 2
    return per_month


def count_month_lessons(
    schedule: LessonSchedule, month_start: date, enrollment_date: date, is_first: bool
) -> MonthLessons:
    month_end = month_start + relativedelta(months=1) - timedelta(days=1)
    dates = lesson_dates(schedule, month_start, month_end)
    before = sum(1 for day in dates if day < enrollment_date) if is_first else 0
    return MonthLessons(
        month_start=month_start,
        lesson_count=len(dates),
        lessons_before_enrollment=before,
        lessons_after_enrollment=len(dates) - before,
    )


def calculate_proration(request: ProrationRequest, today: date) -> ProrationResult:
    """
    Count lessons per billed month and price the full and prorated options.

    ``today`` is only used when the request has no enrollment date.
    The partial first-month charge is never more than one monthly fee.
    """
    if request.duration_months < 1:
        raise BillingValidationError("Duration must be at least one month")

    enrollment = request.enrollment_date or today
    first_month = (request.billing_start or enrollment).replace(day=1)
    fee = to_decimal(request.monthly_fee)
    per_month = expected_lessons_per_month(request.schedule)
    if request.price_per_lesson is not None:
        price_per_lesson = to_decimal(request.price_per_lesson)
    else:
        price_per_lesson = fee / per_month

    months = [
        count_month_lessons(
            request.schedule,
            first_month + relativedelta(months=index),
            enrollment,
            is_first=index == 0,
        )
        for index in range(request.duration_months)
    ]
    first = months[0]
    is_partial = (
        enrollment.day > 1
        and first.month_start.year == enrollment.year
        and first.month_start.month == enrollment.month
        and first.lessons_before_enrollment > 0
        and first.lessons_after_enrollment > 0
    )

    total_by_monthly = quantize(fee * request.duration_months)
    if is_partial:
        first_month_charge = min(quantize(first.lessons_after_enrollment * price_per_lesson), quantize(fee))
        total_by_partial_first = first_month_charge + quantize(fee * (request.duration_months - 1))
    else:
        total_by_partial_first = total_by_monthly

    billable_lessons = first.lessons_after_enrollment + sum(month.lesson_count for month in months[1:])
    total_by_per_lesson = quantize(billable_lessons * price_per_lesson)

    logger.debug(
        "Proration from %s over %d month(s): partial=%s monthly=%s partial_first=%s",
        enrollment, request.duration_months, is_partial, total_by_monthly, total_by_partial_first,
    )
    return ProrationResult(
        enrollment_date=enrollment,
        months=months,
        lessons_per_month=per_month,
        price_per_lesson=quantize(price_per_lesson),
        monthly_fee=quantize(fee),
        is_partial=is_partial,
        lessons_before_enrollment=first.lessons_before_enrollment,
        lessons_after_enrollment=first.lessons_after_enrollment,
        total_by_monthly=total_by_monthly,
        total_by_partial_first=total_by_partial_first,
        savings=total_by_monthly - total_by_partial_first,
        total_by_per_lesson=total_by_per_lesson,
        recommend_monthly=total_by_monthly <= total_by_per_lesson,
        has_schedule=any(month.lesson_count > 0 for month in months),
    )


def chosen_total(result: ProrationResult, option: PricingOption) -> Decimal:
    """Plan total for the pricing option the caller picked."""
    if option == PricingOption.PARTIAL_FIRST:
        return result.total_by_partial_first
    return result.total_by_monthly
