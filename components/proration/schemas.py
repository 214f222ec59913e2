"""Pydantic schemas for monthly course proration."""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class Recurrence(str, Enum):
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"


class PricingOption(str, Enum):
    MONTHLY = "monthly"
    PARTIAL_FIRST = "partialFirst"


class LessonSchedule(BaseModel):
    """Weekly lesson pattern of a course."""
    weekdays: List[int] = Field(..., min_length=1)  # ISO weekdays, Monday=1 .. Sunday=7
    recurrence: Recurrence = Recurrence.WEEKLY
    anchor_date: Optional[date] = None  # First lesson week for biweekly courses
    excluded_dates: List[date] = Field(default_factory=list)  # Holidays, cancelled lessons

    @field_validator("weekdays")
    @classmethod
    def check_weekdays(cls, value: List[int]) -> List[int]:
        if any(day < 1 or day > 7 for day in value):
            raise ValueError("Weekdays must be between 1 (Monday) and 7 (Sunday)")
        return sorted(set(value))

    @property
    def lessons_per_week(self) -> int:
        return len(self.weekdays)


class ProrationRequest(BaseModel):
    """Schema for a proration calculation."""
    schedule: LessonSchedule
    monthly_fee: Decimal = Field(..., ge=0)
    duration_months: int = Field(..., ge=1)
    enrollment_date: Optional[date] = None
    billing_start: Optional[date] = None
    price_per_lesson: Optional[Decimal] = Field(None, ge=0)


class MonthLessons(BaseModel):
    """Lesson counts of one billed calendar month."""
    month_start: date
    lesson_count: int
    lessons_before_enrollment: int = 0
    lessons_after_enrollment: int


class ProrationResult(BaseModel):
    """Lesson counts and the full-vs-prorated pricing options."""
    enrollment_date: date
    months: List[MonthLessons]
    lessons_per_month: int
    price_per_lesson: Decimal
    monthly_fee: Decimal
    is_partial: bool
    lessons_before_enrollment: int
    lessons_after_enrollment: int
    total_by_monthly: Decimal
    total_by_partial_first: Decimal
    savings: Decimal
    total_by_per_lesson: Decimal
    recommend_monthly: bool
    has_schedule: bool
