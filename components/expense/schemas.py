"""Pydantic schemas for recurring expenses and their occurrences."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from components.core.money import ZERO


class Frequency(str, Enum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"

    @property
    def months(self) -> int:
        return {"monthly": 1, "quarterly": 3, "yearly": 12}[self.value]


class DueDayType(str, Enum):
    FIXED = "fixed"
    RANGE = "range"


class AmountType(str, Enum):
    FIXED = "fixed"
    VARIABLE = "variable"


class OccurrenceStatus(str, Enum):
    PENDING = "pending"
    OVERDUE = "overdue"
    PAID = "paid"


class RecurringExpenseBase(BaseModel):
    """Base recurring expense schema."""
    institution_id: int
    title: str = Field(..., min_length=1, max_length=200)
    category: str = Field("Other", max_length=100)
    description: Optional[str] = None
    amount_type: AmountType = AmountType.FIXED
    estimated_amount: Decimal = Field(..., ge=0)
    frequency: Frequency = Frequency.MONTHLY
    due_day_type: DueDayType = DueDayType.FIXED
    due_day: Optional[int] = Field(1, ge=1, le=31)
    due_day_range_start: Optional[int] = Field(None, ge=1, le=31)
    due_day_range_end: Optional[int] = Field(None, ge=1, le=31)
    start_date: date
    end_date: Optional[date] = None
    is_active: bool = True
    notes: Optional[str] = None

    @model_validator(mode="after")
    def check_due_day_policy(self):
        if self.due_day_type == DueDayType.FIXED and self.due_day is None:
            raise ValueError("due_day is required for a fixed due day")
        if self.due_day_type == DueDayType.RANGE:
            if self.due_day_range_start is None or self.due_day_range_end is None:
                raise ValueError("due_day_range_start and due_day_range_end are required for a due day range")
            if self.due_day_range_start > self.due_day_range_end:
                raise ValueError("due_day_range_start cannot be after due_day_range_end")
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date cannot be before start_date")
        return self


class RecurringExpenseCreate(RecurringExpenseBase):
    """Schema for recurring expense creation."""
    pass


class RecurringExpense(RecurringExpenseBase):
    """Schema for recurring expense response; also the generator's template."""
    id: int
    next_due_date: Optional[date] = None

    model_config = ConfigDict(from_attributes=True)


class OccurrenceDraft(BaseModel):
    """An occurrence the generator wants created."""
    recurring_expense_id: int
    period_start: date
    due_date: date
    window_end: date
    amount: Decimal
    estimated_amount: Decimal
    description: str

    @property
    def key(self):
        return (self.recurring_expense_id, self.period_start)


class ExpenseOccurrence(BaseModel):
    """Schema for a generated expense occurrence."""
    id: Optional[int] = None
    recurring_expense_id: int
    period_start: date
    due_date: date
    window_end: date
    amount: Decimal
    estimated_amount: Decimal
    status: OccurrenceStatus = OccurrenceStatus.PENDING
    description: Optional[str] = None
    paid_date: Optional[date] = None
    ledger_entry_id: Optional[int] = None
    notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

    @property
    def is_paid(self) -> bool:
        return self.status == OccurrenceStatus.PAID or self.ledger_entry_id is not None


class GenerateRequest(BaseModel):
    start_date: date
    end_date: date

    @model_validator(mode="after")
    def check_range(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date cannot be before start_date")
        return self


class GenerateAllRequest(BaseModel):
    institution_id: int
    end_date: Optional[date] = None


class GenerateResponse(BaseModel):
    message: str
    generated: int
    expenses: List[ExpenseOccurrence] = Field(default_factory=list)


class PayOccurrenceRequest(BaseModel):
    """Schema for settling an occurrence; the ledger entry lives elsewhere."""
    amount: Optional[Decimal] = Field(None, ge=0)
    paid_date: Optional[date] = None
    ledger_entry_id: Optional[int] = None
    notes: Optional[str] = None


class BucketTotals(BaseModel):
    overdue_count: int = 0
    overdue_amount: Decimal = ZERO
    this_week_count: int = 0
    this_week_amount: Decimal = ZERO
    upcoming_count: int = 0
    upcoming_amount: Decimal = ZERO
    paid_count: int = 0
    paid_amount: Decimal = ZERO


class OccurrenceBuckets(BaseModel):
    """Occurrences split for the dashboard."""
    overdue: List[ExpenseOccurrence] = Field(default_factory=list)
    this_week: List[ExpenseOccurrence] = Field(default_factory=list)
    upcoming: List[ExpenseOccurrence] = Field(default_factory=list)
    paid: List[ExpenseOccurrence] = Field(default_factory=list)
    totals: BucketTotals = Field(default_factory=BucketTotals)
