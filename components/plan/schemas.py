"""Pydantic schemas for payment plans and their installments."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from components.core.exceptions import BillingWarning
from components.core.money import ZERO, money_sum
from components.settings.schemas import CashMethod, PaymentMethod


class DiscountType(str, Enum):
    NONE = "none"
    FULL_SCHOLARSHIP = "fullScholarship"
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class PaymentType(str, Enum):
    CASH_FULL = "cashFull"
    CREDIT_CARD = "creditCard"
    CASH_INSTALLMENT = "cashInstallment"


class InstallmentFrequency(str, Enum):
    MONTHLY = "monthly"
    WEEKLY = "weekly"
    CUSTOM = "custom"


class InstallmentOverride(BaseModel):
    """Per-installment choices made by a human before the plan is saved."""
    installment_number: int = Field(..., ge=1)
    amount: Optional[Decimal] = None
    payment_method: Optional[PaymentMethod] = None
    is_invoiced: Optional[bool] = None
    due_date: Optional[date] = None


class PlanConfig(BaseModel):
    """Billing choices a plan is built from."""
    total_amount: Decimal = Field(..., ge=0)
    discount_type: DiscountType = DiscountType.NONE
    discount_value: Decimal = Field(ZERO, ge=0)
    payment_type: PaymentType
    installment_count: Optional[int] = Field(None, ge=1)
    installment_frequency: InstallmentFrequency = InstallmentFrequency.MONTHLY
    custom_frequency_days: Optional[int] = Field(None, ge=1)
    first_installment_date: date
    payment_date: Optional[date] = None
    credit_card_installments: int = Field(1, ge=1)
    is_invoiced: bool = False
    overrides: List[InstallmentOverride] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_selections(self) -> "PlanConfig":
        if self.discount_type == DiscountType.PERCENTAGE and self.discount_value > 100:
            raise ValueError("Percentage discount cannot exceed 100")
        if self.payment_type == PaymentType.CASH_INSTALLMENT and self.installment_count is None:
            raise ValueError("installment_count is required for cash installment plans")
        if (
            self.payment_type == PaymentType.CASH_INSTALLMENT
            and self.installment_frequency == InstallmentFrequency.CUSTOM
            and self.custom_frequency_days is None
        ):
            raise ValueError("custom_frequency_days is required for custom frequency")
        return self


class Installment(BaseModel):
    """One scheduled charge within a plan."""
    installment_number: int = Field(..., ge=1)
    amount: Decimal
    due_date: date
    payment_method: PaymentMethod = Field(default_factory=CashMethod)
    is_invoiced: bool = False
    is_custom_amount: bool = False
    commission_rate: Decimal = ZERO
    commission: Decimal = ZERO
    vat_rate: Decimal = ZERO
    vat: Decimal = ZERO
    total: Decimal = ZERO
    paid_amount: Decimal = ZERO
    is_paid: bool = False
    paid_date: Optional[datetime] = None

    @property
    def credit_card_installments(self) -> int:
        return self.payment_method.credit_card_installments

    @property
    def subtotal(self) -> Decimal:
        return self.amount + self.commission

    @property
    def remaining(self) -> Decimal:
        return self.total - self.paid_amount


class PlanTotals(BaseModel):
    """Grand totals across all installments."""
    amount: Decimal = ZERO
    commission: Decimal = ZERO
    vat: Decimal = ZERO
    total: Decimal = ZERO
    discount_amount: Decimal = ZERO


class PaymentPlan(BaseModel):
    """A payment plan, either a fresh quote or a loaded record."""
    id: Optional[int] = None
    version: Optional[int] = None
    institution_id: Optional[int] = None
    enrollment_id: Optional[int] = None
    total_amount: Decimal
    discount_type: DiscountType = DiscountType.NONE
    discount_value: Decimal = ZERO
    discount_amount: Decimal = ZERO
    discounted_amount: Decimal
    payment_type: PaymentType
    installments: List[Installment]
    totals: PlanTotals = Field(default_factory=PlanTotals)
    paid_amount: Decimal = ZERO
    remaining_amount: Decimal = ZERO
    credit_balance: Decimal = ZERO
    is_completed: bool = False
    warnings: List[BillingWarning] = Field(default_factory=list)

    @property
    def base_amount(self) -> Decimal:
        return self.discounted_amount

    def find_installment(self, installment_number: int) -> Optional[Installment]:
        return next(
            (inst for inst in self.installments if inst.installment_number == installment_number),
            None,
        )

    def refreshed(self, paid_at: Optional[datetime] = None) -> "PaymentPlan":
        """
        Copy with paid state recomputed from the installments.

        An installment is paid once its paid amount covers its total, so one
        that owes nothing counts as paid from the start. `paid_at` stamps
        installments that become paid in this refresh.
        """
        installments = []
        for inst in self.installments:
            is_paid = inst.paid_amount >= inst.total
            if not is_paid:
                paid_date = None
            elif inst.is_paid:
                paid_date = inst.paid_date
            else:
                paid_date = inst.paid_date or paid_at
            installments.append(inst.model_copy(update={"is_paid": is_paid, "paid_date": paid_date}))
        paid = money_sum(inst.paid_amount for inst in installments)
        return self.model_copy(update={
            "installments": installments,
            "paid_amount": paid,
            "remaining_amount": self.discounted_amount - paid,
            "is_completed": paid >= self.discounted_amount,
        })


class PlanPreviewRequest(BaseModel):
    """Schema for quoting a plan without saving it."""
    institution_id: int
    config: PlanConfig


class PaymentPlanCreate(BaseModel):
    """Schema for plan creation."""
    institution_id: int
    enrollment_id: int
    config: PlanConfig


class PlanEdit(BaseModel):
    """Schema for changing the price or discount of a saved plan."""
    total_amount: Decimal = Field(..., ge=0)
    discount_type: DiscountType = DiscountType.NONE
    discount_value: Decimal = Field(ZERO, ge=0)


class CustomAmountUpdate(BaseModel):
    amount: Decimal = Field(..., ge=0)


class PaymentCreate(BaseModel):
    """Schema for recording a received payment against an installment."""
    installment_number: int = Field(..., ge=1)
    amount: Decimal = Field(..., gt=0)
    expected_version: Optional[int] = None


class Allocation(BaseModel):
    installment_number: int
    applied: Decimal
    is_paid: bool


class PaymentApplication(BaseModel):
    """Result of applying one payment to a plan."""
    plan: PaymentPlan
    allocations: List[Allocation]
    applied_total: Decimal
    surplus: Decimal


class RefundCreate(BaseModel):
    installment_number: int = Field(..., ge=1)
    refund_reason: Optional[str] = None


class RefundResult(BaseModel):
    plan: PaymentPlan
    installment_number: int
    refunded_amount: Decimal
