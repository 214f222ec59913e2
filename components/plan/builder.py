"""Plan builder: turns a price and billing choices into installments.

Every function here is pure. Callers pass an explicit configuration and
get a new plan back; nothing is kept between calls.

Amounts are split evenly across the installments that are not protected.
An installment is protected when a human fixed its amount
(``is_custom_amount``) or when payments were already recorded against it.
The unprotected installments share ``base - sum(protected)``; shares are
rounded to cents and the last unprotected installment takes the rounding
remainder, so the amounts always add up to the base exactly.
"""

import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, List, Optional, Set, Tuple

from dateutil.relativedelta import relativedelta
from pydantic import BaseModel

from components.core.config import get_settings
from components.core.exceptions import (
    BillingValidationError,
    BillingWarning,
    InstallmentNotFound,
)
from components.core.money import ZERO, money_sum, percent_of, quantize, to_decimal
from components.plan.schemas import (
    DiscountType,
    Installment,
    InstallmentFrequency,
    PaymentPlan,
    PaymentType,
    PlanConfig,
    PlanTotals,
)
from components.settings.schemas import CashMethod, CreditCardMethod, RateTable

logger = logging.getLogger(__name__)

settings = get_settings()


class DiscountResolution(BaseModel):
    discount_amount: Decimal
    base_amount: Decimal
    warnings: List[BillingWarning] = []


def resolve_discount(
    total_amount: Decimal, discount_type: DiscountType, discount_value: Decimal
) -> DiscountResolution:
    """Work out the discount and the discounted base of a price."""
    total = quantize(total_amount)
    value = to_decimal(discount_value)
    if total < 0:
        raise BillingValidationError("Total amount cannot be negative")
    if value < 0:
        raise BillingValidationError("Discount value cannot be negative")

    warnings = []
    if discount_type == DiscountType.NONE:
        discount = ZERO
    elif discount_type == DiscountType.FULL_SCHOLARSHIP:
        discount = total
    elif discount_type == DiscountType.PERCENTAGE:
        if value > 100:
            raise BillingValidationError("Percentage discount cannot exceed 100")
        discount = percent_of(total, value)
    elif discount_type == DiscountType.FIXED:
        discount = quantize(value)
        if discount > total:
            warnings.append(BillingWarning(
                code="discount_exceeds_total",
                message=f"Fixed discount {discount} exceeds total {total}; limited to the total",
            ))
            discount = total
    else:
        raise BillingValidationError(f"Unknown discount type: {discount_type}")

    return DiscountResolution(discount_amount=discount, base_amount=total - discount, warnings=warnings)


def schedule_due_dates(
    first_date: date,
    count: int,
    frequency: InstallmentFrequency,
    custom_frequency_days: Optional[int] = None,
) -> List[date]:
    """Due dates of `count` installments starting at `first_date`."""
    if count < 1:
        raise BillingValidationError("Installment count must be positive")

    if frequency == InstallmentFrequency.MONTHLY:
        # Offsets are taken from the first date so a 31st stays a 31st where it exists
        return [first_date + relativedelta(months=step) for step in range(count)]
    if frequency == InstallmentFrequency.WEEKLY:
        return [first_date + timedelta(weeks=step) for step in range(count)]
    if frequency == InstallmentFrequency.CUSTOM:
        if not custom_frequency_days or custom_frequency_days < 1:
            raise BillingValidationError("Custom frequency needs a positive number of days")
        return [first_date + timedelta(days=step * custom_frequency_days) for step in range(count)]
    raise BillingValidationError(f"Unknown installment frequency: {frequency}")


def redistribute(
    installments: Iterable[Installment],
    base_amount: Decimal,
    frozen: Iterable[int] = (),
) -> Tuple[List[Installment], List[BillingWarning]]:
    """Split what custom amounts leave of the base evenly over the rest."""
    ordered = sorted(installments, key=lambda inst: inst.installment_number)
    frozen_numbers: Set[int] = set(frozen)
    protected_numbers = {
        inst.installment_number for inst in ordered
        if inst.is_custom_amount or inst.installment_number in frozen_numbers
    }
    protected = [inst for inst in ordered if inst.installment_number in protected_numbers]
    automatic = [inst for inst in ordered if inst.installment_number not in protected_numbers]

    protected_total = money_sum(inst.amount for inst in protected)
    pool = base_amount - protected_total
    warnings = []

    if not automatic:
        if abs(protected_total - base_amount) > settings.MONEY_TOLERANCE:
            warnings.append(BillingWarning(
                code="custom_total_mismatch",
                message=f"Fixed installment amounts add up to {protected_total}, plan base is {base_amount}",
            ))
        return [inst.model_copy() for inst in ordered], warnings

    share = quantize(pool / len(automatic))
    remainder = pool - share * len(automatic)
    if pool < 0:
        warnings.append(BillingWarning(
            code="custom_amounts_exceed_base",
            message=f"Custom amounts ({protected_total}) exceed plan base ({base_amount}); "
                    f"automatic installments would get {share} each",
        ))
    elif share <= 0:
        warnings.append(BillingWarning(
            code="automatic_share_zero",
            message="Custom amounts use up the plan base; automatic installments get nothing",
        ))

    last_automatic = automatic[-1].installment_number
    result = []
    for inst in ordered:
        if inst.installment_number in protected_numbers:
            result.append(inst.model_copy())
            continue
        amount = share + remainder if inst.installment_number == last_automatic else share
        result.append(inst.model_copy(update={"amount": amount}))
    return result, warnings


def compute_financials(installment: Installment, rates: RateTable) -> Installment:
    """Commission, VAT and total of one installment."""
    commission_rate = rates.commission_rate(installment.payment_method)
    commission = percent_of(installment.amount, commission_rate)
    subtotal = installment.amount + commission
    vat_rate = rates.vat_rate if installment.is_invoiced else ZERO
    vat = percent_of(subtotal, vat_rate)
    return installment.model_copy(update={
        "commission_rate": commission_rate,
        "commission": commission,
        "vat_rate": vat_rate,
        "vat": vat,
        "total": subtotal + vat,
    })


def plan_totals(installments: Iterable[Installment], total_amount: Decimal) -> PlanTotals:
    installments = list(installments)
    amount = money_sum(inst.amount for inst in installments)
    return PlanTotals(
        amount=amount,
        commission=money_sum(inst.commission for inst in installments),
        vat=money_sum(inst.vat for inst in installments),
        total=money_sum(inst.total for inst in installments),
        discount_amount=quantize(total_amount) - amount,
    )


def _paid_numbers(installments: Iterable[Installment]) -> List[int]:
    return [inst.installment_number for inst in installments if inst.paid_amount > 0]


def _finalize(
    plan: PaymentPlan,
    installments: List[Installment],
    rates: RateTable,
    warnings: List[BillingWarning],
) -> PaymentPlan:
    installments = [compute_financials(inst, rates) for inst in installments]
    for warning in warnings:
        logger.warning("Plan consistency warning %s: %s", warning.code, warning.message)
    return plan.model_copy(update={
        "installments": installments,
        "totals": plan_totals(installments, plan.total_amount),
        "warnings": warnings,
    }).refreshed()


def _initial_installments(config: PlanConfig, base_amount: Decimal) -> List[Installment]:
    if config.payment_type == PaymentType.CASH_FULL:
        return [Installment(
            installment_number=1,
            amount=base_amount,
            due_date=config.first_installment_date,
            payment_method=CashMethod(),
            is_invoiced=config.is_invoiced,
        )]
    if config.payment_type == PaymentType.CREDIT_CARD:
        return [Installment(
            installment_number=1,
            amount=base_amount,
            due_date=config.payment_date or config.first_installment_date,
            payment_method=CreditCardMethod(installments=config.credit_card_installments),
            is_invoiced=config.is_invoiced,
        )]

    if not config.installment_count or config.installment_count < 1:
        raise BillingValidationError("Installment count must be positive")
    due_dates = schedule_due_dates(
        config.first_installment_date,
        config.installment_count,
        config.installment_frequency,
        config.custom_frequency_days,
    )
    return [
        Installment(
            installment_number=number,
            amount=ZERO,
            due_date=due_date,
            payment_method=CashMethod(),
            is_invoiced=config.is_invoiced,
        )
        for number, due_date in enumerate(due_dates, start=1)
    ]


def build_plan(config: PlanConfig, rates: RateTable) -> PaymentPlan:
    """Build a complete, unsaved plan from the billing choices."""
    discount = resolve_discount(config.total_amount, config.discount_type, config.discount_value)
    installments = _initial_installments(config, discount.base_amount)

    by_number = {inst.installment_number: inst for inst in installments}
    for override in config.overrides:
        inst = by_number.get(override.installment_number)
        if inst is None:
            raise InstallmentNotFound(override.installment_number)
        changes = {}
        if override.payment_method is not None:
            changes["payment_method"] = override.payment_method
        if override.is_invoiced is not None:
            changes["is_invoiced"] = override.is_invoiced
        if override.due_date is not None:
            changes["due_date"] = override.due_date
        if override.amount is not None:
            if override.amount < 0:
                raise BillingValidationError("Installment amount cannot be negative")
            changes["amount"] = quantize(override.amount)
            changes["is_custom_amount"] = True
        by_number[override.installment_number] = inst.model_copy(update=changes)

    installments, warnings = redistribute(by_number.values(), discount.base_amount)
    plan = PaymentPlan(
        total_amount=quantize(config.total_amount),
        discount_type=config.discount_type,
        discount_value=config.discount_value,
        discount_amount=discount.discount_amount,
        discounted_amount=discount.base_amount,
        payment_type=config.payment_type,
        installments=installments,
    )
    logger.debug(
        "Built %s plan: base %s over %d installment(s)",
        config.payment_type.value, discount.base_amount, len(installments),
    )
    return _finalize(plan, installments, rates, discount.warnings + warnings)


def set_custom_amount(plan: PaymentPlan, installment_number: int, amount: Decimal, rates: RateTable) -> PaymentPlan:
    """Fix one installment's amount and spread the rest over the others."""
    target = plan.find_installment(installment_number)
    if target is None:
        raise InstallmentNotFound(installment_number)
    amount = to_decimal(amount)
    if amount < 0:
        raise BillingValidationError("Installment amount cannot be negative")
    if target.paid_amount > 0:
        raise BillingValidationError(
            f"Installment {installment_number} already has payments; its amount cannot be changed"
        )

    updated = [
        inst.model_copy(update={"amount": quantize(amount), "is_custom_amount": True})
        if inst.installment_number == installment_number else inst
        for inst in plan.installments
    ]
    installments, warnings = redistribute(updated, plan.discounted_amount, _paid_numbers(updated))
    return _finalize(plan, installments, rates, warnings)


def reset_to_automatic(plan: PaymentPlan, installment_number: int, rates: RateTable) -> PaymentPlan:
    """Drop a custom amount and put the installment back in the even split."""
    if plan.find_installment(installment_number) is None:
        raise InstallmentNotFound(installment_number)

    updated = [
        inst.model_copy(update={"is_custom_amount": False})
        if inst.installment_number == installment_number else inst
        for inst in plan.installments
    ]
    installments, warnings = redistribute(updated, plan.discounted_amount, _paid_numbers(updated))
    return _finalize(plan, installments, rates, warnings)


def recompute_plan(
    plan: PaymentPlan,
    total_amount: Decimal,
    discount_type: DiscountType,
    discount_value: Decimal,
    rates: RateTable,
) -> PaymentPlan:
    """Apply a price or discount change to an existing plan."""
    discount = resolve_discount(total_amount, discount_type, discount_value)
    installments, warnings = redistribute(
        plan.installments, discount.base_amount, _paid_numbers(plan.installments)
    )
    changed = plan.model_copy(update={
        "total_amount": quantize(total_amount),
        "discount_type": discount_type,
        "discount_value": to_decimal(discount_value),
        "discount_amount": discount.discount_amount,
        "discounted_amount": discount.base_amount,
    })
    return _finalize(changed, installments, rates, discount.warnings + warnings)


def negative_installments(plan: PaymentPlan) -> List[int]:
    """Numbers of installments whose amount went below zero."""
    return [inst.installment_number for inst in plan.installments if inst.amount < 0]
