"""Applying received payments to a plan's installments."""

import logging
from datetime import datetime
from decimal import Decimal

from components.core.exceptions import BillingValidationError, InstallmentNotFound
from components.core.money import ZERO, to_decimal
from components.plan.schemas import (
    Allocation,
    PaymentApplication,
    PaymentPlan,
    RefundResult,
)

logger = logging.getLogger(__name__)


def apply_payment(
    plan: PaymentPlan,
    installment_number: int,
    amount: Decimal,
    now: datetime,
) -> PaymentApplication:
    """
    Apply a payment to one installment, cascading forward.

    Whatever the target installment does not need flows on to the
    following unpaid installments in order. It never flows backward.
    Money left after the last installment is returned as ``surplus``
    and added to the plan's credit balance.
    """
    amount = to_decimal(amount)
    if amount <= 0:
        raise BillingValidationError("Payment amount must be positive")

    ordered = sorted(
        (inst.model_copy() for inst in plan.installments),
        key=lambda inst: inst.installment_number,
    )
    start = next(
        (index for index, inst in enumerate(ordered) if inst.installment_number == installment_number),
        None,
    )
    if start is None:
        raise InstallmentNotFound(installment_number)

    left = amount
    allocations = []
    for inst in ordered[start:]:
        if left <= 0:
            break
        remaining = inst.total - inst.paid_amount
        if remaining <= 0:
            continue
        applied = min(left, remaining)
        inst.paid_amount += applied
        left -= applied
        if inst.paid_amount >= inst.total:
            inst.is_paid = True
            if inst.paid_date is None:
                inst.paid_date = now
        allocations.append(Allocation(
            installment_number=inst.installment_number,
            applied=applied,
            is_paid=inst.is_paid,
        ))

    surplus = left
    if surplus > 0:
        logger.warning(
            "Payment of %s on plan %s left %s unconsumed; recorded as credit balance",
            amount, plan.id, surplus,
        )

    updated = plan.model_copy(update={
        "installments": ordered,
        "credit_balance": plan.credit_balance + surplus,
    }).refreshed(now)
    return PaymentApplication(
        plan=updated,
        allocations=allocations,
        applied_total=amount - surplus,
        surplus=surplus,
    )


def refund_installment(plan: PaymentPlan, installment_number: int) -> RefundResult:
    """Reverse everything paid on one installment."""
    target = plan.find_installment(installment_number)
    if target is None:
        raise InstallmentNotFound(installment_number)
    if target.paid_amount <= 0:
        raise BillingValidationError(f"Installment {installment_number} has no payments to refund")

    refunded = target.paid_amount
    installments = [
        inst.model_copy(update={"paid_amount": ZERO, "is_paid": False, "paid_date": None})
        if inst.installment_number == installment_number else inst
        for inst in plan.installments
    ]
    updated = plan.model_copy(update={"installments": installments}).refreshed()
    return RefundResult(plan=updated, installment_number=installment_number, refunded_amount=refunded)
