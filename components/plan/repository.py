"""Repository for payment plan operations."""

import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from components.core.config import get_settings
from components.core.exceptions import (
    BillingValidationError,
    ConcurrencyConflict,
    NotFoundError,
)
from components.core.money import money_sum
from components.plan import builder, payments, schemas
from components.plan.models import PaymentPlan, Installment
from components.settings.repository import SettingsRepository
from components.settings.schemas import CashMethod, CreditCardMethod

logger = logging.getLogger(__name__)

settings = get_settings()


def _installment_to_schema(row: Installment) -> schemas.Installment:
    if row.payment_method == "creditCard":
        method = CreditCardMethod(installments=row.credit_card_installments)
    else:
        method = CashMethod()
    return schemas.Installment(
        installment_number=row.installment_number,
        amount=row.amount,
        due_date=row.due_date,
        payment_method=method,
        is_invoiced=row.is_invoiced,
        is_custom_amount=row.is_custom_amount,
        commission_rate=row.commission_rate,
        commission=row.commission,
        vat_rate=row.vat_rate,
        vat=row.vat,
        total=row.total,
        paid_amount=row.paid_amount,
        is_paid=row.is_paid,
        paid_date=row.paid_date,
    )


def _plan_to_schema(row: PaymentPlan) -> schemas.PaymentPlan:
    installments = [_installment_to_schema(inst) for inst in row.installments]
    return schemas.PaymentPlan(
        id=row.id,
        version=row.version_id,
        institution_id=row.institution_id,
        enrollment_id=row.enrollment_id,
        total_amount=row.total_amount,
        discount_type=row.discount_type,
        discount_value=row.discount_value,
        discount_amount=row.discount_amount,
        discounted_amount=row.discounted_amount,
        payment_type=row.payment_type,
        installments=installments,
        totals=builder.plan_totals(installments, row.total_amount),
        paid_amount=row.paid_amount,
        remaining_amount=row.remaining_amount,
        credit_balance=row.credit_balance,
        is_completed=row.is_completed,
    )


def _write_installment(row: Installment, inst: schemas.Installment) -> None:
    row.amount = inst.amount
    row.due_date = inst.due_date
    row.payment_method = inst.payment_method.kind
    row.credit_card_installments = inst.credit_card_installments
    row.is_invoiced = inst.is_invoiced
    row.is_custom_amount = inst.is_custom_amount
    row.commission_rate = inst.commission_rate
    row.commission = inst.commission
    row.vat_rate = inst.vat_rate
    row.vat = inst.vat
    row.total = inst.total
    row.paid_amount = inst.paid_amount
    row.is_paid = inst.is_paid
    row.paid_date = inst.paid_date


def _write_plan(row: PaymentPlan, plan: schemas.PaymentPlan) -> None:
    row.payment_type = plan.payment_type.value
    row.total_amount = plan.total_amount
    row.discount_type = plan.discount_type.value
    row.discount_value = plan.discount_value
    row.discount_amount = plan.discount_amount
    row.discounted_amount = plan.discounted_amount
    row.paid_amount = plan.paid_amount
    row.remaining_amount = plan.remaining_amount
    row.credit_balance = plan.credit_balance
    row.is_completed = plan.is_completed
    # Always touch the row so the version counter moves with every change
    row.updated_at = datetime.utcnow()

    existing = {inst.installment_number: inst for inst in row.installments}
    for inst in plan.installments:
        inst_row = existing.get(inst.installment_number)
        if inst_row is None:
            inst_row = Installment(installment_number=inst.installment_number)
            row.installments.append(inst_row)
        _write_installment(inst_row, inst)


def _ensure_persistable(plan: schemas.PaymentPlan) -> None:
    negative = builder.negative_installments(plan)
    if negative:
        raise BillingValidationError(
            f"Installments {negative} would get a negative amount; adjust the custom amounts"
        )
    allocated = money_sum(inst.amount for inst in plan.installments)
    if abs(allocated - plan.discounted_amount) > settings.MONEY_TOLERANCE:
        raise BillingValidationError(
            f"Installment amounts add up to {allocated} but the plan base is "
            f"{plan.discounted_amount}; adjust the custom amounts"
        )


class PaymentPlanRepository:
    """Repository for payment plan operations."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session."""
        self.session = session
        self.settings_repo = SettingsRepository(session)

    async def _load(self, plan_id: int, for_update: bool = False) -> PaymentPlan:
        query = select(PaymentPlan).where(PaymentPlan.id == plan_id)
        if for_update:
            # Reload over whatever this session already holds for the row
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.session.execute(query)
        row = result.scalar_one_or_none()
        if row is None:
            raise NotFoundError(f"Payment plan {plan_id} not found")
        return row

    async def _commit(self, plan_id: int) -> None:
        try:
            await self.session.commit()
        except (StaleDataError, IntegrityError) as e:
            await self.session.rollback()
            logger.warning("Concurrent update rejected on plan %s: %s", plan_id, e)
            raise ConcurrencyConflict(
                f"Payment plan {plan_id} was changed by another request; reload and retry"
            ) from e

    async def preview(self, institution_id: int, config: schemas.PlanConfig) -> schemas.PaymentPlan:
        """Build a plan without saving it."""
        rates = await self.settings_repo.get_rate_table(institution_id)
        return builder.build_plan(config, rates)

    async def create(self, data: schemas.PaymentPlanCreate) -> schemas.PaymentPlan:
        """Build a plan from the billing choices and save it."""
        plan = await self.preview(data.institution_id, data.config)
        _ensure_persistable(plan)

        row = PaymentPlan(institution_id=data.institution_id, enrollment_id=data.enrollment_id)
        row.installments = []
        _write_plan(row, plan)
        self.session.add(row)
        await self.session.commit()
        logger.info(
            "Created payment plan %s for enrollment %s (%s, base %s)",
            row.id, data.enrollment_id, plan.payment_type.value, plan.discounted_amount,
        )
        return _plan_to_schema(row)

    async def get_by_id(self, plan_id: int) -> Optional[schemas.PaymentPlan]:
        """Get plan by ID."""
        result = await self.session.execute(select(PaymentPlan).where(PaymentPlan.id == plan_id))
        row = result.scalar_one_or_none()
        return _plan_to_schema(row) if row is not None else None

    async def get_all(
        self,
        institution_id: Optional[int] = None,
        enrollment_id: Optional[int] = None,
    ) -> List[schemas.PaymentPlan]:
        """Get all plans with optional filtering."""
        query = select(PaymentPlan)
        if institution_id is not None:
            query = query.where(PaymentPlan.institution_id == institution_id)
        if enrollment_id is not None:
            query = query.where(PaymentPlan.enrollment_id == enrollment_id)
        result = await self.session.execute(query.order_by(PaymentPlan.created_at.desc()))
        return [_plan_to_schema(row) for row in result.scalars().all()]

    async def apply_payment(
        self, plan_id: int, payment: schemas.PaymentCreate, now: Optional[datetime] = None
    ) -> schemas.PaymentApplication:
        """Apply a received payment under a row lock and a version check."""
        row = await self._load(plan_id, for_update=True)
        if payment.expected_version is not None and payment.expected_version != row.version_id:
            raise ConcurrencyConflict(
                f"Payment plan {plan_id} is at version {row.version_id}, "
                f"expected {payment.expected_version}"
            )

        application = payments.apply_payment(
            _plan_to_schema(row), payment.installment_number, payment.amount, now or datetime.utcnow()
        )
        _write_plan(row, application.plan)
        await self._commit(plan_id)
        logger.info(
            "Applied %s to plan %s from installment %s (surplus %s)",
            application.applied_total, plan_id, payment.installment_number, application.surplus,
        )
        return application.model_copy(update={"plan": _plan_to_schema(row)})

    async def refund_installment(
        self, plan_id: int, installment_number: int, reason: Optional[str] = None
    ) -> schemas.RefundResult:
        """Reverse the payments recorded on one installment."""
        row = await self._load(plan_id, for_update=True)
        refund = payments.refund_installment(_plan_to_schema(row), installment_number)
        _write_plan(row, refund.plan)
        await self._commit(plan_id)
        logger.info(
            "Refunded %s on plan %s installment %s (%s)",
            refund.refunded_amount, plan_id, installment_number, reason or "no reason given",
        )
        return refund.model_copy(update={"plan": _plan_to_schema(row)})

    async def _rebuild(self, plan_id: int, change) -> schemas.PaymentPlan:
        row = await self._load(plan_id, for_update=True)
        rates = await self.settings_repo.get_rate_table(row.institution_id)
        plan = change(_plan_to_schema(row), rates)
        _ensure_persistable(plan)
        _write_plan(row, plan)
        await self._commit(plan_id)
        return _plan_to_schema(row).model_copy(update={"warnings": plan.warnings})

    async def set_custom_amount(self, plan_id: int, installment_number: int, amount: Decimal) -> schemas.PaymentPlan:
        """Fix an installment's amount and redistribute the rest."""
        return await self._rebuild(
            plan_id,
            lambda plan, rates: builder.set_custom_amount(plan, installment_number, amount, rates),
        )

    async def reset_to_automatic(self, plan_id: int, installment_number: int) -> schemas.PaymentPlan:
        """Return an installment to the automatic split."""
        return await self._rebuild(
            plan_id,
            lambda plan, rates: builder.reset_to_automatic(plan, installment_number, rates),
        )

    async def edit(self, plan_id: int, edit: schemas.PlanEdit) -> schemas.PaymentPlan:
        """Change the plan's price or discount."""
        return await self._rebuild(
            plan_id,
            lambda plan, rates: builder.recompute_plan(
                plan, edit.total_amount, edit.discount_type, edit.discount_value, rates
            ),
        )

    async def delete(self, plan_id: int) -> bool:
        """Delete plan by ID unless payments were recorded on it."""
        result = await self.session.execute(select(PaymentPlan).where(PaymentPlan.id == plan_id))
        row = result.scalar_one_or_none()
        if row is None:
            return False
        if any(inst.paid_amount > 0 for inst in row.installments):
            raise BillingValidationError(
                f"Payment plan {plan_id} has recorded payments and cannot be deleted"
            )
        await self.session.delete(row)
        await self.session.commit()
        logger.info("Deleted payment plan %s", plan_id)
        return True
