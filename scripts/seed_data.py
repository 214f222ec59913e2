"""Script to seed demo data into the database."""

import asyncio
import logging
from datetime import date
from decimal import Decimal

from components.core.config import get_settings
from components.core.init_db import db_manager
from components.expense.repository import RecurringExpenseRepository
from components.expense.schemas import AmountType, DueDayType, RecurringExpenseCreate
from components.plan.repository import PaymentPlanRepository
from components.plan.schemas import (
    DiscountType,
    PaymentPlanCreate,
    PaymentType,
    PlanConfig,
)
from components.settings.repository import SettingsRepository
from components.settings.schemas import RateTable

logger = logging.getLogger(__name__)

INSTITUTION_ID = 1


async def seed_data():
    """Create the tables and seed demo data for one institution."""
    await db_manager.create_tables()

    async with db_manager.get_db() as db:
        await SettingsRepository(db).save_rate_table(INSTITUTION_ID, RateTable.default(get_settings()))

        expenses = RecurringExpenseRepository(db)
        rent = await expenses.create(RecurringExpenseCreate(
            institution_id=INSTITUTION_ID,
            title="Rent",
            category="Rent",
            estimated_amount=Decimal("15000"),
            due_day=5,
            start_date=date(2025, 1, 1),
        ))
        electricity = await expenses.create(RecurringExpenseCreate(
            institution_id=INSTITUTION_ID,
            title="Electricity",
            category="Utilities",
            amount_type=AmountType.VARIABLE,
            estimated_amount=Decimal("1200"),
            due_day_type=DueDayType.RANGE,
            due_day=None,
            due_day_range_start=10,
            due_day_range_end=15,
            start_date=date(2025, 1, 1),
        ))
        generated = await expenses.generate_all(INSTITUTION_ID)
        logger.info("Seeded templates %s and %s with %d expense(s)", rent.id, electricity.id, generated)

        plans = PaymentPlanRepository(db)
        plan = await plans.create(PaymentPlanCreate(
            institution_id=INSTITUTION_ID,
            enrollment_id=1,
            config=PlanConfig(
                total_amount=Decimal("1200"),
                discount_type=DiscountType.PERCENTAGE,
                discount_value=Decimal("10"),
                payment_type=PaymentType.CASH_INSTALLMENT,
                installment_count=3,
                first_installment_date=date.today(),
            ),
        ))
        logger.info("Seeded payment plan %s", plan.id)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(seed_data())
