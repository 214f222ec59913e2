"""Shared fixtures for the billing tests."""

import asyncio
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool

# Register every table on the declarative base
import components.settings.models  # noqa: F401
import components.plan.models  # noqa: F401
import components.expense.models  # noqa: F401

from components.core.config import get_settings
from components.core.database import DatabaseManager
from components.expense.schemas import RecurringExpense
from components.plan.schemas import PaymentType, PlanConfig, DiscountType, InstallmentFrequency
from components.settings.schemas import RateTable


@pytest.fixture
def rates():
    return RateTable.default(get_settings())


@pytest.fixture
def installment_config():
    """1200 at 10% off, paid in three monthly cash installments."""
    return PlanConfig(
        total_amount=Decimal("1200"),
        discount_type=DiscountType.PERCENTAGE,
        discount_value=Decimal("10"),
        payment_type=PaymentType.CASH_INSTALLMENT,
        installment_count=3,
        installment_frequency=InstallmentFrequency.MONTHLY,
        first_installment_date=date(2025, 1, 15),
    )


@pytest.fixture
def rent_template():
    return RecurringExpense(
        id=1,
        institution_id=1,
        title="Rent",
        category="Rent",
        estimated_amount=Decimal("15000"),
        due_day=5,
        start_date=date(2025, 1, 1),
    )


@pytest.fixture
def db_manager(tmp_path):
    """DatabaseManager over a fresh sqlite file with all tables created."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'billing.db'}", poolclass=NullPool)
    manager = DatabaseManager(engine)
    asyncio.run(manager.create_tables())
    return manager
