"""Recurring expense models for the database."""

from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from components.core.database import Base


class RecurringExpense(Base):
    """Template of a periodically recurring obligation."""
    __tablename__ = "recurring_expenses"

    id = Column(Integer, primary_key=True, index=True)
    institution_id = Column(Integer, nullable=False, index=True)
    title = Column(String(200), nullable=False)
    category = Column(String(100), nullable=False, default="Other")
    description = Column(Text, nullable=True)
    amount_type = Column(String(20), nullable=False, default="fixed")
    estimated_amount = Column(Numeric(10, 2), nullable=False)
    frequency = Column(String(20), nullable=False, default="monthly")
    due_day_type = Column(String(20), nullable=False, default="fixed")
    due_day = Column(Integer, nullable=True)
    due_day_range_start = Column(Integer, nullable=True)
    due_day_range_end = Column(Integer, nullable=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    occurrences = relationship("ExpenseOccurrence", back_populates="recurring_expense")


class ExpenseOccurrence(Base):
    """One generated, dated instance of a recurring expense."""
    __tablename__ = "expense_occurrences"
    __table_args__ = (UniqueConstraint("recurring_expense_id", "period_start"),)

    id = Column(Integer, primary_key=True, index=True)
    recurring_expense_id = Column(Integer, ForeignKey("recurring_expenses.id"), nullable=False, index=True)
    period_start = Column(Date, nullable=False)  # First day of the period's month
    due_date = Column(Date, nullable=False, index=True)
    window_end = Column(Date, nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    estimated_amount = Column(Numeric(10, 2), nullable=False)
    status = Column(String(20), nullable=False, default="pending")
    description = Column(String(255), nullable=True)
    paid_date = Column(Date, nullable=True)
    ledger_entry_id = Column(Integer, nullable=True)  # Set by the expense ledger once paid
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    recurring_expense = relationship("RecurringExpense", back_populates="occurrences")
