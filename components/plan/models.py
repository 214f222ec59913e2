"""Payment plan models for the database."""

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
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from components.core.database import Base


class PaymentPlan(Base):
    """Billing arrangement for one enrollment."""
    __tablename__ = "payment_plans"

    id = Column(Integer, primary_key=True, index=True)
    institution_id = Column(Integer, nullable=False, index=True)
    enrollment_id = Column(Integer, nullable=False, index=True)
    payment_type = Column(String(20), nullable=False)
    total_amount = Column(Numeric(10, 2), nullable=False)  # Before discount
    discount_type = Column(String(20), nullable=False, default="none")
    discount_value = Column(Numeric(10, 2), nullable=False, default=0)
    discount_amount = Column(Numeric(10, 2), nullable=False, default=0)
    discounted_amount = Column(Numeric(10, 2), nullable=False)
    paid_amount = Column(Numeric(10, 2), nullable=False, default=0)
    remaining_amount = Column(Numeric(10, 2), nullable=False, default=0)
    credit_balance = Column(Numeric(10, 2), nullable=False, default=0)  # Overpayment surplus
    is_completed = Column(Boolean, nullable=False, default=False)
    version_id = Column(Integer, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    installments = relationship(
        "Installment",
        back_populates="plan",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="Installment.installment_number",
    )

    __mapper_args__ = {"version_id_col": version_id}


class Installment(Base):
    """One scheduled charge within a payment plan."""
    __tablename__ = "installments"
    __table_args__ = (UniqueConstraint("plan_id", "installment_number"),)

    id = Column(Integer, primary_key=True, index=True)
    plan_id = Column(Integer, ForeignKey("payment_plans.id"), nullable=False)
    installment_number = Column(Integer, nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    due_date = Column(Date, nullable=False)
    payment_method = Column(String(20), nullable=False, default="cash")
    credit_card_installments = Column(Integer, nullable=False, default=1)
    is_invoiced = Column(Boolean, nullable=False, default=False)
    is_custom_amount = Column(Boolean, nullable=False, default=False)
    commission_rate = Column(Numeric(5, 2), nullable=False, default=0)
    commission = Column(Numeric(10, 2), nullable=False, default=0)
    vat_rate = Column(Numeric(5, 2), nullable=False, default=0)
    vat = Column(Numeric(10, 2), nullable=False, default=0)
    total = Column(Numeric(10, 2), nullable=False, default=0)
    paid_amount = Column(Numeric(10, 2), nullable=False, default=0)
    is_paid = Column(Boolean, nullable=False, default=False)
    paid_date = Column(DateTime, nullable=True)

    plan = relationship("PaymentPlan", back_populates="installments")
