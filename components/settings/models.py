"""Institution billing settings models for the database."""

from sqlalchemy import Column, Integer, ForeignKey, Numeric, UniqueConstraint
from sqlalchemy.orm import relationship

from components.core.database import Base


class InstitutionSettings(Base):
    """Billing settings of one institution."""
    __tablename__ = "institution_settings"

    id = Column(Integer, primary_key=True, index=True)
    institution_id = Column(Integer, unique=True, nullable=False, index=True)
    vat_rate = Column(Numeric(5, 2), nullable=False)

    credit_card_rates = relationship(
        "CreditCardRate",
        back_populates="settings",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="CreditCardRate.installments",
    )


class CreditCardRate(Base):
    """Commission rate for a number of card installments."""
    __tablename__ = "credit_card_rates"
    __table_args__ = (UniqueConstraint("settings_id", "installments"),)

    id = Column(Integer, primary_key=True, index=True)
    settings_id = Column(Integer, ForeignKey("institution_settings.id"), nullable=False)
    installments = Column(Integer, nullable=False)
    rate = Column(Numeric(5, 2), nullable=False)

    settings = relationship("InstitutionSettings", back_populates="credit_card_rates")
