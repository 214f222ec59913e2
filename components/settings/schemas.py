"""Pydantic schemas for institution billing settings and rate lookup."""

from decimal import Decimal
from typing import Dict, List, Literal, Union

from pydantic import BaseModel, Field
from typing_extensions import Annotated

from components.core.config import Settings
from components.core.exceptions import BillingValidationError
from components.core.money import ZERO


class CashMethod(BaseModel):
    """Payment in cash. Carries no card installment count."""
    kind: Literal["cash"] = "cash"

    @property
    def credit_card_installments(self) -> int:
        return 1


class CreditCardMethod(BaseModel):
    """Card payment split into `installments` card-network installments."""
    kind: Literal["creditCard"] = "creditCard"
    installments: int = Field(1, ge=1)

    @property
    def credit_card_installments(self) -> int:
        return self.installments


PaymentMethod = Annotated[Union[CashMethod, CreditCardMethod], Field(discriminator="kind")]


class RateTable(BaseModel):
    """VAT rate and credit card commission rates of one institution."""
    vat_rate: Decimal = Field(..., ge=0)
    credit_card_rates: Dict[int, Decimal] = Field(default_factory=dict)

    @classmethod
    def default(cls, settings: Settings) -> "RateTable":
        return cls(
            vat_rate=settings.DEFAULT_VAT_RATE,
            credit_card_rates=dict(settings.DEFAULT_CREDIT_CARD_RATES),
        )

    def commission_rate(self, method: Union[CashMethod, CreditCardMethod]) -> Decimal:
        """Commission percentage charged for the given payment method."""
        if isinstance(method, CashMethod):
            return ZERO
        try:
            return self.credit_card_rates[method.installments]
        except KeyError:
            raise BillingValidationError(
                f"No credit card commission rate configured for {method.installments} installments"
            ) from None


class CreditCardRateEntry(BaseModel):
    installments: int = Field(..., ge=1)
    rate: Decimal = Field(..., ge=0)


class InstitutionSettingsUpdate(BaseModel):
    """Schema for updating institution billing settings."""
    vat_rate: Decimal = Field(..., ge=0)
    credit_card_rates: List[CreditCardRateEntry]

    def to_rate_table(self) -> RateTable:
        return RateTable(
            vat_rate=self.vat_rate,
            credit_card_rates={entry.installments: entry.rate for entry in self.credit_card_rates},
        )


class InstitutionSettingsRead(InstitutionSettingsUpdate):
    """Schema for institution billing settings response."""
    institution_id: int
    is_default: bool = False
