"""Error types raised by the billing engine and its repositories."""

from pydantic import BaseModel


class BillingError(Exception):
    """Base class for every billing error."""


class BillingValidationError(BillingError):
    """Input is malformed or violates a billing rule. Nothing was changed."""


class InstallmentNotFound(BillingValidationError):
    def __init__(self, installment_number: int):
        super().__init__(f"Installment {installment_number} not found in plan")
        self.installment_number = installment_number


class NotFoundError(BillingError):
    """A persisted record does not exist."""


class ConcurrencyConflict(BillingError):
    """The record changed under us; reload and retry."""


class BillingWarning(BaseModel):
    """A consistency problem that is reported but does not block a preview."""
    code: str
    message: str
