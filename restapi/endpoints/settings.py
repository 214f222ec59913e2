"""Institution billing settings endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from components.core.init_db import get_db
from components.settings import schemas
from components.settings.repository import SettingsRepository

router = APIRouter(
    prefix="/settings",
    tags=["settings"],
    responses={404: {"description": "Not found"}},
)


def _to_read(institution_id: int, table: schemas.RateTable, is_default: bool) -> schemas.InstitutionSettingsRead:
    return schemas.InstitutionSettingsRead(
        institution_id=institution_id,
        vat_rate=table.vat_rate,
        credit_card_rates=[
            schemas.CreditCardRateEntry(installments=count, rate=rate)
            for count, rate in sorted(table.credit_card_rates.items())
        ],
        is_default=is_default,
    )


@router.get("/{institution_id}", response_model=schemas.InstitutionSettingsRead)
async def get_settings(institution_id: int, db: AsyncSession = Depends(get_db)):
    """
    Get the VAT rate and credit card commission rates of an institution.

    Institutions without stored settings get the configured defaults
    (`is_default` is true).
    """
    repo = SettingsRepository(db)
    stored = await repo.has_settings(institution_id)
    table = await repo.get_rate_table(institution_id)
    return _to_read(institution_id, table, is_default=not stored)


@router.put("/{institution_id}", response_model=schemas.InstitutionSettingsRead)
async def update_settings(
    institution_id: int,
    data: schemas.InstitutionSettingsUpdate,
    db: AsyncSession = Depends(get_db),
):
    """Replace the VAT rate and credit card commission rates of an institution."""
    repo = SettingsRepository(db)
    table = await repo.save_rate_table(institution_id, data.to_rate_table())
    return _to_read(institution_id, table, is_default=False)
