"""Repository for institution billing settings."""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from components.core.config import get_settings
from components.settings.models import InstitutionSettings, CreditCardRate
from components.settings.schemas import RateTable

logger = logging.getLogger(__name__)


class SettingsRepository:
    """Repository for institution billing settings."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session."""
        self.session = session

    async def _get_row(self, institution_id: int) -> Optional[InstitutionSettings]:
        result = await self.session.execute(
            select(InstitutionSettings).where(InstitutionSettings.institution_id == institution_id)
        )
        return result.scalar_one_or_none()

    async def has_settings(self, institution_id: int) -> bool:
        return await self._get_row(institution_id) is not None

    async def get_rate_table(self, institution_id: int) -> RateTable:
        """Stored rate table of the institution, or the configured defaults."""
        row = await self._get_row(institution_id)
        if row is None:
            logger.debug("No settings stored for institution %s, using defaults", institution_id)
            return RateTable.default(get_settings())
        return RateTable(
            vat_rate=row.vat_rate,
            credit_card_rates={rate.installments: rate.rate for rate in row.credit_card_rates},
        )

    async def save_rate_table(self, institution_id: int, table: RateTable) -> RateTable:
        """Create or replace the rate table of the institution."""
        row = await self._get_row(institution_id)
        if row is None:
            row = InstitutionSettings(
                institution_id=institution_id,
                vat_rate=table.vat_rate,
                credit_card_rates=[
                    CreditCardRate(installments=count, rate=rate)
                    for count, rate in sorted(table.credit_card_rates.items())
                ],
            )
            self.session.add(row)
        else:
            row.vat_rate = table.vat_rate
            # Update in place; delete+insert of the same count would trip the unique key
            existing = {rate.installments: rate for rate in row.credit_card_rates}
            for count, rate in table.credit_card_rates.items():
                if count in existing:
                    existing[count].rate = rate
                else:
                    row.credit_card_rates.append(CreditCardRate(installments=count, rate=rate))
            for count, rate_row in existing.items():
                if count not in table.credit_card_rates:
                    row.credit_card_rates.remove(rate_row)
        await self.session.commit()
        logger.info("Saved billing settings for institution %s", institution_id)
        return table
