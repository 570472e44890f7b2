"""Selects the tariff plan that prices a billing period."""

from __future__ import annotations

import logging
from datetime import date

from wattly.db.repository import Repository
from wattly.errors import ConfigurationError
from wattly.tariff.base import TariffPlan

logger = logging.getLogger(__name__)


class TariffResolver:
    def __init__(self, repo: Repository) -> None:
        self._repo = repo

    async def resolve(self, organization_id: int, year: int, month: int) -> TariffPlan:
        """Return the plan valid on the first day of the period.

        Several valid plans are disambiguated by the default flag. With no
        valid plan at all the organization default is used as a fallback.
        """
        first_day = date(year, month, 1)
        rows = await self._repo.get_tariffs_valid_on(organization_id, first_day.isoformat())
        plans = [TariffPlan.from_row(r) for r in rows]

        if len(plans) == 1:
            return plans[0]
        if plans:
            defaults = [p for p in plans if p.is_default]
            if defaults:
                return defaults[0]
            raise ConfigurationError(
                f"{len(plans)} tariff plans are valid for {year}-{month:02d} and none is the default",
                organization_id=organization_id,
                plan_ids=[p.id for p in plans],
            )

        default = await self._repo.get_default_tariff(organization_id)
        if default is None:
            raise ConfigurationError(
                f"No tariff plan configured for {year}-{month:02d}",
                organization_id=organization_id,
            )
        plan = TariffPlan.from_row(default)
        logger.warning(
            "No tariff valid for %d-%02d in organization %d; falling back to default plan %d",
            year, month, organization_id, plan.id,
        )
        return plan
