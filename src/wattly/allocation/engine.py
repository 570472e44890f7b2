"""Turns the active load curves of a period into monthly aggregates."""

from __future__ import annotations

import logging
from collections import defaultdict
from decimal import Decimal

from wattly.allocation.base import POLICIES, AllocationResult, MemberEnergy, MemberSplit
from wattly.allocation.strategies import allocate
from wattly.authz import Action, Actor, Authorizer
from wattly.billing.money import ZERO_KWH, kwh
from wattly.config.schema import AppConfig
from wattly.db.repository import Repository
from wattly.errors import NotFoundError, ValidationError
from wattly.logging.context import billing_context
from wattly.timezone_utils import validate_period

logger = logging.getLogger(__name__)

EXPORT_CAPABLE = ("producer", "prosumer")


class AllocationEngine:
    """Computes the per-member five-way split for one organization and month.

    Every run recomputes every member with an active load curve in the
    period and fully replaces their aggregate rows, so re-running after a
    re-import converges to the same result.
    """

    def __init__(self, config: AppConfig, repo: Repository, authorizer: Authorizer) -> None:
        self._config = config
        self._repo = repo
        self._authorizer = authorizer

    async def recompute(self, actor: Actor, organization_id: int, year: int, month: int) -> AllocationResult:
        """Explicit admin-triggered recompute of one period."""
        await self._authorizer.require(actor, Action.RECOMPUTE_ALLOCATION, organization_id)
        return await self.run(organization_id, year, month)

    async def run(self, organization_id: int, year: int, month: int) -> AllocationResult:
        try:
            validate_period(year, month)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc

        org = await self._repo.get_organization(organization_id)
        if org is None:
            raise NotFoundError(f"Organization {organization_id} not found")

        policy = org["distribution_policy"] or self._config.community.default_distribution_policy
        if policy not in POLICIES:
            raise ValidationError(f"Unknown distribution policy: {policy}")
        granularity = self._config.allocation.granularity

        with billing_context(organization_id=organization_id, period=f"{year}-{month:02d}"):
            result = AllocationResult(organization_id, year, month, policy, granularity)
            members = {m["id"]: m for m in await self._repo.list_members(organization_id)}

            batches = []
            for batch in await self._repo.get_active_batches(organization_id, year, month):
                if batch["member_id"] is None or batch["member_id"] not in members:
                    result.skipped_batches.append(batch["id"])
                    result.warnings.append(f"batch {batch['id']} has no owning member")
                    continue
                if batch["category"] not in EXPORT_CAPABLE and Decimal(batch["total_production_kwh"]) > 0:
                    result.warnings.append(
                        f"production on consumer meter {batch['pod_code']} ignored"
                    )
                    logger.warning(
                        "Ignoring %s kWh production on consumer meter %s",
                        batch["total_production_kwh"], batch["pod_code"],
                    )
                batches.append(batch)

            levels = {
                mid: m["priority_level"] if m["priority_level"] is not None
                else self._config.community.default_priority_level
                for mid, m in members.items()
            }

            if granularity == "interval":
                result.splits = await self._allocate_by_interval(batches, levels, policy)
            else:
                result.splits = self._allocate_monthly(batches, levels, policy)

            async with self._repo.transaction():
                for member_id, split in result.splits.items():
                    await self._repo.upsert_monthly_aggregate(
                        organization_id, member_id, year, month, split.as_values(), policy,
                    )

            logger.info(
                "Allocated %s kWh community energy across %d members (%s, %s)",
                result.community_shared_kwh, len(result.splits), policy, granularity,
            )
        return result

    @staticmethod
    def _allocate_monthly(
        batches: list[dict],
        levels: dict[int, int],
        policy: str,
    ) -> dict[int, MemberSplit]:
        consumption: dict[int, Decimal] = defaultdict(lambda: ZERO_KWH)
        production: dict[int, Decimal] = defaultdict(lambda: ZERO_KWH)
        for batch in batches:
            member_id = batch["member_id"]
            consumption[member_id] += kwh(batch["total_consumption_kwh"])
            if batch["category"] in EXPORT_CAPABLE:
                production[member_id] += kwh(batch["total_production_kwh"])

        energies = [
            MemberEnergy(mid, consumption[mid], production[mid], levels[mid])
            for mid in sorted(consumption)
        ]
        return allocate(energies, policy)

    async def _allocate_by_interval(
        self,
        batches: list[dict],
        levels: dict[int, int],
        policy: str,
    ) -> dict[int, MemberSplit]:
        owners = {b["id"]: (b["member_id"], b["category"] in EXPORT_CAPABLE) for b in batches}
        readings = await self._repo.get_interval_readings(list(owners))

        # ts -> member -> [consumption, production]
        slices: dict[str, dict[int, list[Decimal]]] = defaultdict(dict)
        for reading in readings:
            member_id, exports = owners[reading["batch_id"]]
            flows = slices[reading["ts"]].setdefault(member_id, [ZERO_KWH, ZERO_KWH])
            flows[0] += kwh(reading["consumed_kwh"])
            if exports:
                flows[1] += kwh(reading["produced_kwh"])

        totals = {mid: MemberSplit(member_id=mid) for mid, _ in owners.values()}
        for ts in sorted(slices):
            energies = [
                MemberEnergy(mid, flows[0], flows[1], levels[mid])
                for mid, flows in sorted(slices[ts].items())
            ]
            for member_id, split in allocate(energies, policy).items():
                totals[member_id].add(split)
        return totals
