"""Administration of tariff plans with the single-default rule."""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Any

from wattly.authz import Action, Actor, Authorizer
from wattly.billing.money import money, percent, rate
from wattly.db.repository import Repository
from wattly.errors import ConflictError, NotFoundError, ValidationError
from wattly.tariff.base import TariffPlan

logger = logging.getLogger(__name__)

DEFAULT_VAT_RATE = Decimal("8.1")


def _validated(fields: dict[str, Any]) -> dict[str, Any]:
    """Normalize decimal fields to their stored scale and check ranges."""
    out: dict[str, Any] = {}
    try:
        for name in ("community_rate", "grid_rate", "injection_rate"):
            if name in fields:
                out[name] = rate(fields[name])
        if "monthly_fee" in fields:
            out["monthly_fee"] = money(fields["monthly_fee"])
        if "vat_rate" in fields:
            out["vat_rate"] = percent(fields["vat_rate"])
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc

    for name in ("community_rate", "grid_rate"):
        if name in out and out[name] <= 0:
            raise ValidationError(f"{name} must be positive")
    if "injection_rate" in out and out["injection_rate"] < 0:
        raise ValidationError("injection_rate must not be negative")
    if "monthly_fee" in out and out["monthly_fee"] < 0:
        raise ValidationError("monthly_fee must not be negative")
    if "vat_rate" in out and not 0 <= out["vat_rate"] <= 100:
        raise ValidationError("vat_rate must be between 0 and 100")

    for name in ("valid_from", "valid_to"):
        if name in fields:
            value = fields[name]
            if value is None:
                out[name] = None
                continue
            try:
                out[name] = (value if isinstance(value, date) else date.fromisoformat(str(value))).isoformat()
            except ValueError as exc:
                raise ValidationError(f"{name}: {exc}") from exc
    if "name" in fields:
        name = str(fields["name"]).strip()
        if not name:
            raise ValidationError("name must not be empty")
        out["name"] = name
    return out


class TariffAdmin:
    """Create, update, promote and delete tariff plans of an organization."""

    def __init__(self, repo: Repository, authorizer: Authorizer) -> None:
        self._repo = repo
        self._authorizer = authorizer

    async def list_plans(self, actor: Actor, organization_id: int) -> list[TariffPlan]:
        await self._authorizer.require(actor, Action.VIEW_BILLING, organization_id)
        return [TariffPlan.from_row(r) for r in await self._repo.list_tariff_plans(organization_id)]

    async def create(
        self,
        actor: Actor,
        organization_id: int,
        name: str,
        community_rate: Any,
        grid_rate: Any,
        injection_rate: Any,
        monthly_fee: Any = "0",
        vat_rate: Any = DEFAULT_VAT_RATE,
        valid_from: Any = None,
        valid_to: Any = None,
        is_default: bool = False,
    ) -> TariffPlan:
        await self._authorizer.require(actor, Action.MANAGE_TARIFFS, organization_id)
        fields = _validated({
            "name": name,
            "community_rate": community_rate,
            "grid_rate": grid_rate,
            "injection_rate": injection_rate,
            "monthly_fee": monthly_fee,
            "vat_rate": vat_rate,
            "valid_from": valid_from or date.today(),
            "valid_to": valid_to,
        })
        self._check_validity(fields["valid_from"], fields["valid_to"])

        async with self._repo.transaction():
            if await self._repo.get_organization(organization_id) is None:
                raise NotFoundError(f"Organization {organization_id} not found")
            # An organization's first plan is always its default
            if not await self._repo.list_tariff_plans(organization_id):
                is_default = True
            tariff_id = await self._repo.create_tariff_plan(organization_id, is_default, **fields)

        logger.info("Created tariff plan %d '%s' for organization %d", tariff_id, name, organization_id)
        return await self._get(tariff_id)

    async def update(self, actor: Actor, tariff_id: int, **changes: Any) -> TariffPlan:
        plan = await self._get(tariff_id)
        await self._authorizer.require(actor, Action.MANAGE_TARIFFS, plan.organization_id)
        fields = _validated(changes)
        unknown = set(changes) - set(fields)
        if unknown:
            raise ValidationError(f"Unknown tariff fields: {', '.join(sorted(unknown))}")
        valid_from = fields.get("valid_from", plan.valid_from.isoformat())
        valid_to = fields.get("valid_to", plan.valid_to.isoformat() if plan.valid_to else None)
        self._check_validity(valid_from, valid_to)

        await self._repo.update_tariff_plan(tariff_id, **fields)
        logger.info("Updated tariff plan %d (%s)", tariff_id, ", ".join(sorted(fields)))
        return await self._get(tariff_id)

    async def set_default(self, actor: Actor, tariff_id: int) -> TariffPlan:
        plan = await self._get(tariff_id)
        await self._authorizer.require(actor, Action.MANAGE_TARIFFS, plan.organization_id)
        await self._repo.set_default_tariff(plan.organization_id, tariff_id)
        logger.info("Tariff plan %d is now the default of organization %d", tariff_id, plan.organization_id)
        return await self._get(tariff_id)

    async def delete(self, actor: Actor, tariff_id: int) -> None:
        plan = await self._get(tariff_id)
        await self._authorizer.require(actor, Action.MANAGE_TARIFFS, plan.organization_id)

        async with self._repo.transaction():
            plans = await self._repo.list_tariff_plans(plan.organization_id)
            if len(plans) <= 1:
                raise ConflictError("Cannot delete the only tariff plan of an organization")
            await self._repo.delete_tariff_plan(tariff_id)
            if plan.is_default:
                # list is ordered default first, then most recent validity
                successor = next(p for p in plans if p["id"] != tariff_id)
                await self._repo.set_default_tariff(plan.organization_id, successor["id"])
                logger.info("Promoted tariff plan %d to default", successor["id"])

        logger.info("Deleted tariff plan %d", tariff_id)

    async def _get(self, tariff_id: int) -> TariffPlan:
        row = await self._repo.get_tariff_plan(tariff_id)
        if row is None:
            raise NotFoundError(f"Tariff plan {tariff_id} not found")
        return TariffPlan.from_row(row)

    @staticmethod
    def _check_validity(valid_from: str, valid_to: str | None) -> None:
        if valid_to is not None and valid_to <= valid_from:
            raise ValidationError("valid_to must be after valid_from")
