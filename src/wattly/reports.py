"""Read-only views over monthly aggregates and invoices."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

from wattly.allocation.base import FLOW_FIELDS, MemberSplit
from wattly.authz import Action, Actor, Authorizer
from wattly.billing.invoices import load_invoice
from wattly.billing.lifecycle import STATUSES
from wattly.billing.money import ZERO_MONEY, kwh, to_decimal
from wattly.db.repository import Repository

logger = logging.getLogger(__name__)

_PERCENT = Decimal("0.1")


def _ratio(part: Decimal, whole: Decimal) -> str | None:
    """Percentage with one decimal, None when the base is zero."""
    if whole == 0:
        return None
    return str((part * 100 / whole).quantize(_PERCENT))


class Reports:
    def __init__(self, repo: Repository, authorizer: Authorizer) -> None:
        self._repo = repo
        self._authorizer = authorizer

    async def overview(self, actor: Actor, organization_id: int, year: int, month: int) -> dict[str, Any]:
        """Community totals for one month, with per-member rows."""
        await self._authorizer.require(actor, Action.VIEW_BILLING, organization_id)
        rows = await self._repo.get_monthly_aggregates(organization_id, year, month)

        totals = MemberSplit(member_id=0)
        members = []
        for row in rows:
            split = MemberSplit(
                member_id=row["member_id"],
                **{name: kwh(row[name]) for name in FLOW_FIELDS},
            )
            totals.add(split)
            members.append({"member_id": row["member_id"], **{k: str(v) for k, v in split.as_values().items()}})

        consumed = totals.total_consumption_kwh
        local = totals.self_consumption_kwh + totals.community_consumption_kwh
        return {
            "organization_id": organization_id,
            "year": year,
            "month": month,
            "member_count": len(rows),
            "totals": {k: str(v) for k, v in totals.as_values().items()},
            # share of consumption covered by own or community production
            "self_sufficiency_percent": _ratio(local, consumed),
            "members": members,
        }

    async def available_periods(self, actor: Actor, organization_id: int) -> list[dict[str, Any]]:
        await self._authorizer.require(actor, Action.VIEW_BILLING, organization_id)
        return await self._repo.get_available_periods(organization_id)

    async def invoice_stats(
        self,
        actor: Actor,
        organization_id: int,
        year: int | None = None,
        month: int | None = None,
    ) -> dict[str, Any]:
        """Counts and amounts per invoice status."""
        await self._authorizer.require(actor, Action.VIEW_BILLING, organization_id)
        invoices = await self._repo.list_invoices(organization_id, year, month)

        counts = {status: 0 for status in STATUSES}
        amounts = {status: ZERO_MONEY for status in STATUSES}
        for inv in invoices:
            counts[inv["status"]] += 1
            amounts[inv["status"]] += to_decimal(inv["total"])

        invoiced = sum((amounts[s] for s in STATUSES if s != "cancelled"), ZERO_MONEY)
        return {
            "count": len(invoices),
            "by_status": counts,
            "amount_by_status": {s: str(a) for s, a in amounts.items()},
            "total_invoiced": str(invoiced),
            "total_paid": str(amounts["paid"]),
            "total_outstanding": str(amounts["sent"] + amounts["overdue"]),
        }

    async def list_invoices(
        self,
        actor: Actor,
        organization_id: int,
        year: int | None = None,
        month: int | None = None,
        status: str | None = None,
    ) -> list[dict[str, Any]]:
        await self._authorizer.require(actor, Action.VIEW_BILLING, organization_id)
        return await self._repo.list_invoices(organization_id, year, month, status)

    async def invoice(self, actor: Actor, invoice_id: int) -> dict[str, Any]:
        await self._authorizer.require_invoice(actor, Action.VIEW_BILLING, invoice_id)
        invoice = await load_invoice(self._repo, invoice_id)
        invoice["deliveries"] = await self._repo.get_delivery_attempts("member", invoice_id)
        return invoice
