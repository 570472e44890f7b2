"""Platform usage billing: the operator invoices each organization monthly."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Any

import aiosqlite

from wattly.authz import Action, Actor, Authorizer
from wattly.billing.lifecycle import STAMPS, check_transition
from wattly.billing.money import ZERO_KWH, ZERO_MONEY, kwh, money, percent, rate, to_decimal, vat_amount
from wattly.config.schema import AppConfig, PlatformBillingConfig
from wattly.db.repository import Repository
from wattly.errors import ConflictError, NotFoundError, ValidationError
from wattly.logging.context import billing_context
from wattly.timezone_utils import validate_period

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlatformCharge:
    total_kwh: Decimal
    rate_per_kwh: Decimal
    calculated_amount: Decimal
    minimum_amount: Decimal
    final_amount: Decimal
    vat_rate: Decimal
    vat_amount: Decimal
    total: Decimal


def calculate_charge(total_kwh: Decimal, pricing: PlatformBillingConfig) -> PlatformCharge:
    """Usage fee with a monthly floor, plus VAT on the floored amount."""
    per_kwh = rate(pricing.rate_per_kwh)
    minimum = money(pricing.minimum_amount)
    vat = percent(pricing.vat_rate)
    calculated = money(total_kwh * per_kwh)
    final = max(calculated, minimum)
    tax = vat_amount(final, vat)
    return PlatformCharge(total_kwh, per_kwh, calculated, minimum, final, vat, tax, final + tax)


class PlatformBillingCalculator:
    def __init__(self, config: AppConfig, repo: Repository, authorizer: Authorizer) -> None:
        self._config = config
        self._pricing = config.platform_billing
        self._repo = repo
        self._authorizer = authorizer

    async def generate(
        self,
        actor: Actor,
        organization_id: int,
        year: int,
        month: int,
        issue_date: date | None = None,
    ) -> dict[str, Any]:
        """Create the platform invoice of one organization and month.

        A second invoice for the same period is refused with ConflictError.
        """
        await self._authorizer.require(actor, Action.GENERATE_PLATFORM_INVOICE, organization_id)
        try:
            validate_period(year, month)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        if await self._repo.get_organization(organization_id) is None:
            raise NotFoundError(f"Organization {organization_id} not found")

        with billing_context(organization_id=organization_id, period=f"{year}-{month:02d}"):
            aggregates = await self._repo.get_monthly_aggregates(organization_id, year, month)
            total_kwh = kwh(sum((to_decimal(a["total_consumption_kwh"]) for a in aggregates), ZERO_KWH))
            charge = calculate_charge(total_kwh, self._pricing)
            due = (issue_date or date.today()) + timedelta(days=self._pricing.payment_term_days)

            try:
                async with self._repo.transaction():
                    if await self._repo.get_platform_invoice_for_period(organization_id, year, month):
                        raise ConflictError(
                            f"A platform invoice already exists for {month}/{year}",
                            organization_id=organization_id,
                        )
                    sequence = await self._repo.next_sequence(
                        f"platform:{year}", floor=await self._repo.max_platform_sequence(year),
                    )
                    number = f"{self._pricing.number_prefix}-{year}-{sequence:03d}"
                    invoice_id = await self._repo.insert_platform_invoice({
                        "organization_id": organization_id,
                        "year": year,
                        "month": month,
                        "sequence": sequence,
                        "invoice_number": number,
                        "total_kwh": charge.total_kwh,
                        "rate_per_kwh": charge.rate_per_kwh,
                        "calculated_amount": charge.calculated_amount,
                        "minimum_amount": charge.minimum_amount,
                        "final_amount": charge.final_amount,
                        "vat_rate": charge.vat_rate,
                        "vat_amount": charge.vat_amount,
                        "total": charge.total,
                        "currency": self._pricing.currency,
                        "due_date": due.isoformat(),
                    })
            except aiosqlite.IntegrityError as exc:
                raise ConflictError(
                    f"A platform invoice already exists for {month}/{year}",
                    organization_id=organization_id,
                ) from exc

            logger.info(
                "Platform invoice %s: %s kWh -> %s %s",
                number, charge.total_kwh, charge.total, self._pricing.currency,
            )
        return await self._get(invoice_id)

    async def get_invoice(self, actor: Actor, invoice_id: int) -> dict[str, Any]:
        await self._authorizer.require_invoice(actor, Action.VIEW_BILLING, invoice_id, kind="platform")
        return await self._get(invoice_id)

    async def list_invoices(self, actor: Actor, organization_id: int) -> list[dict[str, Any]]:
        await self._authorizer.require(actor, Action.VIEW_BILLING, organization_id)
        return await self._repo.list_platform_invoices(organization_id)

    async def mark_sent(self, actor: Actor, invoice_id: int) -> dict[str, Any]:
        return await self._transition(actor, invoice_id, "sent")

    async def mark_paid(self, actor: Actor, invoice_id: int) -> dict[str, Any]:
        return await self._transition(actor, invoice_id, "paid")

    async def cancel(self, actor: Actor, invoice_id: int) -> dict[str, Any]:
        return await self._transition(actor, invoice_id, "cancelled")

    async def billing_summary(self, actor: Actor, organization_id: int, today: date | None = None) -> dict[str, Any]:
        """Paid and outstanding platform charges plus current pricing."""
        await self._authorizer.require(actor, Action.VIEW_BILLING, organization_id)
        invoices = await self._repo.list_platform_invoices(organization_id)
        day = (today or date.today()).isoformat()

        paid = outstanding = ZERO_MONEY
        overdue = 0
        for inv in invoices:
            amount = to_decimal(inv["total"])
            if inv["status"] == "paid":
                paid += amount
            elif inv["status"] != "cancelled":
                outstanding += amount
                if inv["status"] == "overdue" or inv["due_date"] < day:
                    overdue += 1

        latest = invoices[0] if invoices else None
        return {
            "total_paid": str(paid),
            "total_outstanding": str(outstanding),
            "overdue_count": overdue,
            "invoice_count": len(invoices),
            "latest_invoice": {
                "id": latest["id"],
                "invoice_number": latest["invoice_number"],
                "total": latest["total"],
                "status": latest["status"],
                "due_date": latest["due_date"],
            } if latest else None,
            "rate_per_kwh": str(rate(self._pricing.rate_per_kwh)),
            "minimum_amount": str(money(self._pricing.minimum_amount)),
            "vat_rate": str(percent(self._pricing.vat_rate)),
            "currency": self._pricing.currency,
        }

    async def _transition(self, actor: Actor, invoice_id: int, status: str) -> dict[str, Any]:
        await self._authorizer.require_invoice(actor, Action.UPDATE_PLATFORM_INVOICE, invoice_id, kind="platform")
        invoice = await self._get(invoice_id)
        check_transition(invoice["status"], status, invoice["invoice_number"])
        changed = await self._repo.update_platform_invoice_status(
            invoice_id, status, expected_status=invoice["status"], stamp_column=STAMPS.get(status),
        )
        if not changed:
            raise ConflictError(f"Platform invoice {invoice['invoice_number']} was modified concurrently")
        logger.info("Platform invoice %s: %s -> %s", invoice["invoice_number"], invoice["status"], status)
        return await self._get(invoice_id)

    async def _get(self, invoice_id: int) -> dict[str, Any]:
        invoice = await self._repo.get_platform_invoice(invoice_id)
        if invoice is None:
            raise NotFoundError(f"Platform invoice {invoice_id} not found")
        return invoice
