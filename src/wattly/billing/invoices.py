"""Monthly member invoices priced from the allocation aggregates."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Iterable

import aiosqlite

from wattly.authz import Action, Actor, Authorizer
from wattly.billing.labels import label, resolve_locale
from wattly.billing.money import ZERO_MONEY, money, to_decimal, vat_amount
from wattly.config.schema import AppConfig
from wattly.db.repository import Repository
from wattly.errors import NotFoundError, ValidationError
from wattly.logging.context import billing_context
from wattly.tariff.base import TariffPlan
from wattly.tariff.resolver import TariffResolver
from wattly.timezone_utils import month_bounds, validate_period

logger = logging.getLogger(__name__)

ONE = Decimal("1.0000")


@dataclass
class InvoiceLine:
    description: str
    quantity: Decimal
    unit: str
    unit_price: Decimal
    amount: Decimal  # exact, rounded only when stored
    kind: str
    sort_order: int

    def to_row(self) -> dict[str, Any]:
        return {
            "description": self.description,
            "quantity": self.quantity,
            "unit": self.unit,
            "unit_price": self.unit_price,
            "line_total": money(self.amount),
            "kind": self.kind,
            "sort_order": self.sort_order,
        }


@dataclass(frozen=True)
class InvoiceTotals:
    subtotal: Decimal
    vat_amount: Decimal
    total: Decimal


@dataclass
class SkippedMember:
    member_id: int
    reason: str


@dataclass
class GenerationResult:
    organization_id: int
    year: int
    month: int
    created: list[dict[str, Any]] = field(default_factory=list)
    skipped: list[SkippedMember] = field(default_factory=list)
    diagnostics: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "organization_id": self.organization_id,
            "year": self.year,
            "month": self.month,
            "created": self.created,
            "skipped": [{"member_id": s.member_id, "reason": s.reason} for s in self.skipped],
            "diagnostics": self.diagnostics,
        }


def build_lines(aggregate: dict[str, Any], plan: TariffPlan, locale: str) -> list[InvoiceLine]:
    """Invoice lines in their fixed order; zero quantities produce no line."""
    community = to_decimal(aggregate["community_consumption_kwh"])
    grid = to_decimal(aggregate["grid_consumption_kwh"])
    injected = to_decimal(aggregate["exported_to_community_kwh"])

    lines: list[InvoiceLine] = []
    if community > 0:
        lines.append(InvoiceLine(
            label("community", locale), community, "kWh", plan.community_rate,
            community * plan.community_rate, "consumption", 1,
        ))
    if grid > 0:
        lines.append(InvoiceLine(
            label("grid", locale), grid, "kWh", plan.grid_rate,
            grid * plan.grid_rate, "consumption", 2,
        ))
    if injected > 0:
        lines.append(InvoiceLine(
            label("injection", locale), injected, "kWh", -plan.injection_rate,
            -(injected * plan.injection_rate), "production_credit", 3,
        ))
    if plan.monthly_fee > 0:
        lines.append(InvoiceLine(
            label("fee", locale), ONE, "forfait", plan.monthly_fee,
            plan.monthly_fee, "fee", 4,
        ))
    return lines


def compute_totals(lines: Iterable[InvoiceLine], vat_rate: Decimal) -> InvoiceTotals:
    """Round half-up once on the summed exact line amounts, then add VAT."""
    subtotal = money(sum((line.amount for line in lines), ZERO_MONEY))
    vat = vat_amount(subtotal, vat_rate)
    return InvoiceTotals(subtotal, vat, subtotal + vat)


def format_invoice_number(year: int, month: int, sequence: int) -> str:
    return f"{year}-{month:02d}-{sequence:04d}"


async def load_invoice(repo: Repository, invoice_id: int) -> dict[str, Any]:
    """Invoice row with its ordered lines; raises NotFoundError."""
    invoice = await repo.get_invoice(invoice_id)
    if invoice is None:
        raise NotFoundError(f"Invoice {invoice_id} not found")
    invoice["lines"] = await repo.get_invoice_lines(invoice_id)
    return invoice


class InvoiceGenerator:
    """Creates one draft invoice per billable member and period.

    Each invoice is written in its own transaction together with the
    advance of the organization's number counter, so numbers are never
    skipped or reused even when two generators race.
    """

    def __init__(
        self,
        config: AppConfig,
        repo: Repository,
        authorizer: Authorizer,
        resolver: TariffResolver,
    ) -> None:
        self._config = config
        self._repo = repo
        self._authorizer = authorizer
        self._resolver = resolver

    async def generate(
        self,
        actor: Actor,
        organization_id: int,
        year: int,
        month: int,
        member_ids: list[int] | None = None,
        issue_date: date | None = None,
    ) -> GenerationResult:
        await self._authorizer.require(actor, Action.GENERATE_INVOICES, organization_id)
        try:
            validate_period(year, month)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc

        org = await self._repo.get_organization(organization_id)
        if org is None:
            raise NotFoundError(f"Organization {organization_id} not found")
        plan = await self._resolver.resolve(organization_id, year, month)

        result = GenerationResult(organization_id, year, month)
        with billing_context(organization_id=organization_id, period=f"{year}-{month:02d}"):
            aggregates = {a["member_id"]: a for a in await self._repo.get_monthly_aggregates(organization_id, year, month)}
            if not aggregates:
                result.diagnostics.append(f"no monthly aggregates for {year}-{month:02d}")
                logger.info("Nothing to invoice for %d-%02d", year, month)
                return result

            members = {m["id"]: m for m in await self._repo.list_members(organization_id)}
            targets = sorted(aggregates) if member_ids is None else sorted(set(member_ids))

            issued = issue_date or date.today()
            term = org["payment_term_days"]
            if term is None:
                term = self._config.billing.payment_term_days
            locale = resolve_locale(org["locale"], self._config.billing.locale)
            currency = org["currency"] or self._config.billing.currency
            period_start, period_end = month_bounds(year, month)

            for member_id in targets:
                member = members.get(member_id)
                if member is None:
                    result.skipped.append(SkippedMember(member_id, "unknown member"))
                    continue
                if member["role"] == "admin":
                    result.skipped.append(SkippedMember(member_id, "administrator"))
                    continue
                aggregate = aggregates.get(member_id)
                if aggregate is None:
                    result.skipped.append(SkippedMember(member_id, "no monthly aggregate"))
                    continue

                lines = build_lines(aggregate, plan, locale)
                totals = compute_totals(lines, plan.vat_rate)
                try:
                    invoice_id = await self._create(
                        organization_id, member_id, year, month, plan, lines, totals,
                        {
                            "period_start": period_start.isoformat(),
                            "period_end": period_end.isoformat(),
                            "due_date": (issued + timedelta(days=term)).isoformat(),
                            "currency": currency,
                            "locale": locale,
                        },
                    )
                except aiosqlite.IntegrityError:
                    # Another generator committed this member/period first
                    logger.info("Invoice for member %d created concurrently; skipping", member_id)
                    result.skipped.append(SkippedMember(member_id, "invoice already exists"))
                    continue
                if invoice_id is None:
                    result.skipped.append(SkippedMember(member_id, "invoice already exists"))
                    continue
                result.created.append(await load_invoice(self._repo, invoice_id))

            logger.info(
                "Generated %d invoices (%d skipped) with tariff plan %d",
                len(result.created), len(result.skipped), plan.id,
            )
        return result

    async def _create(
        self,
        organization_id: int,
        member_id: int,
        year: int,
        month: int,
        plan: TariffPlan,
        lines: list[InvoiceLine],
        totals: InvoiceTotals,
        extra: dict[str, Any],
    ) -> int | None:
        async with self._repo.transaction():
            if await self._repo.get_invoice_for_period(organization_id, member_id, year, month):
                return None
            sequence = await self._repo.next_sequence(
                f"invoices:{organization_id}",
                floor=await self._repo.max_invoice_sequence(organization_id),
            )
            number = format_invoice_number(year, month, sequence)
            invoice_id = await self._repo.insert_invoice(
                {
                    "organization_id": organization_id,
                    "member_id": member_id,
                    "year": year,
                    "month": month,
                    "sequence": sequence,
                    "invoice_number": number,
                    "subtotal": totals.subtotal,
                    "vat_rate": plan.vat_rate,
                    "vat_amount": totals.vat_amount,
                    "total": totals.total,
                    "tariff_plan_id": plan.id,
                    **extra,
                },
                [line.to_row() for line in lines],
            )
        logger.info("Created invoice %s for member %d: %s", number, member_id, totals.total)
        return invoice_id
