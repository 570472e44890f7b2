"""Tests for platform usage billing."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from wattly.authz import Actor
from wattly.billing.platform import calculate_charge
from wattly.config.schema import PlatformBillingConfig
from wattly.errors import AuthorizationError, ConflictError, InvalidTransitionError, ValidationError
from wattly.services import Services

PRICING = PlatformBillingConfig()


class TestCalculateCharge:
    def test_minimum_applies(self) -> None:
        charge = calculate_charge(Decimal("1000"), PRICING)
        assert charge.calculated_amount == Decimal("5.00")
        assert charge.final_amount == Decimal("49.00")
        assert charge.vat_amount == Decimal("3.97")
        assert charge.total == Decimal("52.97")

    def test_above_minimum(self) -> None:
        charge = calculate_charge(Decimal("20000"), PRICING)
        assert charge.final_amount == Decimal("100.00")
        assert charge.vat_amount == Decimal("8.10")
        assert charge.total == Decimal("108.10")

    def test_zero_usage_still_charges_minimum(self) -> None:
        assert calculate_charge(Decimal("0"), PRICING).total == Decimal("52.97")

    def test_custom_pricing(self) -> None:
        pricing = PlatformBillingConfig(rate_per_kwh=Decimal("0.01"), minimum_amount=Decimal("0"), vat_rate=Decimal("0"))
        charge = calculate_charge(Decimal("1234.5"), pricing)
        assert charge.final_amount == Decimal("12.35")
        assert charge.total == Decimal("12.35")


@pytest.mark.asyncio
class TestPlatformBilling:
    async def test_generate_sums_consumption(
        self, services: Services, community, admin: Actor, aggregate,
    ) -> None:
        c1, c2 = community.consumer_ids
        await aggregate(services.repo, community.org_id, c1, community="6000", grid="4000")
        await aggregate(services.repo, community.org_id, c2, grid="10000")

        invoice = await services.platform.generate(
            admin, community.org_id, 2025, 1, issue_date=date(2025, 2, 1),
        )
        assert invoice["invoice_number"] == "WATTLY-2025-001"
        assert invoice["total_kwh"] == "20000.0000"
        assert invoice["final_amount"] == "100.00"
        assert invoice["total"] == "108.10"
        assert invoice["status"] == "draft"
        assert invoice["due_date"] == "2025-03-03"

    async def test_numbering_spans_organizations(
        self, services: Services, community, admin: Actor,
    ) -> None:
        other_org = await services.repo.create_organization("Valais Solaire")
        system = Actor.system()
        first = await services.platform.generate(admin, community.org_id, 2025, 1)
        second = await services.platform.generate(system, other_org, 2025, 1)
        third = await services.platform.generate(system, other_org, 2025, 2)
        assert [first["invoice_number"], second["invoice_number"], third["invoice_number"]] == [
            "WATTLY-2025-001", "WATTLY-2025-002", "WATTLY-2025-003",
        ]

    async def test_numbering_restarts_each_year(self, services: Services, community, admin: Actor) -> None:
        await services.platform.generate(admin, community.org_id, 2024, 12)
        january = await services.platform.generate(admin, community.org_id, 2025, 1)
        assert january["invoice_number"] == "WATTLY-2025-001"

    async def test_duplicate_period_rejected(self, services: Services, community, admin: Actor) -> None:
        await services.platform.generate(admin, community.org_id, 2025, 1)
        with pytest.raises(ConflictError):
            await services.platform.generate(admin, community.org_id, 2025, 1)

    async def test_invalid_period(self, services: Services, community, admin: Actor) -> None:
        with pytest.raises(ValidationError):
            await services.platform.generate(admin, community.org_id, 2025, 0)

    async def test_status_changes(self, services: Services, community, admin: Actor) -> None:
        invoice = await services.platform.generate(admin, community.org_id, 2025, 1)
        sent = await services.platform.mark_sent(admin, invoice["id"])
        assert sent["sent_at"] is not None
        paid = await services.platform.mark_paid(admin, invoice["id"])
        assert paid["status"] == "paid"
        with pytest.raises(InvalidTransitionError):
            await services.platform.cancel(admin, invoice["id"])

    async def test_billing_summary(self, services: Services, community, admin: Actor) -> None:
        first = await services.platform.generate(admin, community.org_id, 2025, 1, issue_date=date(2025, 2, 1))
        await services.platform.mark_sent(admin, first["id"])
        await services.platform.mark_paid(admin, first["id"])
        second = await services.platform.generate(admin, community.org_id, 2025, 2, issue_date=date(2025, 3, 1))
        await services.platform.mark_sent(admin, second["id"])

        summary = await services.platform.billing_summary(admin, community.org_id, today=date(2025, 6, 1))
        assert summary["total_paid"] == "52.97"
        assert summary["total_outstanding"] == "52.97"
        assert summary["overdue_count"] == 1
        assert summary["invoice_count"] == 2
        assert summary["minimum_amount"] == "49.00"
        assert summary["rate_per_kwh"] == "0.0050"

    async def test_empty_summary(self, services: Services, community, admin: Actor) -> None:
        summary = await services.platform.billing_summary(admin, community.org_id)
        assert summary["latest_invoice"] is None
        assert summary["total_outstanding"] == "0.00"

    async def test_outsider_denied(self, services: Services, community, outsider: Actor) -> None:
        with pytest.raises(AuthorizationError):
            await services.platform.generate(outsider, community.org_id, 2025, 1)
        with pytest.raises(AuthorizationError):
            await services.platform.billing_summary(outsider, community.org_id)
