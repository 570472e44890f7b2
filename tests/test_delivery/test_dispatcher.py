"""Tests for invoice sending, delivery attempts and retries."""

from __future__ import annotations

from datetime import date

import pytest
import pytest_asyncio

from wattly.authz import Actor
from wattly.config.schema import AppConfig
from wattly.errors import AuthorizationError, ConfigurationError, InvalidTransitionError
from wattly.services import Services

QR_IBAN = "CH4431999123000889012"


@pytest_asyncio.fixture
async def tariff(services: Services, community, admin: Actor):
    return await services.tariffs.create(
        admin, community.org_id, "Standard",
        community_rate="0.18", grid_rate="0.25", injection_rate="0.08", valid_from="2025-01-01",
    )


async def _generate(services: Services, community, admin: Actor) -> dict[int, dict]:
    result = await services.invoices.generate(admin, community.org_id, 2025, 1, issue_date=date(2025, 2, 1))
    return {inv["member_id"]: inv for inv in result.created}


@pytest.mark.asyncio
class TestSendInvoice:
    async def test_send_marks_sent_and_delivers(
        self, services: Services, community, admin: Actor, tariff, aggregate,
    ) -> None:
        c1 = community.consumer_ids[0]
        await aggregate(services.repo, community.org_id, c1, community="50", grid="60")
        invoice = (await _generate(services, community, admin))[c1]

        report = await services.dispatcher.send_invoice(admin, invoice["id"])

        assert report.status == "delivered"
        assert report.document_reference == f"doc-member-{invoice['id']}"
        stored = await services.repo.get_invoice(invoice["id"])
        assert stored["status"] == "sent"
        assert services.email.sent == [("claire@example.ch", report.document_reference, "fr")]

        document, payment = services.renderer.documents[0]
        assert document["kind"] == "member"
        assert document["status"] == "sent"
        assert len(document["lines"]) == 2
        assert payment["reference_type"] == "QRR"
        assert payment["reference"] == "000000000000000020250100012"
        assert payment["amount"] == "25.94"

    async def test_member_locale_used(
        self, services: Services, community, admin: Actor, tariff, aggregate,
    ) -> None:
        c2 = community.consumer_ids[1]
        await aggregate(services.repo, community.org_id, c2, grid="10")
        invoice = (await _generate(services, community, admin))[c2]
        await services.dispatcher.send_invoice(admin, invoice["id"])
        assert services.email.sent[0][2] == "de"

    async def test_renderer_failure_is_retryable(
        self, services: Services, community, admin: Actor, tariff, aggregate,
    ) -> None:
        c1 = community.consumer_ids[0]
        await aggregate(services.repo, community.org_id, c1, grid="10")
        invoice = (await _generate(services, community, admin))[c1]

        services.renderer.fail = True
        report = await services.dispatcher.send_invoice(admin, invoice["id"])
        assert report.status == "failed"
        assert report.error == "renderer unavailable"
        # The status change is kept even though delivery failed
        assert (await services.repo.get_invoice(invoice["id"]))["status"] == "sent"

        services.renderer.fail = False
        retried = await services.dispatcher.retry_failed_deliveries()
        assert [r.status for r in retried] == ["delivered"]
        attempts = await services.repo.get_delivery_attempts("member", invoice["id"])
        assert len(attempts) == 1
        assert attempts[0]["status"] == "delivered"
        assert attempts[0]["attempts"] == 2
        assert (await services.repo.get_invoice(invoice["id"]))["status"] == "sent"

    async def test_renderer_crash_recorded_as_failure(
        self, services: Services, community, admin: Actor, tariff, aggregate,
    ) -> None:
        c1 = community.consumer_ids[0]
        await aggregate(services.repo, community.org_id, c1, grid="10")
        invoice = (await _generate(services, community, admin))[c1]

        services.renderer.crash = RuntimeError("renderer crashed")
        report = await services.dispatcher.send_invoice(admin, invoice["id"])

        assert report.status == "failed"
        assert report.error == "renderer crashed"
        attempts = await services.repo.get_delivery_attempts("member", invoice["id"])
        assert [(a["status"], a["attempts"]) for a in attempts] == [("failed", 1)]

        services.renderer.crash = None
        retried = await services.dispatcher.retry_failed_deliveries()
        assert [r.status for r in retried] == ["delivered"]

    async def test_retry_gives_up_after_max_attempts(
        self, services: Services, community, admin: Actor, tariff, aggregate,
    ) -> None:
        c1 = community.consumer_ids[0]
        await aggregate(services.repo, community.org_id, c1, grid="10")
        invoice = (await _generate(services, community, admin))[c1]
        services.renderer.fail = True
        await services.dispatcher.send_invoice(admin, invoice["id"])

        await services.dispatcher.retry_failed_deliveries(max_attempts=2)
        assert await services.dispatcher.retry_failed_deliveries(max_attempts=2) == []

    async def test_rejected_email_recorded_as_failure(
        self, services: Services, community, admin: Actor, tariff, aggregate,
    ) -> None:
        c1 = community.consumer_ids[0]
        await aggregate(services.repo, community.org_id, c1, grid="10")
        invoice = (await _generate(services, community, admin))[c1]
        services.email.accept = False

        report = await services.dispatcher.send_invoice(admin, invoice["id"])
        assert report.status == "failed"
        attempt = await services.repo.get_delivery_attempt(report.attempt_id)
        assert attempt["document_reference"] == report.document_reference
        assert "not accepted" in attempt["error"]

    async def test_missing_iban_aborts_before_status_change(
        self, services: Services, community, admin: Actor, tariff, aggregate,
    ) -> None:
        c1 = community.consumer_ids[0]
        await aggregate(services.repo, community.org_id, c1, grid="10")
        invoice = (await _generate(services, community, admin))[c1]
        await services.repo.update_organization(community.org_id, iban=None)

        with pytest.raises(ConfigurationError):
            await services.dispatcher.send_invoice(admin, invoice["id"])
        assert (await services.repo.get_invoice(invoice["id"]))["status"] == "draft"
        assert await services.repo.get_delivery_attempts("member", invoice["id"]) == []

    async def test_credit_note_has_no_payment(
        self, services: Services, community, admin: Actor, tariff, aggregate,
    ) -> None:
        producer = community.producer_id
        await aggregate(services.repo, community.org_id, producer, exported="100")
        invoice = (await _generate(services, community, admin))[producer]
        assert invoice["total"] == "-8.65"

        report = await services.dispatcher.send_invoice(admin, invoice["id"])
        assert report.status == "delivered"
        assert services.renderer.documents[0][1] is None

    async def test_cancelled_cannot_be_sent(
        self, services: Services, community, admin: Actor, tariff, aggregate,
    ) -> None:
        c1 = community.consumer_ids[0]
        await aggregate(services.repo, community.org_id, c1, grid="10")
        invoice = (await _generate(services, community, admin))[c1]
        await services.lifecycle.cancel(admin, invoice["id"])
        with pytest.raises(InvalidTransitionError):
            await services.dispatcher.send_invoice(admin, invoice["id"])

    async def test_send_period(
        self, services: Services, community, admin: Actor, tariff, aggregate,
    ) -> None:
        for member_id in community.consumer_ids:
            await aggregate(services.repo, community.org_id, member_id, grid="10")
        await _generate(services, community, admin)

        reports = await services.dispatcher.send_period(admin, community.org_id, 2025, 1)
        assert [r.status for r in reports] == ["delivered", "delivered"]
        statuses = {inv["status"] for inv in await services.repo.list_invoices(community.org_id, 2025, 1)}
        assert statuses == {"sent"}

    async def test_send_period_continues_after_crash(
        self, services: Services, community, admin: Actor, tariff, aggregate,
    ) -> None:
        for member_id in community.consumer_ids:
            await aggregate(services.repo, community.org_id, member_id, grid="10")
        await _generate(services, community, admin)
        services.renderer.crash = RuntimeError("renderer crashed")

        reports = await services.dispatcher.send_period(admin, community.org_id, 2025, 1)
        assert [r.status for r in reports] == ["failed", "failed"]
        statuses = {inv["status"] for inv in await services.repo.list_invoices(community.org_id, 2025, 1)}
        assert statuses == {"sent"}

    async def test_outsider_denied(
        self, services: Services, community, admin: Actor, outsider: Actor, tariff, aggregate,
    ) -> None:
        c1 = community.consumer_ids[0]
        await aggregate(services.repo, community.org_id, c1, grid="10")
        invoice = (await _generate(services, community, admin))[c1]
        with pytest.raises(AuthorizationError):
            await services.dispatcher.send_invoice(outsider, invoice["id"])


@pytest.mark.asyncio
class TestSendPlatformInvoice:
    async def test_platform_invoice_to_contact_email(self, make_services, community, admin: Actor) -> None:
        services = make_services(AppConfig(platform_billing={"iban": QR_IBAN, "payee_name": "Wattly SA"}))
        invoice = await services.platform.generate(admin, community.org_id, 2025, 1)

        report = await services.dispatcher.send_platform_invoice(admin, invoice["id"])

        assert report.invoice_kind == "platform"
        assert report.status == "delivered"
        assert services.email.sent[0][0] == "admin@soleil.example"
        document, payment = services.renderer.documents[0]
        assert document["kind"] == "platform"
        assert document["lines"] == [{
            "description": "Frais de plateforme",
            "quantity": invoice["total_kwh"],
            "unit": "kWh",
            "unit_price": invoice["rate_per_kwh"],
            "total": "49.00",
        }]
        assert payment["creditor"]["name"] == "Wattly SA"
        assert payment["amount"] == "52.97"
        assert (await services.platform.get_invoice(admin, invoice["id"]))["status"] == "sent"

    async def test_platform_without_iban(self, services: Services, community, admin: Actor) -> None:
        invoice = await services.platform.generate(admin, community.org_id, 2025, 1)
        with pytest.raises(ConfigurationError):
            await services.dispatcher.send_platform_invoice(admin, invoice["id"])
        assert (await services.platform.get_invoice(admin, invoice["id"]))["status"] == "draft"
