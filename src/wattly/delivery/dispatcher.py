"""Sends finished invoices to the document and email collaborators.

The status change to ``sent`` is committed first. Rendering and emailing
happen afterwards and only ever write delivery attempts, so a collaborator
outage leaves a retryable failed attempt and never rolls the invoice back.
"""

from __future__ import annotations

import logging
from typing import Any

from wattly.authz import Action, Actor, Authorizer
from wattly.billing.invoices import load_invoice
from wattly.billing.labels import label, resolve_locale
from wattly.billing.lifecycle import InvoiceLifecycle
from wattly.billing.platform import PlatformBillingCalculator
from wattly.config.schema import AppConfig
from wattly.db.repository import Repository
from wattly.delivery.base import DeliveryError, DeliveryReport, DocumentRenderer, EmailSender
from wattly.errors import ConfigurationError, InvalidTransitionError, NotFoundError, ValidationError
from wattly.payment.encoder import SwissPaymentEncoder

logger = logging.getLogger(__name__)

# Statuses from which a document may be (re)sent
_SENDABLE = ("draft", "sent", "overdue")


class InvoiceDispatcher:
    def __init__(
        self,
        config: AppConfig,
        repo: Repository,
        authorizer: Authorizer,
        lifecycle: InvoiceLifecycle,
        platform: PlatformBillingCalculator,
        encoder: SwissPaymentEncoder,
        renderer: DocumentRenderer,
        email: EmailSender,
    ) -> None:
        self._config = config
        self._repo = repo
        self._authorizer = authorizer
        self._lifecycle = lifecycle
        self._platform = platform
        self._encoder = encoder
        self._renderer = renderer
        self._email = email

    async def send_invoice(self, actor: Actor, invoice_id: int) -> DeliveryReport:
        """Mark a member invoice sent (if still a draft) and deliver it."""
        org_id = await self._authorizer.require_invoice(actor, Action.SEND_INVOICES, invoice_id)
        invoice = await load_invoice(self._repo, invoice_id)
        if invoice["status"] not in _SENDABLE:
            raise InvalidTransitionError(
                f"Invoice {invoice['invoice_number']} is {invoice['status']} and cannot be sent",
            )

        org = await self._organization(org_id)
        member = await self._repo.get_member(invoice["member_id"])
        if member is None:
            raise NotFoundError(f"Member {invoice['member_id']} not found")

        # A missing creditor IBAN fails here, before anything is written
        payment = self._member_payment(org, member, invoice)

        if invoice["status"] == "draft":
            invoice = await self._lifecycle.mark_sent(actor, invoice_id)

        locale = resolve_locale(member["locale"], invoice["locale"])
        attempt_id = await self._repo.create_delivery_attempt(
            "member", invoice_id, org_id, member["email"], locale,
        )
        return await self._deliver(attempt_id, "member", invoice, payment, member["email"], locale)

    async def send_period(self, actor: Actor, organization_id: int, year: int, month: int) -> list[DeliveryReport]:
        """Send every draft invoice of a period."""
        await self._authorizer.require(actor, Action.SEND_INVOICES, organization_id)
        reports = []
        for invoice in await self._repo.list_invoices(organization_id, year, month, status="draft"):
            reports.append(await self.send_invoice(actor, invoice["id"]))
        return reports

    async def send_platform_invoice(self, actor: Actor, invoice_id: int) -> DeliveryReport:
        org_id = await self._authorizer.require_invoice(
            actor, Action.UPDATE_PLATFORM_INVOICE, invoice_id, kind="platform",
        )
        invoice = await self._platform.get_invoice(actor, invoice_id)
        if invoice["status"] not in _SENDABLE:
            raise InvalidTransitionError(
                f"Platform invoice {invoice['invoice_number']} is {invoice['status']} and cannot be sent",
            )

        org = await self._organization(org_id)
        payment = self._encoder.encode_platform_invoice(self._config.platform_billing, org, invoice).to_dict()
        if invoice["status"] == "draft":
            invoice = await self._platform.mark_sent(actor, invoice_id)

        locale = resolve_locale(org["locale"], self._config.billing.locale)
        attempt_id = await self._repo.create_delivery_attempt(
            "platform", invoice_id, org_id, org["contact_email"], locale,
        )
        document = _platform_document(invoice, locale)
        return await self._deliver(attempt_id, "platform", document, payment, org["contact_email"], locale)

    async def retry_failed_deliveries(self, max_attempts: int = 5) -> list[DeliveryReport]:
        """Re-run failed attempts; invoice statuses are left as they are."""
        reports = []
        for attempt in await self._repo.get_failed_deliveries(max_attempts=max_attempts):
            try:
                document, payment = await self._rebuild(
                    attempt["invoice_kind"], attempt["invoice_id"], attempt["locale"],
                )
            except (NotFoundError, ValidationError, ConfigurationError) as e:
                logger.warning("Cannot retry delivery attempt %d: %s", attempt["id"], e)
                continue
            reports.append(await self._deliver(
                attempt["id"], attempt["invoice_kind"], document, payment,
                attempt["recipient"], attempt["locale"],
            ))
        if reports:
            delivered = sum(1 for r in reports if r.status == "delivered")
            logger.info("Retried %d deliveries, %d delivered", len(reports), delivered)
        return reports

    async def _deliver(
        self,
        attempt_id: int,
        kind: str,
        document: dict[str, Any],
        payment: dict[str, Any] | None,
        recipient: str | None,
        locale: str,
    ) -> DeliveryReport:
        reference: str | None = None
        try:
            reference = await self._renderer.render({**document, "kind": kind}, payment)
            if not recipient:
                raise DeliveryError("No recipient email address")
            if not await self._email.send(recipient, reference, locale):
                raise DeliveryError(f"Email to {recipient} was not accepted")
        except DeliveryError as e:
            logger.warning(
                "Delivery of %s invoice %s failed: %s", kind, document.get("invoice_number"), e,
            )
            await self._repo.record_delivery_result(attempt_id, "failed", reference, str(e))
            return DeliveryReport(kind, document["id"], attempt_id, "failed", reference, str(e))
        except Exception as e:
            # A broken collaborator still leaves a retryable failed attempt
            logger.error(
                "Delivery of %s invoice %s crashed: %s", kind, document.get("invoice_number"), e,
                exc_info=True,
            )
            await self._repo.record_delivery_result(attempt_id, "failed", reference, str(e))
            return DeliveryReport(kind, document["id"], attempt_id, "failed", reference, str(e))

        await self._repo.record_delivery_result(attempt_id, "delivered", reference)
        logger.info("Delivered %s invoice %s to %s", kind, document.get("invoice_number"), recipient)
        return DeliveryReport(kind, document["id"], attempt_id, "delivered", reference)

    async def _rebuild(
        self, kind: str, invoice_id: int, locale: str,
    ) -> tuple[dict[str, Any], dict[str, Any] | None]:
        if kind == "platform":
            invoice = await self._repo.get_platform_invoice(invoice_id)
            if invoice is None:
                raise NotFoundError(f"Platform invoice {invoice_id} not found")
            org = await self._organization(invoice["organization_id"])
            payment = self._encoder.encode_platform_invoice(self._config.platform_billing, org, invoice)
            return _platform_document(invoice, locale), payment.to_dict()

        invoice = await load_invoice(self._repo, invoice_id)
        org = await self._organization(invoice["organization_id"])
        member = await self._repo.get_member(invoice["member_id"])
        if member is None:
            raise NotFoundError(f"Member {invoice['member_id']} not found")
        return invoice, self._member_payment(org, member, invoice)

    def _member_payment(
        self,
        org: dict[str, Any],
        member: dict[str, Any],
        invoice: dict[str, Any],
    ) -> dict[str, Any] | None:
        try:
            return self._encoder.encode_member_invoice(org, member, invoice).to_dict()
        except ValidationError as e:
            # Credit notes and zero totals carry no payment slip
            logger.info("No payment slip for invoice %s: %s", invoice["invoice_number"], e)
            return None

    async def _organization(self, organization_id: int) -> dict[str, Any]:
        org = await self._repo.get_organization(organization_id)
        if org is None:
            raise NotFoundError(f"Organization {organization_id} not found")
        return org


def _platform_document(invoice: dict[str, Any], locale: str) -> dict[str, Any]:
    """Platform invoice with its single fee line, worded for the recipient."""
    line = {
        "description": label("platform_fee", locale),
        "quantity": invoice["total_kwh"],
        "unit": "kWh",
        "unit_price": invoice["rate_per_kwh"],
        "total": invoice["final_amount"],
    }
    return {**invoice, "lines": [line]}
