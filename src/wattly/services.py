"""Wiring of the billing components around one repository."""

from __future__ import annotations

from dataclasses import dataclass

from wattly.allocation.engine import AllocationEngine
from wattly.authz import Authorizer
from wattly.billing.invoices import InvoiceGenerator
from wattly.billing.lifecycle import InvoiceLifecycle
from wattly.billing.platform import PlatformBillingCalculator
from wattly.config.schema import AppConfig
from wattly.db.repository import Repository
from wattly.delivery.base import DocumentRenderer, EmailSender
from wattly.delivery.dispatcher import InvoiceDispatcher
from wattly.delivery.webhooks import WebhookEmailSender, WebhookRenderer
from wattly.ingest.ingestor import LoadCurveIngestor
from wattly.payment.encoder import SwissPaymentEncoder
from wattly.reports import Reports
from wattly.tariff.admin import TariffAdmin
from wattly.tariff.resolver import TariffResolver


@dataclass
class Services:
    config: AppConfig
    repo: Repository
    authorizer: Authorizer
    allocation: AllocationEngine
    ingestor: LoadCurveIngestor
    tariffs: TariffAdmin
    resolver: TariffResolver
    invoices: InvoiceGenerator
    lifecycle: InvoiceLifecycle
    platform: PlatformBillingCalculator
    encoder: SwissPaymentEncoder
    dispatcher: InvoiceDispatcher
    reports: Reports
    renderer: DocumentRenderer
    email: EmailSender

    async def close(self) -> None:
        await self.renderer.close()
        await self.email.close()


def build_services(
    config: AppConfig,
    repo: Repository,
    renderer: DocumentRenderer | None = None,
    email: EmailSender | None = None,
) -> Services:
    """Build every component; collaborators default to the HTTP webhooks."""
    authorizer = Authorizer(repo)
    allocation = AllocationEngine(config, repo, authorizer)
    resolver = TariffResolver(repo)
    lifecycle = InvoiceLifecycle(repo, authorizer)
    platform = PlatformBillingCalculator(config, repo, authorizer)
    encoder = SwissPaymentEncoder()
    renderer = renderer or WebhookRenderer(config.delivery)
    email = email or WebhookEmailSender(config.delivery)
    return Services(
        config=config,
        repo=repo,
        authorizer=authorizer,
        allocation=allocation,
        ingestor=LoadCurveIngestor(config, repo, authorizer, allocation),
        tariffs=TariffAdmin(repo, authorizer),
        resolver=resolver,
        invoices=InvoiceGenerator(config, repo, authorizer, resolver),
        lifecycle=lifecycle,
        platform=platform,
        encoder=encoder,
        dispatcher=InvoiceDispatcher(
            config, repo, authorizer, lifecycle, platform, encoder, renderer, email,
        ),
        reports=Reports(repo, authorizer),
        renderer=renderer,
        email=email,
    )
