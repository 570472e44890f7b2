"""Platform billing endpoints: the operator's invoices to organizations."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from wattly.api.deps import get_actor, get_services
from wattly.authz import Actor
from wattly.services import Services

router = APIRouter()


class PlatformPeriod(BaseModel):
    year: int = Field(ge=2000, le=2100)
    month: int = Field(ge=1, le=12)


@router.post("/organizations/{organization_id}/platform-invoices", status_code=201)
async def generate_platform_invoice(
    organization_id: int,
    payload: PlatformPeriod,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict:
    return await services.platform.generate(actor, organization_id, payload.year, payload.month)


@router.get("/organizations/{organization_id}/platform-invoices")
async def list_platform_invoices(
    organization_id: int,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict:
    return {"invoices": await services.platform.list_invoices(actor, organization_id)}


@router.get("/organizations/{organization_id}/platform-billing/summary")
async def billing_summary(
    organization_id: int,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict:
    return await services.platform.billing_summary(actor, organization_id)


@router.get("/platform-invoices/{invoice_id}")
async def get_platform_invoice(
    invoice_id: int,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict:
    return await services.platform.get_invoice(actor, invoice_id)


@router.get("/platform-invoices/{invoice_id}/payment")
async def platform_payment(
    invoice_id: int,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict:
    invoice = await services.platform.get_invoice(actor, invoice_id)
    org = await services.repo.get_organization(invoice["organization_id"])
    payment = services.encoder.encode_platform_invoice(services.config.platform_billing, org, invoice)
    return {**payment.to_dict(), "qr_text": payment.to_qr_text()}


@router.post("/platform-invoices/{invoice_id}/sent")
async def mark_sent(
    invoice_id: int,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict:
    return await services.platform.mark_sent(actor, invoice_id)


@router.post("/platform-invoices/{invoice_id}/paid")
async def mark_paid(
    invoice_id: int,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict:
    return await services.platform.mark_paid(actor, invoice_id)


@router.post("/platform-invoices/{invoice_id}/send")
async def send_platform_invoice(
    invoice_id: int,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict:
    report = await services.dispatcher.send_platform_invoice(actor, invoice_id)
    return report.to_dict()
