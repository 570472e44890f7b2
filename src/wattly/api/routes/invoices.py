"""Member invoice generation, lifecycle, delivery and reporting endpoints."""

from __future__ import annotations

import logging
from datetime import date

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from wattly.api.deps import get_actor, get_services
from wattly.authz import Actor
from wattly.errors import AuthorizationError, NotFoundError
from wattly.services import Services

router = APIRouter()
logger = logging.getLogger(__name__)


# ── Request models ───────────────────────────────────

class PeriodRequest(BaseModel):
    year: int = Field(ge=2000, le=2100)
    month: int = Field(ge=1, le=12)


class GenerateRequest(PeriodRequest):
    member_ids: list[int] | None = None


class StatusRequest(BaseModel):
    status: str


class OverdueRequest(BaseModel):
    today: date | None = None


# ── Generation ───────────────────────────────────────

@router.post("/organizations/{organization_id}/invoices/generate")
async def generate_invoices(
    organization_id: int,
    payload: GenerateRequest,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict:
    result = await services.invoices.generate(
        actor, organization_id, payload.year, payload.month, payload.member_ids,
    )
    return result.to_dict()


@router.get("/organizations/{organization_id}/invoices")
async def list_invoices(
    organization_id: int,
    year: int | None = None,
    month: int | None = None,
    status: str | None = None,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict:
    invoices = await services.reports.list_invoices(actor, organization_id, year, month, status)
    return {"invoices": invoices}


@router.get("/organizations/{organization_id}/invoice-stats")
async def invoice_stats(
    organization_id: int,
    year: int | None = None,
    month: int | None = None,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict:
    return await services.reports.invoice_stats(actor, organization_id, year, month)


@router.get("/invoices/{invoice_id}")
async def get_invoice(
    invoice_id: int,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict:
    return await services.reports.invoice(actor, invoice_id)


@router.get("/invoices/{invoice_id}/payment")
async def invoice_payment(
    invoice_id: int,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict:
    """Swiss QR payment payload of an invoice."""
    invoice = await services.reports.invoice(actor, invoice_id)
    org = await services.repo.get_organization(invoice["organization_id"])
    member = await services.repo.get_member(invoice["member_id"])
    if member is None:
        raise NotFoundError(f"Member {invoice['member_id']} not found")
    payment = services.encoder.encode_member_invoice(org, member, invoice)
    return {**payment.to_dict(), "qr_text": payment.to_qr_text()}


# ── Lifecycle ────────────────────────────────────────

@router.post("/invoices/{invoice_id}/status")
async def update_status(
    invoice_id: int,
    payload: StatusRequest,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict:
    return await services.lifecycle.transition(actor, invoice_id, payload.status)


@router.delete("/invoices/{invoice_id}")
async def delete_invoice(
    invoice_id: int,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict:
    await services.lifecycle.delete_draft(actor, invoice_id)
    return {"deleted": invoice_id}


# ── Delivery ─────────────────────────────────────────

@router.post("/invoices/{invoice_id}/send")
async def send_invoice(
    invoice_id: int,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict:
    report = await services.dispatcher.send_invoice(actor, invoice_id)
    return report.to_dict()


@router.post("/organizations/{organization_id}/invoices/send")
async def send_period(
    organization_id: int,
    payload: PeriodRequest,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict:
    reports = await services.dispatcher.send_period(actor, organization_id, payload.year, payload.month)
    return {"deliveries": [r.to_dict() for r in reports]}


# ── Jobs ─────────────────────────────────────────────

def _require_operator(actor: Actor) -> None:
    if not actor.is_super_admin:
        raise AuthorizationError("Scheduled jobs are reserved to the platform operator")


@router.post("/jobs/check-overdue")
async def check_overdue(
    payload: OverdueRequest | None = None,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict:
    _require_operator(actor)
    result = await services.lifecycle.check_overdue(payload.today if payload else None)
    return result.to_dict()


@router.post("/jobs/retry-deliveries")
async def retry_deliveries(
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict:
    _require_operator(actor)
    reports = await services.dispatcher.retry_failed_deliveries()
    return {"deliveries": [r.to_dict() for r in reports]}
