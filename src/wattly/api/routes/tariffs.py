"""Tariff plan management endpoints."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from wattly.api.deps import get_actor, get_services
from wattly.authz import Actor
from wattly.services import Services
from wattly.tariff.admin import DEFAULT_VAT_RATE

router = APIRouter()


class TariffCreate(BaseModel):
    name: str
    community_rate: Decimal
    grid_rate: Decimal
    injection_rate: Decimal
    monthly_fee: Decimal = Decimal("0")
    vat_rate: Decimal = DEFAULT_VAT_RATE
    valid_from: date | None = None
    valid_to: date | None = None
    is_default: bool = False


class TariffUpdate(BaseModel):
    name: str | None = None
    community_rate: Decimal | None = None
    grid_rate: Decimal | None = None
    injection_rate: Decimal | None = None
    monthly_fee: Decimal | None = None
    vat_rate: Decimal | None = None
    valid_from: date | None = None
    valid_to: date | None = None


@router.get("/organizations/{organization_id}/tariffs")
async def list_tariffs(
    organization_id: int,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict:
    plans = await services.tariffs.list_plans(actor, organization_id)
    return {"tariffs": [p.to_dict() for p in plans]}


@router.post("/organizations/{organization_id}/tariffs", status_code=201)
async def create_tariff(
    organization_id: int,
    payload: TariffCreate,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict:
    plan = await services.tariffs.create(actor, organization_id, **payload.model_dump())
    return plan.to_dict()


@router.patch("/tariffs/{tariff_id}")
async def update_tariff(
    tariff_id: int,
    payload: TariffUpdate,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict:
    # valid_to may be cleared with an explicit null; other fields may not
    changes = {
        k: v for k, v in payload.model_dump(exclude_unset=True).items()
        if v is not None or k == "valid_to"
    }
    plan = await services.tariffs.update(actor, tariff_id, **changes)
    return plan.to_dict()


@router.post("/tariffs/{tariff_id}/default")
async def set_default_tariff(
    tariff_id: int,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict:
    plan = await services.tariffs.set_default(actor, tariff_id)
    return plan.to_dict()


@router.delete("/tariffs/{tariff_id}")
async def delete_tariff(
    tariff_id: int,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict:
    await services.tariffs.delete(actor, tariff_id)
    return {"deleted": tariff_id}
