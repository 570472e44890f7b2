"""Load-curve import, allocation and energy overview endpoints."""

from __future__ import annotations

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from wattly.api.deps import get_actor, get_services
from wattly.authz import Actor
from wattly.ingest.base import IntervalRecord
from wattly.services import Services

router = APIRouter()
logger = logging.getLogger(__name__)


# ── Request models ───────────────────────────────────

class ReadingIn(BaseModel):
    pod_code: str | None = None
    timestamp: str | datetime | None = None
    consumed_kwh: str | float | None = None
    produced_kwh: str | float | None = "0"


class ReadingsRequest(BaseModel):
    records: list[ReadingIn]
    source_name: str | None = None


# ── Import ───────────────────────────────────────────

@router.post("/organizations/{organization_id}/load-curves/csv")
async def import_csv(
    organization_id: int,
    request: Request,
    source_name: str | None = None,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict:
    """Import a CSV load curve sent as the raw request body."""
    body = await request.body()
    result = await services.ingestor.import_csv(actor, organization_id, body, source_name)
    return result.to_dict()


@router.post("/organizations/{organization_id}/load-curves")
async def import_records(
    organization_id: int,
    payload: ReadingsRequest,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict:
    records = [
        IntervalRecord(r.pod_code, r.timestamp, r.consumed_kwh, r.produced_kwh if r.produced_kwh is not None else "0")
        for r in payload.records
    ]
    result = await services.ingestor.ingest(actor, organization_id, records, payload.source_name)
    return result.to_dict()


# ── Allocation ───────────────────────────────────────

@router.post("/organizations/{organization_id}/allocations/{year}/{month}")
async def recompute_allocation(
    organization_id: int,
    year: int,
    month: int,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict:
    result = await services.allocation.recompute(actor, organization_id, year, month)
    return result.to_dict()


# ── Reports ──────────────────────────────────────────

@router.get("/organizations/{organization_id}/overview/{year}/{month}")
async def overview(
    organization_id: int,
    year: int,
    month: int,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict:
    return await services.reports.overview(actor, organization_id, year, month)


@router.get("/organizations/{organization_id}/periods")
async def available_periods(
    organization_id: int,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
) -> dict:
    return {"periods": await services.reports.available_periods(actor, organization_id)}
