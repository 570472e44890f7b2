"""Validates interval records, persists load curves and triggers allocation."""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Iterable

from wattly.allocation.engine import AllocationEngine
from wattly.authz import Action, Actor, Authorizer
from wattly.billing.money import ZERO_KWH, kwh, to_decimal
from wattly.config.schema import AppConfig
from wattly.db.repository import Repository
from wattly.errors import NotFoundError
from wattly.ingest.base import IngestResult, IntervalRecord
from wattly.ingest.csv_reader import read_load_curve_csv
from wattly.logging.context import billing_context
from wattly.timezone_utils import billing_month, on_interval_grid, parse_timestamp, resolve_timezone

logger = logging.getLogger(__name__)


class LoadCurveIngestor:
    """Turns raw interval records into per-meter monthly load-curve batches.

    Bad rows are rejected one by one with their position and a reason; they
    never abort the import. Each affected month is then reallocated.
    """

    def __init__(
        self,
        config: AppConfig,
        repo: Repository,
        authorizer: Authorizer,
        allocation: AllocationEngine,
    ) -> None:
        self._config = config
        self._repo = repo
        self._authorizer = authorizer
        self._allocation = allocation
        self._tz = resolve_timezone(config.community.timezone)
        self._interval = config.community.interval_minutes

    async def import_csv(
        self,
        actor: Actor,
        organization_id: int,
        source: bytes | str | Path,
        source_name: str | None = None,
    ) -> IngestResult:
        await self._authorizer.require(actor, Action.IMPORT_LOAD_CURVE, organization_id)
        if source_name is None and isinstance(source, Path):
            source_name = source.name
        records = read_load_curve_csv(source)
        return await self.ingest(actor, organization_id, records, source_name)

    async def ingest(
        self,
        actor: Actor,
        organization_id: int,
        records: Iterable[IntervalRecord],
        source_name: str | None = None,
    ) -> IngestResult:
        await self._authorizer.require(actor, Action.IMPORT_LOAD_CURVE, organization_id)
        if await self._repo.get_organization(organization_id) is None:
            raise NotFoundError(f"Organization {organization_id} not found")

        with billing_context(organization_id=organization_id, source=source_name):
            result = IngestResult()
            meters = {m["pod_code"]: m for m in await self._repo.get_meter_points(organization_id)}

            # (meter id, year, month) -> {utc timestamp: (consumed, produced)}
            groups: dict[tuple[int, int, int], dict[datetime, tuple[Decimal, Decimal]]] = defaultdict(dict)
            seen: set[tuple[int, datetime]] = set()

            for row, record in enumerate(records, start=1):
                pod = (record.pod_code or "").strip()
                if not pod:
                    result.reject(row, "missing POD code")
                    continue
                meter = meters.get(pod)
                if meter is None:
                    result.reject(row, f"unknown POD code {pod}", pod)
                    continue
                try:
                    ts = parse_timestamp(record.timestamp, self._tz).astimezone(timezone.utc)
                except (TypeError, ValueError):
                    result.reject(row, f"invalid timestamp {record.timestamp!r}", pod)
                    continue
                if not on_interval_grid(ts, self._tz, self._interval):
                    result.reject(
                        row, f"timestamp {record.timestamp!r} is not on the {self._interval}-minute grid", pod,
                    )
                    continue
                try:
                    consumed = self._energy(record.consumed_kwh)
                    produced = self._energy(record.produced_kwh)
                except ValueError as exc:
                    result.reject(row, str(exc), pod)
                    continue
                if (meter["id"], ts) in seen:
                    result.reject(row, f"duplicate timestamp {ts.isoformat()}", pod)
                    continue

                seen.add((meter["id"], ts))
                year, month = billing_month(ts, self._tz)
                groups[(meter["id"], year, month)][ts] = (consumed, produced)
                result.accepted += 1

            affected: set[tuple[int, int]] = set()
            for (meter_id, year, month), readings in sorted(groups.items()):
                ordered = sorted(readings.items())
                rows = [(ts.isoformat(), c, p) for ts, (c, p) in ordered]
                batch_id, superseded = await self._repo.insert_load_curve_batch(
                    organization_id=organization_id,
                    meter_point_id=meter_id,
                    year=year,
                    month=month,
                    period_start=rows[0][0],
                    period_end=rows[-1][0],
                    readings=rows,
                    total_consumption_kwh=sum((c for _, c, _ in rows), ZERO_KWH),
                    total_production_kwh=sum((p for _, _, p in rows), ZERO_KWH),
                    source_name=source_name,
                )
                result.batch_ids.append(batch_id)
                result.superseded_batch_ids.extend(superseded)
                affected.add((year, month))

            result.affected_periods = sorted(affected)
            logger.info(
                "Ingested %d readings into %d batches (%d rejected) by %s",
                result.accepted, len(result.batch_ids), result.rejected, actor.user_id,
            )

            for year, month in result.affected_periods:
                await self._allocation.run(organization_id, year, month)
        return result

    @staticmethod
    def _energy(value: object) -> Decimal:
        try:
            amount = to_decimal(value)
        except ValueError:
            raise ValueError(f"invalid energy value {value!r}") from None
        if amount < 0:
            raise ValueError(f"negative energy value {value!r}")
        return kwh(amount)
