"""Tests for load-curve validation, persistence and re-import behaviour."""

from __future__ import annotations

import pytest

from wattly.authz import Actor
from wattly.config.schema import AppConfig
from wattly.errors import AuthorizationError, NotFoundError
from wattly.ingest.base import IntervalRecord
from wattly.services import Services


@pytest.mark.asyncio
class TestIngest:
    async def test_valid_records_accepted_and_allocated(
        self, services: Services, community, admin: Actor, standard_month,
    ) -> None:
        result = await services.ingestor.ingest(admin, community.org_id, standard_month, "jan.csv")

        assert result.accepted == 3
        assert result.rejected == 0
        assert result.affected_periods == [(2025, 1)]
        assert len(result.batch_ids) == 3

        aggregates = await services.repo.get_monthly_aggregates(community.org_id, 2025, 1)
        assert {a["member_id"] for a in aggregates} == {community.producer_id, *community.consumer_ids}

    async def test_bad_rows_rejected_individually(self, services: Services, community, admin: Actor) -> None:
        records = [
            IntervalRecord("CH-CONS-1", "2025-01-15T12:00:00", "1.5"),
            IntervalRecord(None, "2025-01-15T12:15:00", "1"),
            IntervalRecord("CH-UNKNOWN", "2025-01-15T12:15:00", "1"),
            IntervalRecord("CH-CONS-1", "yesterday", "1"),
            IntervalRecord("CH-CONS-1", "2025-01-15T12:30:00", "-2"),
            IntervalRecord("CH-CONS-1", "2025-01-15T12:45:00", "lots"),
            IntervalRecord("CH-CONS-1", "2025-01-15T12:00:00", "3"),
            IntervalRecord("CH-CONS-1", "2025-01-15T13:00:00", "2"),
        ]
        result = await services.ingestor.ingest(admin, community.org_id, records)

        assert result.accepted == 2
        assert result.rejected == 6
        reasons = {r.row: r.reason for r in result.rejections}
        assert reasons[2] == "missing POD code"
        assert "unknown POD code" in reasons[3]
        assert "invalid timestamp" in reasons[4]
        assert "negative energy" in reasons[5]
        assert "invalid energy" in reasons[6]
        assert "duplicate timestamp" in reasons[7]

        batch = await services.repo.get_batch(result.batch_ids[0])
        assert batch["reading_count"] == 2
        assert batch["total_consumption_kwh"] == "3.5000"

    async def test_all_rows_rejected_writes_nothing(self, services: Services, community, admin: Actor) -> None:
        result = await services.ingestor.ingest(
            admin, community.org_id, [IntervalRecord("CH-NOPE", "2025-01-15T12:00:00", "1")],
        )
        assert result.accepted == 0
        assert result.batch_ids == []
        assert await services.repo.get_monthly_aggregates(community.org_id, 2025, 1) == []

    async def test_off_grid_timestamps_rejected(self, services: Services, community, admin: Actor) -> None:
        records = [
            IntervalRecord("CH-CONS-1", "2025-01-15T12:07:00", "1"),
            IntervalRecord("CH-CONS-1", "2025-01-15T12:15:30", "1"),
            IntervalRecord("CH-CONS-1", "2025-01-15T12:15:00", "1"),
        ]
        result = await services.ingestor.ingest(admin, community.org_id, records)

        assert result.accepted == 1
        assert [r.row for r in result.rejections] == [1, 2]
        assert all("15-minute grid" in r.reason for r in result.rejections)

    async def test_grid_follows_configured_interval(self, make_services, community, admin: Actor) -> None:
        services = make_services(AppConfig(community={"interval_minutes": 60}))
        records = [
            IntervalRecord("CH-CONS-1", "2025-07-01T00:00:00", "1"),
            IntervalRecord("CH-CONS-1", "2025-07-01T00:15:00", "1"),
            # 00:00 local time in summer
            IntervalRecord("CH-CONS-2", "2025-06-30T22:00:00Z", "1"),
        ]
        result = await services.ingestor.ingest(admin, community.org_id, records)

        assert result.accepted == 2
        assert [r.row for r in result.rejections] == [2]
        assert "60-minute grid" in result.rejections[0].reason
        assert result.affected_periods == [(2025, 7)]

    async def test_reimport_is_idempotent(
        self, services: Services, community, admin: Actor, standard_month,
    ) -> None:
        await services.ingestor.ingest(admin, community.org_id, standard_month)
        before = await services.repo.get_monthly_aggregates(community.org_id, 2025, 1)

        second = await services.ingestor.ingest(admin, community.org_id, standard_month)
        after = await services.repo.get_monthly_aggregates(community.org_id, 2025, 1)

        assert len(second.superseded_batch_ids) == 3
        assert len(await services.repo.get_active_batches(community.org_id, 2025, 1)) == 3

        def flows(rows):
            return [{k: v for k, v in r.items() if k.endswith("_kwh")} for r in rows]

        assert flows(after) == flows(before)

    async def test_readings_split_by_local_month(self, services: Services, community, admin: Actor) -> None:
        records = [
            IntervalRecord("CH-CONS-1", "2025-01-31T22:30:00Z", "1"),  # 23:30 in Zurich
            IntervalRecord("CH-CONS-1", "2025-01-31T23:30:00Z", "2"),  # 00:30 on 1 February
        ]
        result = await services.ingestor.ingest(admin, community.org_id, records)
        assert result.affected_periods == [(2025, 1), (2025, 2)]

    async def test_csv_import(self, services: Services, community, admin: Actor) -> None:
        data = (
            "pod;timestamp;consumption;production\n"
            "CH-PROD-1;2025-03-01T10:00:00;0;12,5\n"
            "CH-CONS-1;2025-03-01T10:00:00;4,0;0\n"
        ).encode()
        result = await services.ingestor.import_csv(admin, community.org_id, data, "march.csv")
        assert result.accepted == 2
        batch = await services.repo.get_batch(result.batch_ids[0])
        assert batch["source_name"] == "march.csv"

    async def test_requires_admin(self, services: Services, community, outsider: Actor, standard_month) -> None:
        with pytest.raises(AuthorizationError):
            await services.ingestor.ingest(outsider, community.org_id, standard_month)
        assert await services.repo.get_active_batches(community.org_id, 2025, 1) == []

    async def test_unknown_organization(self, services: Services, standard_month) -> None:
        with pytest.raises(NotFoundError):
            await services.ingestor.ingest(Actor.system(), 999, standard_month)
