"""Shared test fixtures for Wattly."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any, AsyncGenerator

import aiosqlite
import pytest
import pytest_asyncio

from wattly.authz import Actor
from wattly.config.manager import ConfigManager
from wattly.config.schema import AppConfig
from wattly.db.engine import init_db
from wattly.db.repository import Repository
from wattly.delivery.base import DeliveryError, DocumentRenderer, EmailSender
from wattly.ingest.base import IntervalRecord
from wattly.services import Services, build_services

QR_IBAN = "CH4431999123000889012"
PLAIN_IBAN = "CH9300762011623852957"


class FakeRenderer(DocumentRenderer):
    """Records rendered documents; can be switched to fail."""

    def __init__(self) -> None:
        self.documents: list[tuple[dict[str, Any], dict[str, Any] | None]] = []
        self.fail = False
        self.crash: Exception | None = None

    async def render(self, document: dict[str, Any], payment: dict[str, Any] | None) -> str:
        if self.crash is not None:
            raise self.crash
        if self.fail:
            raise DeliveryError("renderer unavailable")
        self.documents.append((document, payment))
        return f"doc-{document['kind']}-{document['id']}"


class FakeEmail(EmailSender):
    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str]] = []
        self.accept = True

    async def send(self, recipient: str, document_reference: str, locale: str) -> bool:
        if self.accept:
            self.sent.append((recipient, document_reference, locale))
        return self.accept


@dataclass
class Community:
    """Seeded organization: one admin, one producer, two consumers."""

    org_id: int
    admin_id: int
    producer_id: int
    consumer_ids: list[int]
    pods: dict[str, int] = field(default_factory=dict)


@pytest.fixture
def config() -> AppConfig:
    """Provide a default test configuration."""
    return AppConfig()


@pytest.fixture
def config_manager(tmp_path: Path) -> ConfigManager:
    """Provide a config manager with test paths."""
    defaults = tmp_path / "config.defaults.yaml"
    defaults.write_text("db:\n  path: ':memory:'\n")
    user = tmp_path / "config.yaml"
    mgr = ConfigManager(defaults_path=defaults, user_path=user)
    mgr.load()
    return mgr


@pytest_asyncio.fixture
async def db(tmp_path: Path) -> AsyncGenerator[aiosqlite.Connection, None]:
    """Provide a fresh database file for each test."""
    conn = await init_db(tmp_path / "test.db")
    yield conn
    await conn.close()


@pytest_asyncio.fixture
async def repo(db: aiosqlite.Connection) -> Repository:
    """Provide a repository with a fresh database."""
    return Repository(db)


@pytest.fixture
def admin() -> Actor:
    return Actor(user_id="admin-1")


@pytest.fixture
def outsider() -> Actor:
    return Actor(user_id="someone-else")


@pytest.fixture
def make_services(repo: Repository):
    """Build services over the test repository with fake collaborators."""

    def factory(config: AppConfig) -> Services:
        return build_services(config, repo, renderer=FakeRenderer(), email=FakeEmail())

    return factory


@pytest.fixture
def services(config: AppConfig, make_services) -> Services:
    return make_services(config)


@pytest_asyncio.fixture
async def community(repo: Repository) -> Community:
    org_id = await repo.create_organization(
        "Soleil du Lac",
        address="Rue du Lac 1",
        postal_code="1003",
        city="Lausanne",
        contact_email="admin@soleil.example",
        iban=QR_IBAN,
    )
    admin_id = await repo.create_member(
        org_id, "Alice", "Admin", role="admin", user_id="admin-1", email="admin@soleil.example",
    )
    producer_id = await repo.create_member(
        org_id, "Paul", "Producer", user_id="paul", email="paul@example.ch",
        address="Chemin Vert 2", postal_code="1004", city="Lausanne",
    )
    c1 = await repo.create_member(org_id, "Claire", "Consumer", email="claire@example.ch", postal_code="1005")
    c2 = await repo.create_member(org_id, "Marc", "Consumer", email="marc@example.ch", locale="de")

    pods = {
        "CH-PROD-1": await repo.create_meter_point(org_id, producer_id, "CH-PROD-1", "producer"),
        "CH-CONS-1": await repo.create_meter_point(org_id, c1, "CH-CONS-1", "consumer"),
        "CH-CONS-2": await repo.create_meter_point(org_id, c2, "CH-CONS-2", "consumer"),
    }
    return Community(org_id, admin_id, producer_id, [c1, c2], pods)


@pytest.fixture
def standard_month() -> list[IntervalRecord]:
    """100 kWh of producer surplus against 2 x 80 kWh of consumer demand."""
    return [
        IntervalRecord("CH-PROD-1", "2025-01-15T12:00:00", "0", "100"),
        IntervalRecord("CH-CONS-1", "2025-01-15T12:00:00", "80", "0"),
        IntervalRecord("CH-CONS-2", "2025-01-15T12:00:00", "80", "0"),
    ]


async def seed_aggregate(
    repo: Repository,
    org_id: int,
    member_id: int,
    year: int = 2025,
    month: int = 1,
    community: str = "0",
    grid: str = "0",
    exported: str = "0",
) -> None:
    community_kwh, grid_kwh, exported_kwh = Decimal(community), Decimal(grid), Decimal(exported)
    await repo.upsert_monthly_aggregate(
        org_id, member_id, year, month,
        {
            "total_consumption_kwh": community_kwh + grid_kwh,
            "total_production_kwh": exported_kwh,
            "self_consumption_kwh": Decimal("0"),
            "community_consumption_kwh": community_kwh,
            "grid_consumption_kwh": grid_kwh,
            "exported_to_community_kwh": exported_kwh,
            "exported_to_grid_kwh": Decimal("0"),
        },
        "prorata",
    )


@pytest.fixture
def aggregate():
    """Write a monthly aggregate row directly, bypassing allocation."""
    return seed_aggregate
