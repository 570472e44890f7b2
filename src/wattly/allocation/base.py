"""Allocation types: per-member energy inputs and five-way monthly splits."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from wattly.billing.money import ZERO_KWH

POLICIES = ("prorata", "equal", "priority")

FLOW_FIELDS = (
    "total_consumption_kwh",
    "total_production_kwh",
    "self_consumption_kwh",
    "community_consumption_kwh",
    "grid_consumption_kwh",
    "exported_to_community_kwh",
    "exported_to_grid_kwh",
)


@dataclass
class MemberEnergy:
    """Consumption and export-capable production of one member over a slice."""

    member_id: int
    consumption_kwh: Decimal
    production_kwh: Decimal
    priority_level: int = 5


@dataclass
class MemberSplit:
    """Where a member's energy came from and went to.

    ``total_consumption == self + community + grid`` and
    ``total_production >= self + exported_to_community + exported_to_grid``.
    """

    member_id: int
    total_consumption_kwh: Decimal = ZERO_KWH
    total_production_kwh: Decimal = ZERO_KWH
    self_consumption_kwh: Decimal = ZERO_KWH
    community_consumption_kwh: Decimal = ZERO_KWH
    grid_consumption_kwh: Decimal = ZERO_KWH
    exported_to_community_kwh: Decimal = ZERO_KWH
    exported_to_grid_kwh: Decimal = ZERO_KWH

    def add(self, other: MemberSplit) -> None:
        for name in FLOW_FIELDS:
            setattr(self, name, getattr(self, name) + getattr(other, name))

    def as_values(self) -> dict[str, Decimal]:
        return {name: getattr(self, name) for name in FLOW_FIELDS}


@dataclass
class AllocationResult:
    organization_id: int
    year: int
    month: int
    policy: str
    granularity: str
    splits: dict[int, MemberSplit] = field(default_factory=dict)
    skipped_batches: list[int] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def community_shared_kwh(self) -> Decimal:
        return sum((s.community_consumption_kwh for s in self.splits.values()), ZERO_KWH)

    def to_dict(self) -> dict[str, Any]:
        return {
            "organization_id": self.organization_id,
            "year": self.year,
            "month": self.month,
            "policy": self.policy,
            "granularity": self.granularity,
            "members": [
                {"member_id": mid, **{k: str(v) for k, v in split.as_values().items()}}
                for mid, split in sorted(self.splits.items())
            ],
            "skipped_batches": self.skipped_batches,
            "warnings": self.warnings,
        }
