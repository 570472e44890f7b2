"""Tariff plan model: the four-rate pricing of one organization."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any

from wattly.billing.money import money, percent, rate


@dataclass(frozen=True)
class TariffPlan:
    """Rates are CHF/kWh, the fee is per member and month, VAT in percent."""

    id: int
    organization_id: int
    name: str
    community_rate: Decimal
    grid_rate: Decimal
    injection_rate: Decimal
    monthly_fee: Decimal
    vat_rate: Decimal
    valid_from: date
    valid_to: date | None = None  # exclusive
    is_default: bool = False

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> TariffPlan:
        return cls(
            id=row["id"],
            organization_id=row["organization_id"],
            name=row["name"],
            community_rate=rate(row["community_rate"]),
            grid_rate=rate(row["grid_rate"]),
            injection_rate=rate(row["injection_rate"]),
            monthly_fee=money(row["monthly_fee"]),
            vat_rate=percent(row["vat_rate"]),
            valid_from=date.fromisoformat(row["valid_from"]),
            valid_to=date.fromisoformat(row["valid_to"]) if row["valid_to"] else None,
            is_default=bool(row["is_default"]),
        )

    def covers(self, day: date) -> bool:
        return self.valid_from <= day and (self.valid_to is None or day < self.valid_to)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "name": self.name,
            "community_rate": str(self.community_rate),
            "grid_rate": str(self.grid_rate),
            "injection_rate": str(self.injection_rate),
            "monthly_fee": str(self.monthly_fee),
            "vat_rate": str(self.vat_rate),
            "valid_from": self.valid_from.isoformat(),
            "valid_to": self.valid_to.isoformat() if self.valid_to else None,
            "is_default": self.is_default,
        }
