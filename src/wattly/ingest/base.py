"""Load-curve ingestion types."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class IntervalRecord:
    """One raw meter reading as received, before validation."""

    pod_code: str | None
    timestamp: Any
    consumed_kwh: Any
    produced_kwh: Any = "0"


@dataclass
class RowRejection:
    row: int  # 1-based position in the submitted records
    reason: str
    pod_code: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"row": self.row, "reason": self.reason, "pod_code": self.pod_code}


@dataclass
class IngestResult:
    accepted: int = 0
    rejected: int = 0
    rejections: list[RowRejection] = field(default_factory=list)
    affected_periods: list[tuple[int, int]] = field(default_factory=list)
    batch_ids: list[int] = field(default_factory=list)
    superseded_batch_ids: list[int] = field(default_factory=list)

    def reject(self, row: int, reason: str, pod_code: str | None = None) -> None:
        self.rejections.append(RowRejection(row, reason, pod_code))
        self.rejected += 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "accepted": self.accepted,
            "rejected": self.rejected,
            "rejections": [r.to_dict() for r in self.rejections],
            "affected_periods": [{"year": y, "month": m} for y, m in self.affected_periods],
            "batch_ids": self.batch_ids,
            "superseded_batch_ids": self.superseded_batch_ids,
        }
