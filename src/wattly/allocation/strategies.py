"""Pooled community allocation for one slice of time (a month or an interval).

Each member first covers its own consumption from its own production. What
is left over on the production side forms the community pool, which is
shared out to residual demand according to the distribution policy. The
rest of the demand comes from the grid and the rest of the surplus goes to
the grid.

Shares are computed exactly, then apportioned to 0.0001 kWh ticks by the
largest-remainder method so the community side and the producer side
balance to the tick and no member exceeds its own demand or surplus.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from itertools import groupby

from wattly.allocation.base import MemberEnergy, MemberSplit
from wattly.billing.money import KWH, ZERO_KWH, kwh_down

_ZERO = Decimal(0)


def _apportion(
    targets: dict[int, Decimal],
    total: Decimal,
    caps: dict[int, Decimal],
) -> dict[int, Decimal]:
    """Round exact shares down to ticks, then hand out the leftover ticks.

    Leftover ticks go to the largest fractional remainders (lowest member id
    on ties) and never push a member past its cap.
    """
    shares: dict[int, Decimal] = {}
    remainders: dict[int, Decimal] = {}
    for key, target in targets.items():
        target = min(max(target, _ZERO), caps[key])
        floor = kwh_down(target)
        shares[key] = floor
        remainders[key] = target - floor

    distributed = sum(shares.values(), ZERO_KWH)
    leftover = int(((total - distributed) / KWH).to_integral_value(rounding=ROUND_HALF_UP))
    for key in sorted(remainders, key=lambda k: (-remainders[k], k)):
        if leftover <= 0:
            break
        if remainders[key] > 0 and shares[key] + KWH <= caps[key]:
            shares[key] += KWH
            leftover -= 1
    return shares


def _prorata(demand: dict[int, Decimal], pool: Decimal) -> dict[int, Decimal]:
    total = sum(demand.values(), _ZERO)
    if total == 0:
        return {k: _ZERO for k in demand}
    return {k: d * pool / total for k, d in demand.items()}


def _equal(demand: dict[int, Decimal], pool: Decimal) -> dict[int, Decimal]:
    """Water-filling: equal shares of what is left to everyone still short."""
    given = {k: _ZERO for k in demand}
    open_ = {k for k, d in demand.items() if d > 0}
    remaining = pool
    while remaining > 0 and open_:
        share = remaining / len(open_)
        satisfied = {k for k in open_ if demand[k] - given[k] <= share}
        if not satisfied:
            for k in open_:
                given[k] += share
            break
        for k in satisfied:
            need = demand[k] - given[k]
            given[k] += need
            remaining -= need
        open_ -= satisfied
    return given


def _priority(
    demand: dict[int, Decimal],
    pool: Decimal,
    levels: dict[int, int],
) -> dict[int, Decimal]:
    """Lowest level first; a tier that cannot be filled shares pro rata."""
    given = {k: _ZERO for k in demand}
    remaining = pool
    ordered = sorted(demand, key=lambda k: (levels.get(k, 5), k))
    for _, tier in groupby(ordered, key=lambda k: levels.get(k, 5)):
        if remaining <= 0:
            break
        tier_demand = {k: demand[k] for k in tier}
        need = sum(tier_demand.values(), _ZERO)
        if need <= remaining:
            given.update(tier_demand)
            remaining -= need
        else:
            given.update(_prorata(tier_demand, remaining))
            remaining = _ZERO
    return given


def allocate(members: list[MemberEnergy], policy: str) -> dict[int, MemberSplit]:
    """Split one slice of member energy into the five flows."""
    splits: dict[int, MemberSplit] = {}
    demand: dict[int, Decimal] = {}
    surplus: dict[int, Decimal] = {}
    levels: dict[int, int] = {}

    for m in members:
        own = min(m.consumption_kwh, m.production_kwh)
        splits[m.member_id] = MemberSplit(
            member_id=m.member_id,
            total_consumption_kwh=m.consumption_kwh,
            total_production_kwh=m.production_kwh,
            self_consumption_kwh=own,
        )
        demand[m.member_id] = m.consumption_kwh - own
        surplus[m.member_id] = m.production_kwh - own
        levels[m.member_id] = m.priority_level

    pool = sum(surplus.values(), ZERO_KWH)
    total_demand = sum(demand.values(), ZERO_KWH)
    shared = min(pool, total_demand)

    if policy == "prorata":
        targets = _prorata(demand, shared)
    elif policy == "equal":
        targets = _equal(demand, shared)
    elif policy == "priority":
        targets = _priority(demand, shared, levels)
    else:
        raise ValueError(f"Unknown distribution policy: {policy}")

    received = _apportion(targets, shared, demand)
    distributed = sum(received.values(), ZERO_KWH)
    exported = _apportion(_prorata(surplus, distributed), distributed, surplus)

    for member_id, split in splits.items():
        split.community_consumption_kwh = received[member_id]
        split.grid_consumption_kwh = demand[member_id] - received[member_id]
        split.exported_to_community_kwh = exported[member_id]
        split.exported_to_grid_kwh = surplus[member_id] - exported[member_id]
    return splits
