"""Data access layer for all database operations."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, AsyncIterator, Iterable

import aiosqlite

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _text(value: Any) -> Any:
    """Decimals are stored as their canonical text; callers quantize first."""
    if isinstance(value, Decimal):
        return format(value, "f")
    return value


_ORGANIZATION_FIELDS = (
    "name", "address", "postal_code", "city", "country", "contact_email",
    "distribution_policy", "currency", "payment_term_days", "locale", "iban",
    "payee_name", "payee_address", "payee_postal_code", "payee_city", "payee_country",
)

_TARIFF_FIELDS = (
    "name", "community_rate", "grid_rate", "injection_rate", "monthly_fee",
    "vat_rate", "valid_from", "valid_to",
)

_AGGREGATE_FIELDS = (
    "total_consumption_kwh", "total_production_kwh", "self_consumption_kwh",
    "community_consumption_kwh", "grid_consumption_kwh",
    "exported_to_community_kwh", "exported_to_grid_kwh",
)


class Repository:
    """Centralised data access for all tables.

    Every write either runs inside :meth:`transaction` (one ``BEGIN IMMEDIATE``
    unit of work) or commits on its own. An ``asyncio.Lock`` serializes units
    of work sharing this connection; across processes SQLite's write lock and
    the unique indexes take over.
    """

    def __init__(self, db: aiosqlite.Connection) -> None:
        self.db = db
        self._lock = asyncio.Lock()
        self._tx_owner: asyncio.Task[Any] | None = None

    # ── Transactions ────────────────────────────────────────

    @property
    def in_transaction(self) -> bool:
        return self._tx_owner is not None and self._tx_owner is asyncio.current_task()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[Repository]:
        """Run the enclosed writes as one atomic unit; re-entrant within a task."""
        if self.in_transaction:
            yield self
            return
        async with self._lock:
            await self.db.execute("BEGIN IMMEDIATE")
            self._tx_owner = asyncio.current_task()
            try:
                yield self
            except BaseException:
                await self.db.rollback()
                raise
            else:
                await self.db.commit()
            finally:
                self._tx_owner = None

    @asynccontextmanager
    async def _writing(self) -> AsyncIterator[None]:
        if self.in_transaction:
            yield
            return
        async with self._lock:
            try:
                yield
            except BaseException:
                await self.db.rollback()
                raise
            await self.db.commit()

    async def _fetchone(self, sql: str, params: Iterable[Any] = ()) -> dict[str, Any] | None:
        async with self.db.execute(sql, tuple(params)) as cursor:
            row = await cursor.fetchone()
            return dict(row) if row else None

    async def _fetchall(self, sql: str, params: Iterable[Any] = ()) -> list[dict[str, Any]]:
        async with self.db.execute(sql, tuple(params)) as cursor:
            rows = await cursor.fetchall()
            return [dict(r) for r in rows]

    # ── Organizations ───────────────────────────────────────

    async def create_organization(self, name: str, **fields: Any) -> int:
        unknown = set(fields) - set(_ORGANIZATION_FIELDS)
        if unknown:
            raise ValueError(f"Unknown organization fields: {sorted(unknown)}")
        now = _now()
        values = {"name": name, **fields}
        cols = list(values)
        async with self._writing():
            async with self.db.execute(
                f"""INSERT INTO organizations ({", ".join(cols)}, created_at, updated_at)
                    VALUES ({", ".join("?" * len(cols))}, ?, ?)""",
                (*[_text(values[c]) for c in cols], now, now),
            ) as cursor:
                row_id = cursor.lastrowid
        return row_id  # type: ignore[return-value]

    async def update_organization(self, organization_id: int, **fields: Any) -> None:
        unknown = set(fields) - set(_ORGANIZATION_FIELDS)
        if unknown:
            raise ValueError(f"Unknown organization fields: {sorted(unknown)}")
        if not fields:
            return
        assignments = ", ".join(f"{c} = ?" for c in fields)
        async with self._writing():
            await self.db.execute(
                f"UPDATE organizations SET {assignments}, updated_at = ? WHERE id = ?",
                (*fields.values(), _now(), organization_id),
            )

    async def get_organization(self, organization_id: int) -> dict[str, Any] | None:
        return await self._fetchone("SELECT * FROM organizations WHERE id = ?", (organization_id,))

    async def list_organizations(self) -> list[dict[str, Any]]:
        return await self._fetchall("SELECT * FROM organizations ORDER BY id")

    # ── Members ─────────────────────────────────────────────

    async def create_member(
        self,
        organization_id: int,
        first_name: str = "",
        last_name: str = "",
        role: str = "member",
        user_id: str | None = None,
        email: str | None = None,
        address: str = "",
        postal_code: str = "",
        city: str = "",
        country: str = "CH",
        locale: str | None = None,
        priority_level: int = 5,
    ) -> int:
        async with self._writing():
            async with self.db.execute(
                """INSERT INTO members
                   (organization_id, user_id, role, first_name, last_name, address,
                    postal_code, city, country, email, locale, priority_level, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    organization_id, user_id, role, first_name, last_name, address,
                    postal_code, city, country, email, locale, priority_level, _now(),
                ),
            ) as cursor:
                row_id = cursor.lastrowid
        return row_id  # type: ignore[return-value]

    async def get_member(self, member_id: int) -> dict[str, Any] | None:
        return await self._fetchone("SELECT * FROM members WHERE id = ?", (member_id,))

    async def get_member_by_user(self, organization_id: int, user_id: str) -> dict[str, Any] | None:
        return await self._fetchone(
            "SELECT * FROM members WHERE organization_id = ? AND user_id = ?",
            (organization_id, user_id),
        )

    async def list_members(self, organization_id: int) -> list[dict[str, Any]]:
        return await self._fetchall(
            "SELECT * FROM members WHERE organization_id = ? ORDER BY id",
            (organization_id,),
        )

    # ── Meter Points ────────────────────────────────────────

    async def create_meter_point(
        self,
        organization_id: int,
        member_id: int,
        pod_code: str,
        category: str = "consumer",
    ) -> int:
        async with self._writing():
            async with self.db.execute(
                """INSERT INTO meter_points (organization_id, member_id, pod_code, category, created_at)
                   VALUES (?, ?, ?, ?, ?)""",
                (organization_id, member_id, pod_code, category, _now()),
            ) as cursor:
                row_id = cursor.lastrowid
        return row_id  # type: ignore[return-value]

    async def get_meter_points(self, organization_id: int) -> list[dict[str, Any]]:
        return await self._fetchall(
            "SELECT * FROM meter_points WHERE organization_id = ? ORDER BY id",
            (organization_id,),
        )

    # ── Load Curves ─────────────────────────────────────────

    async def insert_load_curve_batch(
        self,
        organization_id: int,
        meter_point_id: int,
        year: int,
        month: int,
        period_start: str,
        period_end: str,
        readings: list[tuple[str, Decimal, Decimal]],
        total_consumption_kwh: Decimal,
        total_production_kwh: Decimal,
        source_name: str | None = None,
    ) -> tuple[int, list[int]]:
        """Persist a batch with its readings; returns (batch id, superseded batch ids).

        Active batches of the same meter whose span overlaps the new one are
        marked superseded so allocation never counts a reading twice.
        """
        async with self._writing():
            async with self.db.execute(
                """INSERT INTO load_curve_batches
                   (organization_id, meter_point_id, year, month, period_start, period_end,
                    reading_count, total_consumption_kwh, total_production_kwh,
                    source_name, status, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 'active', ?)""",
                (
                    organization_id, meter_point_id, year, month, period_start, period_end,
                    len(readings), _text(total_consumption_kwh), _text(total_production_kwh),
                    source_name, _now(),
                ),
            ) as cursor:
                batch_id: int = cursor.lastrowid  # type: ignore[assignment]

            await self.db.executemany(
                """INSERT INTO interval_readings (batch_id, ts, consumed_kwh, produced_kwh)
                   VALUES (?, ?, ?, ?)""",
                [(batch_id, ts, _text(c), _text(p)) for ts, c, p in readings],
            )

            async with self.db.execute(
                """SELECT id FROM load_curve_batches
                   WHERE meter_point_id = ? AND status = 'active' AND id != ?
                     AND period_start <= ? AND period_end >= ?""",
                (meter_point_id, batch_id, period_end, period_start),
            ) as cursor:
                superseded = [r[0] for r in await cursor.fetchall()]
            if superseded:
                await self.db.execute(
                    f"""UPDATE load_curve_batches SET status = 'superseded', superseded_by = ?
                        WHERE id IN ({", ".join("?" * len(superseded))})""",
                    (batch_id, *superseded),
                )
        return batch_id, superseded

    async def get_batch(self, batch_id: int) -> dict[str, Any] | None:
        return await self._fetchone("SELECT * FROM load_curve_batches WHERE id = ?", (batch_id,))

    async def get_active_batches(self, organization_id: int, year: int, month: int) -> list[dict[str, Any]]:
        """Active batches of a period joined with their meter (member may be missing)."""
        return await self._fetchall(
            """SELECT b.*, mp.member_id, mp.category, mp.pod_code
               FROM load_curve_batches b
               LEFT JOIN meter_points mp ON mp.id = b.meter_point_id
               WHERE b.organization_id = ? AND b.year = ? AND b.month = ?
                 AND b.status = 'active'
               ORDER BY b.id""",
            (organization_id, year, month),
        )

    async def get_interval_readings(self, batch_ids: list[int]) -> list[dict[str, Any]]:
        if not batch_ids:
            return []
        return await self._fetchall(
            f"""SELECT * FROM interval_readings
                WHERE batch_id IN ({", ".join("?" * len(batch_ids))})
                ORDER BY ts, batch_id""",
            batch_ids,
        )

    # ── Monthly Aggregates ──────────────────────────────────

    async def upsert_monthly_aggregate(
        self,
        organization_id: int,
        member_id: int,
        year: int,
        month: int,
        values: dict[str, Decimal],
        policy: str,
    ) -> None:
        """Insert or fully replace the aggregate row for one member and month."""
        cols = ", ".join(_AGGREGATE_FIELDS)
        updates = ", ".join(f"{c} = excluded.{c}" for c in _AGGREGATE_FIELDS)
        async with self._writing():
            await self.db.execute(
                f"""INSERT INTO monthly_aggregates
                    (organization_id, member_id, year, month, {cols}, policy, computed_at)
                    VALUES (?, ?, ?, ?, {", ".join("?" * len(_AGGREGATE_FIELDS))}, ?, ?)
                    ON CONFLICT (organization_id, member_id, year, month) DO UPDATE SET
                    {updates}, policy = excluded.policy, computed_at = excluded.computed_at""",
                (
                    organization_id, member_id, year, month,
                    *[_text(values[c]) for c in _AGGREGATE_FIELDS],
                    policy, _now(),
                ),
            )

    async def get_monthly_aggregates(self, organization_id: int, year: int, month: int) -> list[dict[str, Any]]:
        return await self._fetchall(
            """SELECT * FROM monthly_aggregates
               WHERE organization_id = ? AND year = ? AND month = ?
               ORDER BY member_id""",
            (organization_id, year, month),
        )

    async def get_available_periods(self, organization_id: int) -> list[dict[str, Any]]:
        return await self._fetchall(
            """SELECT year, month, COUNT(*) AS member_count FROM monthly_aggregates
               WHERE organization_id = ?
               GROUP BY year, month ORDER BY year DESC, month DESC""",
            (organization_id,),
        )

    # ── Tariff Plans ────────────────────────────────────────

    async def create_tariff_plan(self, organization_id: int, is_default: bool, **fields: Any) -> int:
        unknown = set(fields) - set(_TARIFF_FIELDS)
        if unknown:
            raise ValueError(f"Unknown tariff fields: {sorted(unknown)}")
        now = _now()
        cols = list(fields)
        async with self._writing():
            if is_default:
                await self._clear_default_tariff(organization_id)
            async with self.db.execute(
                f"""INSERT INTO tariff_plans
                    (organization_id, {", ".join(cols)}, is_default, created_at, updated_at)
                    VALUES (?, {", ".join("?" * len(cols))}, ?, ?, ?)""",
                (organization_id, *[_text(fields[c]) for c in cols], 1 if is_default else 0, now, now),
            ) as cursor:
                row_id = cursor.lastrowid
        return row_id  # type: ignore[return-value]

    async def update_tariff_plan(self, tariff_id: int, **fields: Any) -> None:
        unknown = set(fields) - set(_TARIFF_FIELDS)
        if unknown:
            raise ValueError(f"Unknown tariff fields: {sorted(unknown)}")
        if not fields:
            return
        assignments = ", ".join(f"{c} = ?" for c in fields)
        async with self._writing():
            await self.db.execute(
                f"UPDATE tariff_plans SET {assignments}, updated_at = ? WHERE id = ?",
                (*[_text(v) for v in fields.values()], _now(), tariff_id),
            )

    async def _clear_default_tariff(self, organization_id: int) -> None:
        await self.db.execute(
            "UPDATE tariff_plans SET is_default = 0, updated_at = ? WHERE organization_id = ? AND is_default = 1",
            (_now(), organization_id),
        )

    async def set_default_tariff(self, organization_id: int, tariff_id: int) -> None:
        async with self._writing():
            await self._clear_default_tariff(organization_id)
            await self.db.execute(
                "UPDATE tariff_plans SET is_default = 1, updated_at = ? WHERE id = ?",
                (_now(), tariff_id),
            )

    async def delete_tariff_plan(self, tariff_id: int) -> None:
        async with self._writing():
            await self.db.execute("DELETE FROM tariff_plans WHERE id = ?", (tariff_id,))

    async def get_tariff_plan(self, tariff_id: int) -> dict[str, Any] | None:
        return await self._fetchone("SELECT * FROM tariff_plans WHERE id = ?", (tariff_id,))

    async def list_tariff_plans(self, organization_id: int) -> list[dict[str, Any]]:
        return await self._fetchall(
            """SELECT * FROM tariff_plans WHERE organization_id = ?
               ORDER BY is_default DESC, valid_from DESC, id""",
            (organization_id,),
        )

    async def get_default_tariff(self, organization_id: int) -> dict[str, Any] | None:
        return await self._fetchone(
            "SELECT * FROM tariff_plans WHERE organization_id = ? AND is_default = 1",
            (organization_id,),
        )

    async def get_tariffs_valid_on(self, organization_id: int, day: str) -> list[dict[str, Any]]:
        """Plans whose half-open validity range ``[valid_from, valid_to)`` contains ``day``."""
        return await self._fetchall(
            """SELECT * FROM tariff_plans
               WHERE organization_id = ? AND valid_from <= ?
                 AND (valid_to IS NULL OR valid_to > ?)
               ORDER BY id""",
            (organization_id, day, day),
        )

    # ── Invoice Numbering ───────────────────────────────────

    async def next_sequence(self, scope: str, floor: int = 0) -> int:
        """Advance and return the counter for ``scope``.

        ``floor`` is the highest sequence already issued in that scope, so a
        missing or stale counter row can never hand out a used number. Must be
        called inside :meth:`transaction`.
        """
        if not self.in_transaction:
            raise RuntimeError("next_sequence() must run inside a transaction")
        row = await self._fetchone(
            "SELECT last_sequence FROM invoice_counters WHERE scope = ?", (scope,),
        )
        current = max(row["last_sequence"] if row else 0, floor)
        sequence = current + 1
        await self.db.execute(
            """INSERT INTO invoice_counters (scope, last_sequence, updated_at) VALUES (?, ?, ?)
               ON CONFLICT (scope) DO UPDATE SET
               last_sequence = excluded.last_sequence, updated_at = excluded.updated_at""",
            (scope, sequence, _now()),
        )
        return sequence

    # ── Invoices ────────────────────────────────────────────

    async def max_invoice_sequence(self, organization_id: int) -> int:
        async with self.db.execute(
            "SELECT COALESCE(MAX(sequence), 0) FROM invoices WHERE organization_id = ?",
            (organization_id,),
        ) as cursor:
            row = await cursor.fetchone()
        return int(row[0]) if row else 0

    async def get_invoice_for_period(
        self, organization_id: int, member_id: int, year: int, month: int,
    ) -> dict[str, Any] | None:
        return await self._fetchone(
            """SELECT * FROM invoices
               WHERE organization_id = ? AND member_id = ? AND year = ? AND month = ?""",
            (organization_id, member_id, year, month),
        )

    async def insert_invoice(self, invoice: dict[str, Any], lines: list[dict[str, Any]]) -> int:
        now = _now()
        cols = list(invoice)
        async with self._writing():
            async with self.db.execute(
                f"""INSERT INTO invoices ({", ".join(cols)}, status, created_at, updated_at)
                    VALUES ({", ".join("?" * len(cols))}, 'draft', ?, ?)""",
                (*[_text(invoice[c]) for c in cols],
                 now, now),
            ) as cursor:
                invoice_id: int = cursor.lastrowid  # type: ignore[assignment]
            await self.db.executemany(
                """INSERT INTO invoice_lines
                   (invoice_id, description, quantity, unit, unit_price, line_total, kind, sort_order)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                [
                    (
                        invoice_id, line["description"], _text(line["quantity"]), line["unit"],
                        _text(line["unit_price"]), _text(line["line_total"]), line["kind"],
                        line["sort_order"],
                    )
                    for line in lines
                ],
            )
        return invoice_id

    async def get_invoice(self, invoice_id: int) -> dict[str, Any] | None:
        return await self._fetchone("SELECT * FROM invoices WHERE id = ?", (invoice_id,))

    async def get_invoice_organization(self, invoice_id: int) -> int | None:
        row = await self._fetchone("SELECT organization_id FROM invoices WHERE id = ?", (invoice_id,))
        return row["organization_id"] if row else None

    async def get_invoice_lines(self, invoice_id: int) -> list[dict[str, Any]]:
        return await self._fetchall(
            "SELECT * FROM invoice_lines WHERE invoice_id = ? ORDER BY sort_order, id",
            (invoice_id,),
        )

    async def list_invoices(
        self,
        organization_id: int,
        year: int | None = None,
        month: int | None = None,
        status: str | None = None,
        member_id: int | None = None,
    ) -> list[dict[str, Any]]:
        clauses = ["organization_id = ?"]
        params: list[Any] = [organization_id]
        for column, value in (("year", year), ("month", month), ("status", status), ("member_id", member_id)):
            if value is not None:
                clauses.append(f"{column} = ?")
                params.append(value)
        return await self._fetchall(
            f"SELECT * FROM invoices WHERE {' AND '.join(clauses)} ORDER BY sequence",
            params,
        )

    async def update_invoice_status(
        self,
        invoice_id: int,
        status: str,
        expected_status: str,
        stamp_column: str | None = None,
    ) -> bool:
        """Compare-and-set the status; returns False when another writer moved it first."""
        now = _now()
        stamp = f", {stamp_column} = ?" if stamp_column else ""
        params: tuple[Any, ...] = (status, now) + ((now,) if stamp_column else ()) + (invoice_id, expected_status)
        async with self._writing():
            async with self.db.execute(
                f"UPDATE invoices SET status = ?, updated_at = ?{stamp} WHERE id = ? AND status = ?",
                params,
            ) as cursor:
                changed = cursor.rowcount
        return changed == 1

    async def delete_invoice(self, invoice_id: int) -> bool:
        async with self._writing():
            async with self.db.execute(
                "DELETE FROM invoices WHERE id = ? AND status = 'draft'", (invoice_id,),
            ) as cursor:
                changed = cursor.rowcount
        return changed == 1

    async def get_sent_invoices_due_before(self, day: str) -> list[dict[str, Any]]:
        return await self._fetchall(
            "SELECT * FROM invoices WHERE status = 'sent' AND due_date < ? ORDER BY id",
            (day,),
        )

    async def count_invoices_by_status(self, organization_id: int) -> dict[str, int]:
        rows = await self._fetchall(
            """SELECT status, COUNT(*) AS n FROM invoices
               WHERE organization_id = ? GROUP BY status""",
            (organization_id,),
        )
        return {r["status"]: r["n"] for r in rows}

    # ── Platform Invoices ───────────────────────────────────

    async def max_platform_sequence(self, year: int) -> int:
        async with self.db.execute(
            "SELECT COALESCE(MAX(sequence), 0) FROM platform_invoices WHERE year = ?",
            (year,),
        ) as cursor:
            row = await cursor.fetchone()
        return int(row[0]) if row else 0

    async def get_platform_invoice_for_period(
        self, organization_id: int, year: int, month: int,
    ) -> dict[str, Any] | None:
        return await self._fetchone(
            "SELECT * FROM platform_invoices WHERE organization_id = ? AND year = ? AND month = ?",
            (organization_id, year, month),
        )

    async def insert_platform_invoice(self, invoice: dict[str, Any]) -> int:
        now = _now()
        cols = list(invoice)
        async with self._writing():
            async with self.db.execute(
                f"""INSERT INTO platform_invoices ({", ".join(cols)}, status, created_at, updated_at)
                    VALUES ({", ".join("?" * len(cols))}, 'draft', ?, ?)""",
                (*[_text(invoice[c]) for c in cols],
                 now, now),
            ) as cursor:
                row_id = cursor.lastrowid
        return row_id  # type: ignore[return-value]

    async def get_platform_invoice(self, invoice_id: int) -> dict[str, Any] | None:
        return await self._fetchone("SELECT * FROM platform_invoices WHERE id = ?", (invoice_id,))

    async def get_platform_invoice_organization(self, invoice_id: int) -> int | None:
        row = await self._fetchone("SELECT organization_id FROM platform_invoices WHERE id = ?", (invoice_id,))
        return row["organization_id"] if row else None

    async def list_platform_invoices(self, organization_id: int) -> list[dict[str, Any]]:
        return await self._fetchall(
            """SELECT * FROM platform_invoices WHERE organization_id = ?
               ORDER BY year DESC, month DESC""",
            (organization_id,),
        )

    async def update_platform_invoice_status(
        self,
        invoice_id: int,
        status: str,
        expected_status: str,
        stamp_column: str | None = None,
    ) -> bool:
        now = _now()
        stamp = f", {stamp_column} = ?" if stamp_column else ""
        params: tuple[Any, ...] = (status, now) + ((now,) if stamp_column else ()) + (invoice_id, expected_status)
        async with self._writing():
            async with self.db.execute(
                f"UPDATE platform_invoices SET status = ?, updated_at = ?{stamp} WHERE id = ? AND status = ?",
                params,
            ) as cursor:
                changed = cursor.rowcount
        return changed == 1

    async def get_sent_platform_invoices_due_before(self, day: str) -> list[dict[str, Any]]:
        return await self._fetchall(
            "SELECT * FROM platform_invoices WHERE status = 'sent' AND due_date < ? ORDER BY id",
            (day,),
        )

    # ── Delivery Attempts ───────────────────────────────────

    async def create_delivery_attempt(
        self,
        invoice_kind: str,
        invoice_id: int,
        organization_id: int,
        recipient: str | None,
        locale: str,
    ) -> int:
        now = _now()
        async with self._writing():
            async with self.db.execute(
                """INSERT INTO delivery_attempts
                   (invoice_kind, invoice_id, organization_id, recipient, locale,
                    status, attempts, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, 'pending', 0, ?, ?)""",
                (invoice_kind, invoice_id, organization_id, recipient, locale, now, now),
            ) as cursor:
                row_id = cursor.lastrowid
        return row_id  # type: ignore[return-value]

    async def record_delivery_result(
        self,
        attempt_id: int,
        status: str,
        document_reference: str | None = None,
        error: str | None = None,
    ) -> None:
        async with self._writing():
            await self.db.execute(
                """UPDATE delivery_attempts SET status = ?, attempts = attempts + 1,
                   document_reference = COALESCE(?, document_reference), error = ?, updated_at = ?
                   WHERE id = ?""",
                (status, document_reference, error, _now(), attempt_id),
            )

    async def get_delivery_attempt(self, attempt_id: int) -> dict[str, Any] | None:
        return await self._fetchone("SELECT * FROM delivery_attempts WHERE id = ?", (attempt_id,))

    async def get_delivery_attempts(self, invoice_kind: str, invoice_id: int) -> list[dict[str, Any]]:
        return await self._fetchall(
            "SELECT * FROM delivery_attempts WHERE invoice_kind = ? AND invoice_id = ? ORDER BY id",
            (invoice_kind, invoice_id),
        )

    async def get_failed_deliveries(self, max_attempts: int = 5, limit: int = 100) -> list[dict[str, Any]]:
        return await self._fetchall(
            """SELECT * FROM delivery_attempts WHERE status = 'failed' AND attempts < ?
               ORDER BY updated_at LIMIT ?""",
            (max_attempts, limit),
        )
