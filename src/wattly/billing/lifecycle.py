"""Invoice status transitions, draft deletion and the overdue sweep."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from wattly.authz import Action, Actor, Authorizer
from wattly.billing.invoices import load_invoice
from wattly.db.repository import Repository
from wattly.errors import ConflictError, InvalidTransitionError, NotFoundError

logger = logging.getLogger(__name__)

STATUSES = ("draft", "sent", "paid", "overdue", "cancelled")

TRANSITIONS: dict[str, frozenset[str]] = {
    "draft": frozenset({"sent", "cancelled"}),
    "sent": frozenset({"paid", "overdue", "cancelled"}),
    "overdue": frozenset({"paid", "cancelled"}),
    "paid": frozenset(),
    "cancelled": frozenset(),
}

# Timestamp column set when entering a status
STAMPS = {"sent": "sent_at", "paid": "paid_at"}


def check_transition(current: str, target: str, number: str = "") -> None:
    if target not in STATUSES:
        raise InvalidTransitionError(f"Unknown invoice status {target!r}")
    if target not in TRANSITIONS.get(current, frozenset()):
        raise InvalidTransitionError(
            f"Cannot change invoice status from {current} to {target}",
            invoice_number=number,
            current=current,
            target=target,
        )


@dataclass
class OverdueResult:
    invoice_ids: list[int] = field(default_factory=list)
    platform_invoice_ids: list[int] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "overdue_count": len(self.invoice_ids) + len(self.platform_invoice_ids),
            "invoice_ids": self.invoice_ids,
            "platform_invoice_ids": self.platform_invoice_ids,
        }


class InvoiceLifecycle:
    """Moves member invoices through their statuses.

    Money fields are never touched here; only status and its timestamps.
    """

    def __init__(self, repo: Repository, authorizer: Authorizer) -> None:
        self._repo = repo
        self._authorizer = authorizer

    async def transition(self, actor: Actor, invoice_id: int, status: str) -> dict[str, Any]:
        await self._authorizer.require_invoice(actor, Action.UPDATE_INVOICE_STATUS, invoice_id)
        invoice = await self._repo.get_invoice(invoice_id)
        if invoice is None:
            raise NotFoundError(f"Invoice {invoice_id} not found")

        check_transition(invoice["status"], status, invoice["invoice_number"])
        changed = await self._repo.update_invoice_status(
            invoice_id, status, expected_status=invoice["status"], stamp_column=STAMPS.get(status),
        )
        if not changed:
            raise ConflictError(f"Invoice {invoice['invoice_number']} was modified concurrently")

        logger.info(
            "Invoice %s: %s -> %s by %s",
            invoice["invoice_number"], invoice["status"], status, actor.user_id,
        )
        return await load_invoice(self._repo, invoice_id)

    async def mark_sent(self, actor: Actor, invoice_id: int) -> dict[str, Any]:
        return await self.transition(actor, invoice_id, "sent")

    async def mark_paid(self, actor: Actor, invoice_id: int) -> dict[str, Any]:
        return await self.transition(actor, invoice_id, "paid")

    async def cancel(self, actor: Actor, invoice_id: int) -> dict[str, Any]:
        return await self.transition(actor, invoice_id, "cancelled")

    async def delete_draft(self, actor: Actor, invoice_id: int) -> None:
        """Delete a draft invoice; its number stays consumed."""
        await self._authorizer.require_invoice(actor, Action.UPDATE_INVOICE_STATUS, invoice_id)
        invoice = await self._repo.get_invoice(invoice_id)
        if invoice is None:
            raise NotFoundError(f"Invoice {invoice_id} not found")
        if invoice["status"] != "draft":
            raise InvalidTransitionError(
                f"Only draft invoices can be deleted; {invoice['invoice_number']} is {invoice['status']}",
            )
        if not await self._repo.delete_invoice(invoice_id):
            raise ConflictError(f"Invoice {invoice['invoice_number']} was modified concurrently")
        logger.info("Deleted draft invoice %s", invoice["invoice_number"])

    async def check_overdue(self, today: date | None = None) -> OverdueResult:
        """Mark every sent invoice whose due date has passed as overdue.

        Covers member and platform invoices alike; meant for a daily cron.
        """
        day = (today or date.today()).isoformat()
        result = OverdueResult()

        for invoice in await self._repo.get_sent_invoices_due_before(day):
            if await self._repo.update_invoice_status(invoice["id"], "overdue", expected_status="sent"):
                result.invoice_ids.append(invoice["id"])
        for invoice in await self._repo.get_sent_platform_invoices_due_before(day):
            if await self._repo.update_platform_invoice_status(invoice["id"], "overdue", expected_status="sent"):
                result.platform_invoice_ids.append(invoice["id"])

        if result.invoice_ids or result.platform_invoice_ids:
            logger.info(
                "Marked %d member and %d platform invoices overdue",
                len(result.invoice_ids), len(result.platform_invoice_ids),
            )
        return result
