"""Single authorization capability injected into every billing component.

An actor is whoever the upstream authentication layer says is calling.
Every billing action requires the admin role on the organization, looked
up from the ``members`` table. Platform operators (super admins) may act on
any organization.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from wattly.db.repository import Repository
from wattly.errors import AuthorizationError, NotFoundError

logger = logging.getLogger(__name__)


class Action(str, Enum):
    VIEW_BILLING = "view_billing"
    IMPORT_LOAD_CURVE = "import_load_curve"
    RECOMPUTE_ALLOCATION = "recompute_allocation"
    GENERATE_INVOICES = "generate_invoices"
    MANAGE_TARIFFS = "manage_tariffs"
    UPDATE_INVOICE_STATUS = "update_invoice_status"
    SEND_INVOICES = "send_invoices"
    GENERATE_PLATFORM_INVOICE = "generate_platform_invoice"
    UPDATE_PLATFORM_INVOICE = "update_platform_invoice"


@dataclass(frozen=True)
class Actor:
    user_id: str | None
    is_super_admin: bool = False

    @classmethod
    def system(cls) -> Actor:
        """Actor used by cron jobs and the operator CLI."""
        return cls(user_id="system", is_super_admin=True)

    @classmethod
    def anonymous(cls) -> Actor:
        return cls(user_id=None)


class Authorizer:
    """Answers ``can(actor, action, organization)`` from membership rows."""

    def __init__(self, repo: Repository) -> None:
        self._repo = repo

    async def can(self, actor: Actor, action: Action, organization_id: int) -> bool:
        if actor.is_super_admin:
            return True
        if actor.user_id is None:
            return False

        member = await self._repo.get_member_by_user(organization_id, actor.user_id)
        return member is not None and member["role"] == "admin"

    async def require(self, actor: Actor, action: Action, organization_id: int) -> None:
        """Raise AuthorizationError unless the actor may perform the action."""
        if not await self.can(actor, action, organization_id):
            logger.warning(
                "Denied %s on organization %d for user %s",
                action.value, organization_id, actor.user_id,
            )
            raise AuthorizationError(
                f"Not allowed to {action.value} for organization {organization_id}",
                action=action.value,
                organization_id=organization_id,
            )

    async def require_invoice(self, actor: Actor, action: Action, invoice_id: int, kind: str = "member") -> int:
        """Authorize against the organization owning an invoice and return its id.

        Only the owner column is read before the check; the invoice itself is
        loaded by the caller afterwards.
        """
        if kind == "platform":
            organization_id = await self._repo.get_platform_invoice_organization(invoice_id)
        else:
            organization_id = await self._repo.get_invoice_organization(invoice_id)
        if organization_id is None:
            what = "Platform invoice" if kind == "platform" else "Invoice"
            raise NotFoundError(f"{what} {invoice_id} not found")
        await self.require(actor, action, organization_id)
        return organization_id
