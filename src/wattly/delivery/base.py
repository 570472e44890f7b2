"""Abstract collaborators that turn invoices into documents and emails."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


class DeliveryError(Exception):
    """A collaborator could not be reached or refused the request."""


class DocumentRenderer(ABC):
    """Renders an invoice and its payment slip into a stored document."""

    @abstractmethod
    async def render(self, document: dict[str, Any], payment: dict[str, Any] | None) -> str:
        """Return a reference to the rendered document."""

    async def close(self) -> None:
        pass


class EmailSender(ABC):
    @abstractmethod
    async def send(self, recipient: str, document_reference: str, locale: str) -> bool:
        """Email a rendered document; True when the message was accepted."""

    async def close(self) -> None:
        pass


@dataclass
class DeliveryReport:
    invoice_kind: str
    invoice_id: int
    attempt_id: int
    status: str
    document_reference: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "invoice_kind": self.invoice_kind,
            "invoice_id": self.invoice_id,
            "attempt_id": self.attempt_id,
            "status": self.status,
            "document_reference": self.document_reference,
            "error": self.error,
        }
