"""HTTP implementations of the rendering and email collaborators."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from wattly.config.schema import DeliveryConfig
from wattly.delivery.base import DeliveryError, DocumentRenderer, EmailSender

logger = logging.getLogger(__name__)


def _client(config: DeliveryConfig) -> httpx.AsyncClient:
    headers = {"Authorization": f"Bearer {config.api_token}"} if config.api_token else {}
    return httpx.AsyncClient(headers=headers, timeout=config.timeout_seconds)


class WebhookRenderer(DocumentRenderer):
    """Posts the invoice document as JSON; expects ``{"reference": ...}`` back."""

    def __init__(self, config: DeliveryConfig, client: httpx.AsyncClient | None = None) -> None:
        self._url = config.renderer_url
        self._client = client or _client(config)

    async def render(self, document: dict[str, Any], payment: dict[str, Any] | None) -> str:
        if not self._url:
            raise DeliveryError("No document renderer URL configured")
        try:
            resp = await self._client.post(self._url, json={"document": document, "payment": payment})
            resp.raise_for_status()
            body = resp.json()
        except httpx.HTTPError as e:
            raise DeliveryError(f"Renderer request failed: {e}") from e
        except ValueError as e:
            raise DeliveryError("Renderer returned invalid JSON") from e
        if not isinstance(body, dict):
            raise DeliveryError("Renderer response is not an object")
        reference = body.get("reference")
        if not reference:
            raise DeliveryError("Renderer response has no document reference")
        logger.debug("Rendered %s as %s", document.get("invoice_number"), reference)
        return str(reference)

    async def close(self) -> None:
        await self._client.aclose()


class WebhookEmailSender(EmailSender):
    """Posts an email request; any 2xx answer counts as accepted."""

    def __init__(self, config: DeliveryConfig, client: httpx.AsyncClient | None = None) -> None:
        self._url = config.email_url
        self._client = client or _client(config)

    async def send(self, recipient: str, document_reference: str, locale: str) -> bool:
        if not self._url:
            raise DeliveryError("No email service URL configured")
        try:
            resp = await self._client.post(
                self._url,
                json={"recipient": recipient, "document_reference": document_reference, "locale": locale},
            )
        except httpx.HTTPError as e:
            raise DeliveryError(f"Email request failed: {e}") from e
        if resp.is_success:
            return True
        logger.warning("Email service answered %d for %s", resp.status_code, recipient)
        return False

    async def close(self) -> None:
        await self._client.aclose()
