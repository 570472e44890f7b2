"""Swiss QR-bill payment payload for member and platform invoices."""

from __future__ import annotations

import logging
import re
from dataclasses import asdict, dataclass
from decimal import Decimal
from typing import Any

from wattly.billing.labels import label
from wattly.billing.money import money
from wattly.config.schema import PlatformBillingConfig
from wattly.errors import ConfigurationError, ValidationError
from wattly.payment.qr_reference import (
    generate_qr_reference,
    is_qr_iban,
    is_valid_iban,
    normalize_iban,
)

logger = logging.getLogger(__name__)

SUPPORTED_CURRENCIES = ("CHF", "EUR")
MIN_AMOUNT = Decimal("0.01")
MAX_AMOUNT = Decimal("999999999.99")

_LEADING_DIGITS = re.compile(r"\s*(\d+)")


def postal_code_number(value: str | None) -> int:
    """Leading digits of a postal code as an integer (0 when there are none)."""
    match = _LEADING_DIGITS.match(value or "")
    return int(match.group(1)) if match else 0


@dataclass(frozen=True)
class Party:
    name: str
    address: str
    postal_code: int
    city: str
    country: str = "CH"


@dataclass(frozen=True)
class PaymentPayload:
    creditor: Party
    iban: str
    amount: Decimal
    currency: str
    reference_type: str  # "QRR" or "NON"
    message: str
    debtor: Party | None = None
    reference: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["amount"] = str(self.amount)
        if self.reference is None:
            del data["reference"]
        return data

    def to_qr_text(self) -> str:
        """Swiss Payments Code content (version 0200) carried by the QR code."""

        def party_lines(party: Party | None) -> list[str]:
            if party is None:
                return [""] * 7
            return [
                "S", party.name[:70], party.address[:70], "",
                str(party.postal_code) if party.postal_code else "", party.city[:35], party.country,
            ]

        lines = [
            "SPC", "0200", "1", self.iban,
            *party_lines(self.creditor),
            *[""] * 7,  # ultimate creditor, reserved
            format(self.amount, "f"), self.currency,
            *party_lines(self.debtor),
            self.reference_type, self.reference or "",
            self.message[:140], "EPD",
        ]
        return "\n".join(lines)


class SwissPaymentEncoder:
    """Derives the payment payload of an invoice.

    A QR-IBAN gets a QRR reference computed from the invoice number; any
    other valid IBAN gets no reference and relies on the message alone.
    """

    def encode_member_invoice(
        self,
        organization: dict[str, Any],
        member: dict[str, Any],
        invoice: dict[str, Any],
    ) -> PaymentPayload:
        creditor = Party(
            name=organization.get("payee_name") or organization["name"],
            address=organization.get("payee_address") or organization.get("address") or "",
            postal_code=postal_code_number(
                organization.get("payee_postal_code") or organization.get("postal_code")
            ),
            city=organization.get("payee_city") or organization.get("city") or "",
            country=organization.get("payee_country") or organization.get("country") or "CH",
        )
        debtor = Party(
            name=f"{member.get('first_name') or ''} {member.get('last_name') or ''}".strip(),
            address=member.get("address") or "",
            postal_code=postal_code_number(member.get("postal_code")),
            city=member.get("city") or "",
            country=member.get("country") or "CH",
        )
        return self._encode(
            iban=organization.get("iban"),
            creditor=creditor,
            debtor=debtor,
            amount=invoice["total"],
            currency=invoice.get("currency") or organization.get("currency") or "CHF",
            invoice_number=invoice["invoice_number"],
            locale=invoice.get("locale") or organization.get("locale"),
        )

    def encode_platform_invoice(
        self,
        platform: PlatformBillingConfig,
        organization: dict[str, Any],
        invoice: dict[str, Any],
    ) -> PaymentPayload:
        creditor = Party(
            name=platform.payee_name,
            address=platform.payee_address,
            postal_code=postal_code_number(platform.payee_postal_code),
            city=platform.payee_city,
            country=platform.payee_country,
        )
        debtor = Party(
            name=organization["name"],
            address=organization.get("address") or "",
            postal_code=postal_code_number(organization.get("postal_code")),
            city=organization.get("city") or "",
            country=organization.get("country") or "CH",
        )
        return self._encode(
            iban=platform.iban,
            creditor=creditor,
            debtor=debtor,
            amount=invoice["total"],
            currency=invoice.get("currency") or platform.currency,
            invoice_number=invoice["invoice_number"],
            locale=organization.get("locale"),
        )

    def _encode(
        self,
        iban: str | None,
        creditor: Party,
        debtor: Party | None,
        amount: Any,
        currency: str,
        invoice_number: str,
        locale: str | None,
    ) -> PaymentPayload:
        if not iban or not iban.strip():
            raise ConfigurationError("No creditor IBAN configured", creditor=creditor.name)
        iban = normalize_iban(iban)
        if not is_valid_iban(iban):
            raise ConfigurationError(f"Creditor IBAN {iban} is invalid", creditor=creditor.name)

        if currency not in SUPPORTED_CURRENCIES:
            raise ValidationError(f"Unsupported currency {currency}")
        try:
            value = money(amount)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        if not MIN_AMOUNT <= value <= MAX_AMOUNT:
            raise ValidationError(
                f"Amount {value} outside the payable range {MIN_AMOUNT}..{MAX_AMOUNT}",
                invoice_number=invoice_number,
            )

        message = f"{label('invoice', locale)} {invoice_number}"
        if is_qr_iban(iban):
            reference = generate_qr_reference(invoice_number)
            logger.debug("QR reference %s for invoice %s", reference, invoice_number)
            return PaymentPayload(creditor, iban, value, currency, "QRR", message, debtor, reference)
        return PaymentPayload(creditor, iban, value, currency, "NON", message, debtor)
