"""Tests for the Swiss QR-bill payment payload."""

from __future__ import annotations

from decimal import Decimal

import pytest

from wattly.config.schema import PlatformBillingConfig
from wattly.errors import ConfigurationError, ValidationError
from wattly.payment.encoder import SwissPaymentEncoder, postal_code_number

QR_IBAN = "CH4431999123000889012"
PLAIN_IBAN = "CH9300762011623852957"

ORG = {
    "name": "Soleil du Lac",
    "address": "Rue du Lac 1",
    "postal_code": "1003",
    "city": "Lausanne",
    "country": "CH",
    "currency": "CHF",
    "locale": "fr",
    "iban": QR_IBAN,
}
MEMBER = {
    "first_name": "Claire",
    "last_name": "Consumer",
    "address": "Avenue 3",
    "postal_code": "1005",
    "city": "Lausanne",
    "country": "CH",
}
INVOICE = {"invoice_number": "2025-01-0001", "total": "31.35", "currency": "CHF", "locale": "fr"}


@pytest.fixture
def encoder() -> SwissPaymentEncoder:
    return SwissPaymentEncoder()


class TestMemberPayload:
    def test_qr_iban_gets_reference(self, encoder: SwissPaymentEncoder) -> None:
        payload = encoder.encode_member_invoice(ORG, MEMBER, INVOICE)
        assert payload.reference_type == "QRR"
        assert payload.reference == "000000000000000020250100012"
        assert payload.amount == Decimal("31.35")
        assert payload.message == "Facture 2025-01-0001"
        assert payload.creditor.postal_code == 1003
        assert payload.debtor is not None
        assert payload.debtor.name == "Claire Consumer"

    def test_plain_iban_has_no_reference(self, encoder: SwissPaymentEncoder) -> None:
        payload = encoder.encode_member_invoice({**ORG, "iban": PLAIN_IBAN}, MEMBER, INVOICE)
        assert payload.reference_type == "NON"
        assert payload.reference is None
        assert "reference" not in payload.to_dict()

    def test_payee_fields_override_organization(self, encoder: SwissPaymentEncoder) -> None:
        org = {**ORG, "payee_name": "Soleil Treasury", "payee_postal_code": "1200"}
        payload = encoder.encode_member_invoice(org, MEMBER, INVOICE)
        assert payload.creditor.name == "Soleil Treasury"
        assert payload.creditor.postal_code == 1200
        assert payload.creditor.city == "Lausanne"

    def test_iban_normalized(self, encoder: SwissPaymentEncoder) -> None:
        payload = encoder.encode_member_invoice({**ORG, "iban": "ch93 0076 2011 6238 5295 7"}, MEMBER, INVOICE)
        assert payload.iban == PLAIN_IBAN

    def test_message_follows_locale(self, encoder: SwissPaymentEncoder) -> None:
        payload = encoder.encode_member_invoice(ORG, MEMBER, {**INVOICE, "locale": "de"})
        assert payload.message == "Rechnung 2025-01-0001"

    @pytest.mark.parametrize("iban", [None, "", "   "])
    def test_missing_iban(self, encoder: SwissPaymentEncoder, iban) -> None:
        with pytest.raises(ConfigurationError):
            encoder.encode_member_invoice({**ORG, "iban": iban}, MEMBER, INVOICE)

    def test_invalid_iban(self, encoder: SwissPaymentEncoder) -> None:
        with pytest.raises(ConfigurationError):
            encoder.encode_member_invoice({**ORG, "iban": "CH4431999123000889013"}, MEMBER, INVOICE)

    @pytest.mark.parametrize("total", ["0.00", "-3.24", "1000000000.00"])
    def test_amount_out_of_range(self, encoder: SwissPaymentEncoder, total: str) -> None:
        with pytest.raises(ValidationError):
            encoder.encode_member_invoice(ORG, MEMBER, {**INVOICE, "total": total})

    def test_unsupported_currency(self, encoder: SwissPaymentEncoder) -> None:
        with pytest.raises(ValidationError):
            encoder.encode_member_invoice(ORG, MEMBER, {**INVOICE, "currency": "USD"})

    def test_qr_text(self, encoder: SwissPaymentEncoder) -> None:
        text = encoder.encode_member_invoice(ORG, MEMBER, INVOICE).to_qr_text()
        lines = text.split("\n")
        assert text.startswith(f"SPC\n0200\n1\n{QR_IBAN}")
        assert "31.35" in lines
        assert "000000000000000020250100012" in lines
        assert lines[-1] == "EPD"
        assert lines[-2] == "Facture 2025-01-0001"


class TestPlatformPayload:
    def test_platform_creditor_and_reference(self, encoder: SwissPaymentEncoder) -> None:
        platform = PlatformBillingConfig(
            payee_name="Wattly SA", payee_address="Quai 5", payee_postal_code="1201",
            payee_city="Genève", iban=QR_IBAN,
        )
        invoice = {"invoice_number": "WATTLY-2025-001", "total": "52.97", "currency": "CHF"}
        payload = encoder.encode_platform_invoice(platform, ORG, invoice)
        assert payload.creditor.name == "Wattly SA"
        assert payload.debtor is not None
        assert payload.debtor.name == "Soleil du Lac"
        assert payload.reference_type == "QRR"
        assert payload.reference is not None
        assert payload.reference.startswith("0" * 19 + "2025001")

    def test_platform_without_iban(self, encoder: SwissPaymentEncoder) -> None:
        invoice = {"invoice_number": "WATTLY-2025-001", "total": "52.97"}
        with pytest.raises(ConfigurationError):
            encoder.encode_platform_invoice(PlatformBillingConfig(), ORG, invoice)


@pytest.mark.parametrize("value,expected", [("1003", 1003), (" 8001 Zürich", 8001), ("", 0), (None, 0), ("FL-9490", 0)])
def test_postal_code_number(value, expected: int) -> None:
    assert postal_code_number(value) == expected
