"""Tests for IBAN checks and QR reference construction."""

from __future__ import annotations

import pytest

from wattly.payment.qr_reference import (
    format_iban,
    format_qr_reference,
    generate_qr_reference,
    is_qr_iban,
    is_valid_iban,
    is_valid_qr_reference,
    mod10_recursive,
)


class TestMod10:
    @pytest.mark.parametrize("digits,check", [
        ("21000000000313947143000901", 7),
        ("00000000000000000000000123", 6),
        ("00000000000000002025010001", 2),
        ("00000000000000000000202501", 8),
    ])
    def test_known_check_digits(self, digits: str, check: int) -> None:
        assert mod10_recursive(digits) == check

    def test_rejects_non_digits(self) -> None:
        with pytest.raises(ValueError):
            mod10_recursive("12a4")


class TestQrReference:
    def test_from_invoice_number(self) -> None:
        reference = generate_qr_reference("2025-01-0001")
        assert reference == "000000000000000020250100012"
        assert len(reference) == 27
        assert is_valid_qr_reference(reference)

    def test_platform_number_uses_digits_only(self) -> None:
        reference = generate_qr_reference("WATTLY-2025-001")
        assert reference[:-1] == "2025001".rjust(26, "0")

    def test_long_input_keeps_last_digits(self) -> None:
        reference = generate_qr_reference("1" + "2" * 30)
        assert reference[:-1] == "2" * 26

    def test_tampered_reference_invalid(self) -> None:
        assert not is_valid_qr_reference("000000000000000020250100013")
        assert not is_valid_qr_reference("12345")

    def test_grouping_from_the_right(self) -> None:
        assert format_qr_reference("210000000003139471430009017") == "21 00000 00003 13947 14300 09017"


class TestIban:
    @pytest.mark.parametrize("iban", [
        "CH4431999123000889012",
        "CH9300762011623852957",
        "CH56 0483 5012 3456 7800 9",
        "ch5604835012345678009",
    ])
    def test_valid(self, iban: str) -> None:
        assert is_valid_iban(iban)

    @pytest.mark.parametrize("iban", [
        "CH4431999123000889013",
        "CH93007620116238529",
        "",
        "not an iban",
    ])
    def test_invalid(self, iban: str) -> None:
        assert not is_valid_iban(iban)

    def test_qr_iban_detection(self) -> None:
        assert is_qr_iban("CH4431999123000889012")
        assert not is_qr_iban("CH9300762011623852957")
        assert not is_qr_iban("DE89370400440532013000")

    def test_print_format(self) -> None:
        assert format_iban("CH9300762011623852957") == "CH93 0076 2011 6238 5295 7"
