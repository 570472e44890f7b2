"""IBAN checks and QR reference (QRR) construction for Swiss payment slips."""

from __future__ import annotations

import re

# Mod-10 recursive carry table from the Swiss payment standards.
_MOD10_TABLE = (0, 9, 4, 6, 8, 2, 7, 1, 3, 5)

QR_IID_RANGE = range(30000, 32000)
QR_IBAN_COUNTRIES = ("CH", "LI")
REFERENCE_DATA_LENGTH = 26

_IBAN_RE = re.compile(r"^[A-Z]{2}[0-9]{2}[A-Z0-9]{11,30}$")


def mod10_recursive(digits: str) -> int:
    """Check digit for a string of digits (Mod 10, recursive)."""
    carry = 0
    for ch in digits:
        if not ch.isdigit():
            raise ValueError(f"non-digit character {ch!r} in reference")
        carry = _MOD10_TABLE[(carry + int(ch)) % 10]
    return (10 - carry) % 10


def generate_qr_reference(invoice_number: str) -> str:
    """27-digit QR reference derived from the digits of an invoice number.

    The digits are left-padded with zeros to 26 (only the last 26 are kept
    when there are more) and followed by the check digit.
    """
    digits = "".join(ch for ch in invoice_number if ch.isdigit())
    data = digits.rjust(REFERENCE_DATA_LENGTH, "0")[-REFERENCE_DATA_LENGTH:]
    return f"{data}{mod10_recursive(data)}"


def is_valid_qr_reference(reference: str) -> bool:
    ref = reference.replace(" ", "")
    return len(ref) == 27 and ref.isdigit() and mod10_recursive(ref[:-1]) == int(ref[-1])


def format_qr_reference(reference: str) -> str:
    """Group a reference in blocks of five counted from the right."""
    ref = reference.replace(" ", "")
    head = len(ref) % 5
    groups = [ref[:head]] if head else []
    groups += [ref[i:i + 5] for i in range(head, len(ref), 5)]
    return " ".join(groups)


def normalize_iban(iban: str) -> str:
    return re.sub(r"\s+", "", iban or "").upper()


def is_valid_iban(iban: str) -> bool:
    """Format and ISO 13616 mod-97 check."""
    value = normalize_iban(iban)
    if not _IBAN_RE.match(value):
        return False
    if value[:2] in QR_IBAN_COUNTRIES and len(value) != 21:
        return False
    rearranged = value[4:] + value[:4]
    numeric = "".join(str(int(ch, 36)) for ch in rearranged)
    return int(numeric) % 97 == 1


def is_qr_iban(iban: str) -> bool:
    """Swiss/Liechtenstein IBAN whose institution id is in the QR range."""
    value = normalize_iban(iban)
    if len(value) != 21 or value[:2] not in QR_IBAN_COUNTRIES:
        return False
    iid = value[4:9]
    return iid.isdigit() and int(iid) in QR_IID_RANGE


def format_iban(iban: str) -> str:
    """Print form: groups of four characters."""
    value = normalize_iban(iban)
    return " ".join(value[i:i + 4] for i in range(0, len(value), 4))
