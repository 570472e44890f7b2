"""Localized wording printed on invoices and payment slips."""

from __future__ import annotations

LOCALES = ("fr", "de", "it", "en")
DEFAULT_LOCALE = "fr"

_LABELS: dict[str, dict[str, str]] = {
    "fr": {
        "community": "Consommation communautaire",
        "grid": "Consommation réseau",
        "injection": "Crédit injection communauté",
        "fee": "Frais mensuels",
        "invoice": "Facture",
        "platform_fee": "Frais de plateforme",
    },
    "de": {
        "community": "Gemeinschaftsverbrauch",
        "grid": "Netzbezug",
        "injection": "Gutschrift Einspeisung Gemeinschaft",
        "fee": "Monatliche Gebühr",
        "invoice": "Rechnung",
        "platform_fee": "Plattformgebühr",
    },
    "it": {
        "community": "Consumo comunitario",
        "grid": "Consumo dalla rete",
        "injection": "Credito immissione comunità",
        "fee": "Tassa mensile",
        "invoice": "Fattura",
        "platform_fee": "Tassa di piattaforma",
    },
    "en": {
        "community": "Community consumption",
        "grid": "Grid consumption",
        "injection": "Community injection credit",
        "fee": "Monthly fee",
        "invoice": "Invoice",
        "platform_fee": "Platform fee",
    },
}


def resolve_locale(*candidates: str | None) -> str:
    """First supported locale among the candidates, else French."""
    for candidate in candidates:
        if candidate and candidate.lower()[:2] in _LABELS:
            return candidate.lower()[:2]
    return DEFAULT_LOCALE


def label(key: str, locale: str | None) -> str:
    return _LABELS[resolve_locale(locale)][key]
