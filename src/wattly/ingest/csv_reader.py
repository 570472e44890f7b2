"""Header-driven CSV front end for load-curve imports."""

from __future__ import annotations

import csv
import io
import logging
from pathlib import Path

from wattly.errors import UnreadableSourceError
from wattly.ingest.base import IntervalRecord

logger = logging.getLogger(__name__)

# Accepted header spellings, compared case-insensitively after trimming.
COLUMN_ALIASES: dict[str, tuple[str, ...]] = {
    "pod_code": ("pod", "pod_code", "podcode", "meter", "meter_id", "meter_point", "point_de_mesure"),
    "timestamp": ("timestamp", "time", "datetime", "date", "horodatage", "zeitstempel"),
    "consumed_kwh": (
        "consumption", "consumed", "consumed_kwh", "consumption_kwh", "consommation",
        "consommation_kwh", "verbrauch", "import_kwh",
    ),
    "produced_kwh": (
        "production", "produced", "produced_kwh", "production_kwh", "injection",
        "injection_kwh", "produktion", "export_kwh",
    ),
}

_REQUIRED = ("pod_code", "timestamp", "consumed_kwh")
_DELIMITERS = ",;\t"


def _decode(source: bytes | str | Path) -> str:
    if isinstance(source, Path):
        try:
            source = source.read_bytes()
        except OSError as exc:
            raise UnreadableSourceError(f"Cannot read {source}: {exc}") from exc
    if isinstance(source, bytes):
        try:
            return source.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise UnreadableSourceError("Load curve is not valid UTF-8") from exc
    return source.lstrip("\ufeff")


def _detect_delimiter(header_line: str) -> str:
    try:
        return csv.Sniffer().sniff(header_line, delimiters=_DELIMITERS).delimiter
    except csv.Error:
        # Sniffer gives up on single-column or ambiguous headers
        counts = {d: header_line.count(d) for d in _DELIMITERS}
        return max(counts, key=lambda d: counts[d])


def _map_columns(header: list[str]) -> dict[str, int]:
    normalized = [h.strip().lower().replace(" ", "_").replace("-", "_") for h in header]
    mapping: dict[str, int] = {}
    for field_name, aliases in COLUMN_ALIASES.items():
        for idx, name in enumerate(normalized):
            if name in aliases:
                mapping[field_name] = idx
                break
    return mapping


def read_load_curve_csv(source: bytes | str | Path) -> list[IntervalRecord]:
    """Parse a CSV load curve into raw records.

    Values are passed through as text; per-row validation is the ingestor's
    job. Raises UnreadableSourceError only when the file as a whole cannot be
    interpreted.
    """
    text = _decode(source)
    lines = text.splitlines()
    first = next((line for line in lines if line.strip()), None)
    if first is None:
        raise UnreadableSourceError("Load curve is empty")

    delimiter = _detect_delimiter(first)
    reader = csv.reader(io.StringIO(text), delimiter=delimiter)
    header: list[str] = []
    for row in reader:
        if any(cell.strip() for cell in row):
            header = row
            break

    columns = _map_columns(header)
    missing = [name for name in _REQUIRED if name not in columns]
    if missing:
        raise UnreadableSourceError(
            f"Load curve header is missing required columns: {', '.join(missing)}",
            header=header,
        )

    decimal_comma = delimiter != ","
    records: list[IntervalRecord] = []
    for row in reader:
        if not any(cell.strip() for cell in row):
            continue

        def cell(name: str) -> str | None:
            idx = columns.get(name)
            if idx is None or idx >= len(row):
                return None
            value = row[idx].strip()
            return value or None

        def number(name: str) -> str | None:
            value = cell(name)
            if value is not None and decimal_comma:
                value = value.replace(",", ".")
            return value

        produced = number("produced_kwh") if "produced_kwh" in columns else "0"
        records.append(IntervalRecord(
            pod_code=cell("pod_code"),
            timestamp=cell("timestamp"),
            consumed_kwh=number("consumed_kwh"),
            produced_kwh=produced if produced is not None else "0",
        ))

    logger.info("Read %d load-curve rows (delimiter %r)", len(records), delimiter)
    return records
