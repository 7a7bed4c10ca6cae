"""Roster importer: delimited text table -> canonical roster items.

HEADER MAPPING
──────────────
Each canonical field is resolved from a fixed synonym table by a
case-insensitive exact match against the trimmed raw header.  Columns that
map to nothing are dropped here and never reach the session.

IDENTIFIERS
───────────
A row's primary identifier is its barcode when present, otherwise its SKU.
When both are present and differ, the SKU is kept as the alternate
identifier.  An explicit alternate column (as written by the exporter) takes
precedence over that.  Rows with neither are skipped and counted.

ALL OR NOTHING
──────────────
Validation runs over the whole table before anything is returned.  Any
duplicate primary identifier (compared exactly after trimming) rejects the
import with every offending row listed.  Identifiers differing only by case
are distinct rows here; the count resolver settles them by roster order.
"""
from __future__ import annotations

import csv
import io
import logging
import re
from dataclasses import dataclass, field

from stocktake.schemas.session import RosterItem
from stocktake.services.errors import ValidationError

logger = logging.getLogger(__name__)

HEADER_SYNONYMS: dict[str, tuple[str, ...]] = {
    "identifier": ("sku", "item_code", "product_code", "part_number", "id"),
    "barcode": ("barcode", "upc", "ean", "gtin"),
    "alternateIdentifier": ("alternate_id", "alternate_identifier", "alt_id"),
    "description": ("description", "item_description", "product_name", "name", "desc"),
    "expectedQuantity": (
        "expected_quantity", "expectedquantity", "quantity", "qty", "expected_qty",
    ),
}

# Candidate delimiters, in tie-break order.
_DELIMITERS = (",", "\t", "|", ";")

# First data row is line 2 of the file (line 1 is the header).
_FIRST_DATA_ROW = 2

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")

PREVIEW_ROWS = 5


@dataclass
class ImportResult:
    items: list[RosterItem]
    skipped_count: int
    total_rows: int
    mapped_headers: dict[str, str] = field(default_factory=dict)
    skipped_rows: list[int] = field(default_factory=list)

    @property
    def valid_count(self) -> int:
        return len(self.items)

    def preview(self, rows: int = PREVIEW_ROWS) -> list[RosterItem]:
        return self.items[:rows]


def normalize_identifier(value: str) -> str:
    return value.strip().casefold()


def map_headers(headers: list[str]) -> dict[str, str]:
    """Return ``{canonical_field: raw_header}`` for every header we recognise."""
    mapped: dict[str, str] = {}
    for canonical, synonyms in HEADER_SYNONYMS.items():
        for header in headers:
            if header.strip().lower() in synonyms:
                mapped[canonical] = header
                break
    return mapped


def parse_quantity(value: str | None) -> int:
    """Leading-integer parse; anything unparseable or negative is 0."""
    if not value:
        return 0
    match = _LEADING_INT.match(value)
    if not match:
        return 0
    return max(int(match.group(1)), 0)


def _decode(raw_table: str | bytes) -> str:
    if isinstance(raw_table, str):
        return raw_table.lstrip("\ufeff")
    try:
        return raw_table.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise ValidationError("roster file is not valid UTF-8 text") from exc


def _guess_delimiter(header_line: str) -> str:
    counts = {d: header_line.count(d) for d in _DELIMITERS}
    best = max(_DELIMITERS, key=lambda d: counts[d])
    return best if counts[best] > 0 else ","


def _cell(row: list[str], index: int | None) -> str:
    if index is None or index >= len(row):
        return ""
    return row[index].strip()


def parse_and_validate(raw_table: str | bytes) -> ImportResult:
    """Parse a delimited roster and return its canonical rows.

    Raises ``ValidationError`` when the table has no identifier column, no
    data rows, or duplicate identifiers.  Nothing is returned on failure.
    """
    text = _decode(raw_table)
    if not text.strip():
        raise ValidationError("roster file is empty")

    delimiter = _guess_delimiter(text.splitlines()[0])
    reader = csv.reader(io.StringIO(text, newline=""), delimiter=delimiter)
    try:
        headers = [h.strip() for h in next(reader)]
        raw_rows = list(reader)
    except csv.Error as exc:
        raise ValidationError(f"roster file could not be parsed: {exc}") from exc

    mapped = map_headers(headers)
    if "identifier" not in mapped and "barcode" not in mapped:
        raise ValidationError("missing identifier column")

    columns = {canonical: headers.index(raw) for canonical, raw in mapped.items()}

    # Physically empty lines are not rows. A line of bare delimiters or
    # whitespace is a row with no identifier and gets skipped below.
    numbered = [
        (n, row) for n, row in enumerate(raw_rows, start=_FIRST_DATA_ROW) if row
    ]
    if not numbered:
        raise ValidationError("roster file contains no rows")

    items: list[RosterItem] = []
    item_rows: list[int] = []
    skipped_rows: list[int] = []

    for row_no, row in numbered:
        sku = _cell(row, columns.get("identifier"))
        barcode = _cell(row, columns.get("barcode"))
        if not sku and not barcode:
            skipped_rows.append(row_no)
            continue

        primary = barcode or sku
        alternate = _cell(row, columns.get("alternateIdentifier")) or sku
        items.append(RosterItem(
            primary_identifier=primary,
            alternate_identifier=alternate if alternate and alternate != primary else None,
            barcode=barcode or None,
            description=_cell(row, columns.get("description")),
            expected_quantity=parse_quantity(_cell(row, columns.get("expectedQuantity"))),
        ))
        item_rows.append(row_no)

    duplicates = _find_duplicates(items, item_rows)
    if duplicates:
        logger.info("Roster rejected: %d duplicate identifier row(s)", len(duplicates))
        raise ValidationError("Duplicate identifiers found", duplicates)

    logger.info("Roster parsed: %d item(s), %d skipped, headers=%s",
                len(items), len(skipped_rows), mapped)
    return ImportResult(
        items=items,
        skipped_count=len(skipped_rows),
        total_rows=len(numbered),
        mapped_headers=mapped,
        skipped_rows=skipped_rows,
    )


def _find_duplicates(items: list[RosterItem], rows: list[int]) -> list[str]:
    by_key: dict[str, list[int]] = {}
    for position, item in enumerate(items):
        by_key.setdefault(item.primary_identifier.strip(), []).append(position)

    offending = sorted(
        position
        for positions in by_key.values() if len(positions) > 1
        for position in positions
    )
    return [f"Row {rows[p]}: {items[p].primary_identifier}" for p in offending]
