"""Resolve a scanned or typed identifier to a roster item and record a count.

Matching is exact on the normalized value (trimmed, case-folded) and runs
field by field across the whole roster: every primary identifier first, then
every alternate identifier, then every barcode.  The first hit wins.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from stocktake.schemas.session import RosterItem, Session
from stocktake.services.audit_service import AuditSink, notify_safely
from stocktake.services.errors import InvalidQuantity, ItemNotFound
from stocktake.services.roster_import import normalize_identifier
from stocktake.services.session_manager import SessionManager
from stocktake.services.statistics import utcnow

logger = logging.getLogger(__name__)

_MATCH_FIELDS = ("primary_identifier", "alternate_identifier", "barcode")

_INTEGER = re.compile(r"\+?\d+")


@dataclass
class CountResult:
    session: Session
    item: RosterItem
    was_already_counted: bool


def parse_count_quantity(quantity: object) -> int:
    """Accept a non-negative integer or its decimal string form."""
    if isinstance(quantity, bool):
        raise InvalidQuantity(f"Invalid quantity: {quantity!r}")
    if isinstance(quantity, int):
        value = quantity
    elif isinstance(quantity, float) and quantity.is_integer():
        value = int(quantity)
    elif isinstance(quantity, str) and _INTEGER.fullmatch(quantity.strip()):
        value = int(quantity.strip())
    else:
        raise InvalidQuantity(f"Invalid quantity: {quantity!r}. Enter a whole number of 0 or more.")
    if value < 0:
        raise InvalidQuantity(f"Invalid quantity: {value}. Quantity cannot be negative.")
    return value


def find_item_index(items: list[RosterItem], identifier: str) -> int | None:
    key = normalize_identifier(identifier)
    if not key:
        return None
    for field_name in _MATCH_FIELDS:
        for index, item in enumerate(items):
            value = getattr(item, field_name)
            if value and normalize_identifier(value) == key:
                return index
    return None


def _identifier_values(item: RosterItem) -> list[str]:
    return [v for v in (getattr(item, f) for f in _MATCH_FIELDS) if v]


class CountResolver:
    def __init__(
        self,
        sessions: SessionManager,
        audit: AuditSink | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._sessions = sessions
        self._audit = audit
        self._clock = clock

    def count_item(
        self,
        identifier: str,
        quantity: object,
        notes: str = "",
        confidence: float | None = None,
    ) -> CountResult:
        """Record *quantity* against the item matching *identifier*.

        Re-counting an item overwrites its quantity; it is never counted twice.
        """
        session = self._sessions.require_active()
        value = parse_count_quantity(quantity)

        index = find_item_index(session.items, identifier)
        if index is None:
            raise ItemNotFound(f"Item '{identifier.strip()}' not found in the current session")

        items = list(session.items)
        previous = items[index]
        items[index] = previous.model_copy(update={
            "counted": True,
            "counted_quantity": value,
            "counted_time": self._clock(),
            "notes": notes or "",
        })

        updated = self._sessions.mutate_active({"items": items})
        item = updated.items[index]
        logger.info("Counted %s = %d (%s), progress %d/%d",
                    item.primary_identifier, value,
                    "recount" if previous.counted else "first count",
                    updated.count_progress.counted, updated.count_progress.total)

        details = {
            "session_id": updated.id,
            "identifier": item.primary_identifier,
            "quantity": value,
            "recount": previous.counted,
        }
        if confidence is not None:
            details["confidence"] = confidence
        notify_safely(self._audit, "count", details)

        return CountResult(session=updated, item=item, was_already_counted=previous.counted)

    def lookup(self, identifier: str) -> RosterItem | None:
        session = self._sessions.require_active()
        index = find_item_index(session.items, identifier)
        return None if index is None else session.items[index]

    def search(self, term: str, include_descriptions: bool = True) -> list[RosterItem]:
        """Substring search over the active roster.

        Exact identifier matches come first, then uncounted before counted
        items, then roster order.  A blank term matches nothing.
        """
        session = self._sessions.require_active()
        needle = normalize_identifier(term)
        if not needle:
            return []

        ranked: list[tuple[bool, bool, int, RosterItem]] = []
        for position, item in enumerate(session.items):
            keys = [normalize_identifier(v) for v in _identifier_values(item)]
            hit = any(needle in k for k in keys) or (
                include_descriptions and needle in item.description.casefold()
            )
            if hit:
                exact = needle in keys
                ranked.append((not exact, item.counted, position, item))

        ranked.sort(key=lambda r: r[:3])
        return [r[3] for r in ranked]
