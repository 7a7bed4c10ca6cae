"""Audit notifications for committed mutations.

The engine notifies after the state change is already saved, so a sink that
fails can never undo a count.  ``notify_safely`` logs the failure and moves on.
"""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class AuditSink(Protocol):
    def notify(self, event: str, details: dict[str, Any]) -> None:
        ...


class LoggingAuditSink:
    """Writes audit events to the application log."""

    def notify(self, event: str, details: dict[str, Any]) -> None:
        logger.info("audit %s: %s", event, details)


class JsonlAuditSink:
    """Appends one JSON object per event to a local file."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    def notify(self, event: str, details: dict[str, Any]) -> None:
        record = {
            "event": event,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            **details,
        }
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._path.open("a", encoding="utf-8") as fh:
            fh.write(json.dumps(record, default=str) + "\n")


def notify_safely(sink: AuditSink | None, event: str, details: dict[str, Any]) -> None:
    if sink is None:
        return
    try:
        sink.notify(event, details)
    except Exception as exc:
        logger.error("Audit sink failed for %s event: %s", event, exc)
