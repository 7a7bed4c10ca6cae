"""Session export to delimited tables and full-state JSON backups.

The single-session table uses headers the roster importer recognises, so an
exported file can be uploaded again as a fresh roster.
"""
from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable

from stocktake.schemas.session import Preferences, RosterItem, Session
from stocktake.services.errors import ItemNotFound, NoActiveSession
from stocktake.services.history_store import HistoryStore
from stocktake.services.session_manager import SessionManager
from stocktake.services.statistics import utcnow
from stocktake.services.storage_service import USER_PREFERENCES, JsonDocumentStore

logger = logging.getLogger(__name__)

RESULT_COLUMNS = [
    "sku",
    "barcode",
    "alternate_id",
    "description",
    "expected_quantity",
    "counted_quantity",
    "variance",
    "status",
    "counted_time",
    "notes",
]

SESSION_COLUMNS = [
    "session_id",
    "filename",
    "upload_date",
    "session_status",
    "total_items",
    "counted_items",
    "progress_percent",
]

BACKUP_VERSION = "1.0"


@dataclass
class ExportResult:
    session_info: dict[str, Any]
    results: list[dict[str, Any]] = field(default_factory=list)


def _result_row(item: RosterItem) -> dict[str, Any]:
    return {
        "identifier": item.primary_identifier,
        "barcode": item.barcode,
        "alternate_identifier": item.alternate_identifier,
        "description": item.description,
        "expected_quantity": item.expected_quantity,
        "counted_quantity": item.counted_quantity,
        "counted": item.counted,
        "counted_time": item.counted_time,
        "notes": item.notes,
        "variance": (
            item.counted_quantity - item.expected_quantity
            if item.counted and item.counted_quantity is not None
            else None
        ),
    }


def _blank(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _table_cells(row: dict[str, Any]) -> list[Any]:
    return [
        row["identifier"],
        _blank(row["barcode"]),
        _blank(row["alternate_identifier"]),
        row["description"],
        row["expected_quantity"],
        _blank(row["counted_quantity"]),
        _blank(row["variance"]),
        "Counted" if row["counted"] else "Not Counted",
        _blank(row["counted_time"]),
        row["notes"],
    ]


def _writer(buf: io.StringIO):
    # Every non-numeric cell is quoted so free text may contain delimiters.
    return csv.writer(buf, quoting=csv.QUOTE_NONNUMERIC, lineterminator="\n")


def export_filename(prefix: str, now: datetime, extension: str = "csv") -> str:
    return f"{prefix}_{now.date().isoformat()}.{extension}"


class ExportEngine:
    def __init__(
        self,
        store: JsonDocumentStore,
        sessions: SessionManager,
        history: HistoryStore,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._sessions = sessions
        self._history = history
        self._clock = clock

    def resolve(self, session_or_id: Session | str | None = None) -> Session:
        """Return the given session, a history session by id, or the active one."""
        if isinstance(session_or_id, Session):
            return session_or_id
        if session_or_id is None:
            session = self._sessions.get_active()
            if session is None:
                raise NoActiveSession("No active counting session to export")
            return session
        active = self._sessions.get_active()
        if active is not None and active.id == session_or_id:
            return active
        session = self._history.find(session_or_id)
        if session is None:
            raise ItemNotFound(f"Session '{session_or_id}' not found")
        return session

    def export_session(self, session_or_id: Session | str | None = None) -> ExportResult:
        session = self.resolve(session_or_id)
        progress = session.count_progress
        return ExportResult(
            session_info={
                "id": session.id,
                "filename": session.upload_metadata.filename,
                "uploaded_at": session.upload_metadata.uploaded_at,
                "status": session.status,
                "count_progress": progress.model_dump(by_alias=True, mode="json"),
            },
            results=[_result_row(item) for item in session.items],
        )

    def to_delimited_table(self, export: ExportResult) -> str:
        buf = io.StringIO()
        writer = _writer(buf)
        writer.writerow(RESULT_COLUMNS)
        for row in export.results:
            writer.writerow(_table_cells(row))
        return buf.getvalue()

    def export_sessions(self, session_ids: list[str]) -> str:
        """One combined table over several sessions; unknown ids are skipped."""
        exports: list[ExportResult] = []
        for session_id in session_ids:
            try:
                exports.append(self.export_session(session_id))
            except ItemNotFound:
                logger.warning("Skipping unknown session %s in combined export", session_id)
        if not exports:
            raise ItemNotFound("None of the requested sessions were found")

        buf = io.StringIO()
        writer = _writer(buf)
        writer.writerow(SESSION_COLUMNS + RESULT_COLUMNS)
        for export in exports:
            info = export.session_info
            progress = info["count_progress"]
            prefix = [
                info["id"],
                info["filename"] or "",
                info["uploaded_at"].date().isoformat(),
                info["status"],
                progress["total"],
                progress["counted"],
                progress["percentage"],
            ]
            for row in export.results:
                writer.writerow(prefix + _table_cells(row))
        logger.info("Combined export of %d session(s)", len(exports))
        return buf.getvalue()

    def session_filename(self, session: Session) -> str:
        stem = Path(session.upload_metadata.filename or "session").stem
        return export_filename(f"inventory_count_{stem}", self._clock())

    def sessions_filename(self, count: int) -> str:
        return export_filename(f"inventory_export_{count}_sessions", self._clock())

    def backup_filename(self) -> str:
        return export_filename("inventory_backup", self._clock(), "json")

    def to_backup(self) -> dict[str, Any]:
        active = self._sessions.get_active()
        preferences = self._store.read_model(USER_PREFERENCES, Preferences) or Preferences()
        return {
            "exportDate": self._clock().isoformat(),
            "exportType": "full_backup",
            "version": BACKUP_VERSION,
            "activeSession": active.model_dump(mode="json", by_alias=True) if active else None,
            "history": [s.model_dump(mode="json", by_alias=True) for s in self._history.all()],
            "appState": self._sessions.app_state().model_dump(mode="json", by_alias=True),
            "preferences": preferences.model_dump(mode="json", by_alias=True),
        }
