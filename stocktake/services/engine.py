"""Wiring for the counting engine.

One ``StocktakeEngine`` is built per application (or per test) and handed to
whoever needs it; nothing here is a module-level singleton.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

from stocktake.config import Settings
from stocktake.schemas.session import Session
from stocktake.services.audit_service import (
    AuditSink,
    JsonlAuditSink,
    LoggingAuditSink,
    notify_safely,
)
from stocktake.services.count_resolver import CountResolver
from stocktake.services.export_service import ExportEngine
from stocktake.services.history_store import HistoryStore
from stocktake.services.preferences_service import PreferencesService
from stocktake.services.roster_import import ImportResult, parse_and_validate
from stocktake.services.session_manager import SessionManager
from stocktake.services.statistics import compute_statistics, utcnow
from stocktake.services.storage_service import ALL_DOCUMENTS, JsonDocumentStore

logger = logging.getLogger(__name__)


@dataclass
class RosterImport:
    session: Session
    result: ImportResult


class StocktakeEngine:
    def __init__(
        self,
        store: JsonDocumentStore,
        history_limit: int = 50,
        audit: AuditSink | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.clock = clock
        # Serializes read-modify-write calls within this process.
        self.lock = threading.Lock()
        self.audit = audit
        self.history = HistoryStore(store, history_limit)
        self.sessions = SessionManager(store, self.history, audit, clock)
        self.counter = CountResolver(self.sessions, audit, clock)
        self.exporter = ExportEngine(store, self.sessions, self.history, clock)
        self.preferences = PreferencesService(store)

    def preview_roster(self, raw_table: str | bytes) -> ImportResult:
        return parse_and_validate(raw_table)

    def import_roster(self, raw_table: str | bytes, filename: str | None = None) -> RosterImport:
        """Validate the whole table, then start a session from it.

        Nothing is written unless validation succeeds.
        """
        result = parse_and_validate(raw_table)
        session = self.sessions.create_session(result.items, filename)
        self.preferences.update({"lastUploadDate": session.upload_metadata.uploaded_at})
        return RosterImport(session=session, result=result)

    def dashboard(self) -> dict[str, Any]:
        session = self.sessions.get_active()
        stats = compute_statistics(session, self.clock()) if session else None
        return {
            "active": session is not None,
            "session_id": session.id if session else None,
            "filename": session.upload_metadata.filename if session else None,
            "uploaded_at": session.upload_metadata.uploaded_at if session else None,
            "statistics": stats,
            "total_sessions_completed": self.sessions.app_state().total_sessions_completed,
            "last_completed": self.history.last_completed(),
        }

    def reset_all(self) -> None:
        """Drop every persisted document and start from defaults."""
        for name in ALL_DOCUMENTS:
            self.store.remove(name)
        logger.info("All stocktake data cleared")
        notify_safely(self.audit, "reset", {})


def build_audit_sink(settings: Settings) -> AuditSink:
    if settings.audit_log_path:
        return JsonlAuditSink(settings.audit_log_path)
    return LoggingAuditSink()


def build_engine(settings: Settings) -> StocktakeEngine:
    store = JsonDocumentStore(settings.data_dir, settings.max_document_bytes)
    logger.info("Stocktake data directory: %s", store.data_dir)
    return StocktakeEngine(
        store,
        history_limit=settings.history_limit,
        audit=build_audit_sink(settings),
    )
