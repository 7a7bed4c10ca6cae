"""Bounded archive of finished sessions, most recent first."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta

from stocktake.schemas.session import Session
from stocktake.services.statistics import utcnow
from stocktake.services.storage_service import SESSION_HISTORY, JsonDocumentStore

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 50


class HistoryStore:
    def __init__(self, store: JsonDocumentStore, limit: int = DEFAULT_HISTORY_LIMIT) -> None:
        if limit < 1:
            raise ValueError("history limit must be at least 1")
        self._store = store
        self._limit = limit

    @property
    def limit(self) -> int:
        return self._limit

    def all(self) -> list[Session]:
        return self._store.read_model_list(SESSION_HISTORY, Session)

    def append(self, snapshot: Session) -> None:
        """Insert *snapshot* at the front, dropping entries beyond the cap."""
        history = [snapshot.model_copy(deep=True), *self.all()][: self._limit]
        self._store.write_model_list(SESSION_HISTORY, history)
        logger.info("Archived session %s (%s); history size %d",
                    snapshot.id, snapshot.status, len(history))

    def replace(self, sessions: list[Session]) -> None:
        self._store.write_model_list(SESSION_HISTORY, sessions[: self._limit])

    def find(self, session_id: str) -> Session | None:
        return next((s for s in self.all() if s.id == session_id), None)

    def last_completed(self) -> Session | None:
        return next((s for s in self.all() if s.status == "completed"), None)

    def cleanup_older_than(self, days: int, now: datetime | None = None) -> int:
        """Drop entries uploaded before ``now - days``; return how many went."""
        cutoff = (now or utcnow()) - timedelta(days=days)
        history = self.all()
        kept = [s for s in history if s.upload_metadata.uploaded_at >= cutoff]
        removed = len(history) - len(kept)
        if removed:
            self._store.write_model_list(SESSION_HISTORY, kept)
            logger.info("History cleanup removed %d session(s) older than %d day(s)",
                        removed, days)
        return removed
