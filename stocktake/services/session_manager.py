"""Owner of the single active-session document and its lifecycle.

    active ──mutate/count──▶ active
    active ──complete──────▶ completed   (archived to history)
    active ──cancel────────▶ cancelled   (discarded)

Every public call is a full read-modify-write of the persisted document.
If the write raises ``StorageError`` the previous document is still on disk,
so a failed call leaves the session as it was.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any, Callable

from stocktake.schemas.session import (
    AppState,
    CountProgress,
    RosterItem,
    Session,
    UploadMetadata,
)
from stocktake.services.audit_service import AuditSink, notify_safely
from stocktake.services.errors import NoActiveSession, StorageError
from stocktake.services.history_store import HistoryStore
from stocktake.services.statistics import elapsed_ms, recompute_progress, utcnow
from stocktake.services.storage_service import (
    APP_STATE,
    CURRENT_SESSION,
    JsonDocumentStore,
)

logger = logging.getLogger(__name__)

# Lifecycle fields only complete_session / cancel_session may change.
_PROTECTED_FIELDS = frozenset({"id", "status"})


def new_session_id() -> str:
    return f"session_{uuid.uuid4().hex}"


class SessionManager:
    def __init__(
        self,
        store: JsonDocumentStore,
        history: HistoryStore,
        audit: AuditSink | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._history = history
        self._audit = audit
        self._clock = clock

    # ── reads ───────────────────────────────────────────────────────────

    def get_active(self) -> Session | None:
        session = self._store.read_model(CURRENT_SESSION, Session)
        if session is not None and session.status != "active":
            logger.warning("Ignoring non-active session %s in the active slot", session.id)
            return None
        return session

    def require_active(self) -> Session:
        session = self.get_active()
        if session is None:
            raise NoActiveSession()
        return session

    def app_state(self) -> AppState:
        return self._store.read_model(APP_STATE, AppState) or AppState()

    # ── lifecycle ───────────────────────────────────────────────────────

    def create_session(self, roster: list[RosterItem], filename: str | None = None) -> Session:
        """Start counting *roster*, replacing any session already active."""
        now = self._clock()
        replaced = self.get_active()

        items = [item.model_copy(deep=True) for item in roster]
        session = Session(
            id=new_session_id(),
            status="active",
            upload_metadata=UploadMetadata(filename=filename, uploaded_at=now),
            items=items,
            count_progress=recompute_progress(CountProgress(start_time=now), items),
            last_activity=now,
        )
        self._store.write_model(CURRENT_SESSION, session)
        self._update_app_state(last_active_session_id=session.id)

        if replaced is not None:
            logger.info("Session %s replaced by %s without archiving", replaced.id, session.id)
        logger.info("Session %s created from %s: %d item(s)",
                    session.id, filename or "<unnamed>", len(items))
        notify_safely(self._audit, "import", {
            "session_id": session.id,
            "filename": filename,
            "items": len(items),
        })
        return session

    def mutate_active(self, patch: dict[str, Any]) -> Session:
        """Merge *patch* (field names) into the active session and save it.

        Progress counters are always re-derived from the items, so a patch
        can never leave them inconsistent.
        """
        protected = _PROTECTED_FIELDS.intersection(patch)
        if protected:
            raise ValueError(f"Cannot patch session field(s): {', '.join(sorted(protected))}")

        session = self.require_active()
        data = session.model_dump()
        data.update(patch)
        data["last_activity"] = self._clock()
        updated = Session.model_validate(data)
        updated.count_progress = recompute_progress(updated.count_progress, updated.items)

        self._store.write_model(CURRENT_SESSION, updated)
        return updated

    def complete_session(self) -> Session:
        session = self.require_active()
        now = self._clock()

        progress = recompute_progress(session.count_progress, session.items)
        progress.end_time = now
        progress.time_spent = elapsed_ms(progress.start_time, now)
        completed = session.model_copy(update={
            "status": "completed",
            "count_progress": progress,
            "last_activity": now,
        })

        # Archive first, then clear the slot; on failure the archive entry is
        # withdrawn and the session stays active.
        archived = self._history.all()
        self._history.append(completed)
        try:
            self._store.remove(CURRENT_SESSION)
        except StorageError:
            self._history.replace(archived)
            raise
        state = self.app_state()
        self._update_app_state(
            total_sessions_completed=state.total_sessions_completed + 1,
            last_active_session_id=None,
        )

        logger.info("Session %s completed: %d/%d counted in %d ms",
                    completed.id, progress.counted, progress.total, progress.time_spent)
        notify_safely(self._audit, "complete", {
            "session_id": completed.id,
            "counted": progress.counted,
            "total": progress.total,
        })
        return completed

    def cancel_session(self) -> Session:
        session = self.require_active()
        now = self._clock()
        cancelled = session.model_copy(update={"status": "cancelled", "last_activity": now})

        self._store.remove(CURRENT_SESSION)
        self._update_app_state(last_active_session_id=None)

        logger.info("Session %s cancelled", cancelled.id)
        notify_safely(self._audit, "cancel", {"session_id": cancelled.id})
        return cancelled

    def _update_app_state(self, **updates: Any) -> AppState:
        state = self.app_state().model_copy(update=updates)
        self._store.write_model(APP_STATE, state)
        return state
