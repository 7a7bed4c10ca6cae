"""JSON document store backing the counting engine.

Four independently addressable documents live side by side in ``data_dir``:

    current_session.json   the active session (absent when none)
    session_history.json   finished sessions, most recent first
    user_preferences.json  operator preferences
    app_state.json         process-wide counters

READS never raise: a missing document yields the caller's default, and an
unreadable one is logged as corruption and also yields the default.

WRITES are all-or-nothing: the document is serialized and size-checked in
memory, written to a temp file next to the target and swapped in with
``os.replace``.  Any failure raises ``StorageError`` and leaves the previous
document untouched.  There is no cross-process lock; the last writer wins.
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, TypeVar

from pydantic import BaseModel, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from stocktake.services.errors import StorageError

logger = logging.getLogger(__name__)

CURRENT_SESSION = "current_session"
SESSION_HISTORY = "session_history"
USER_PREFERENCES = "user_preferences"
APP_STATE = "app_state"

ALL_DOCUMENTS = (CURRENT_SESSION, SESSION_HISTORY, USER_PREFERENCES, APP_STATE)

M = TypeVar("M", bound=BaseModel)


class JsonDocumentStore:
    """Reads and writes named JSON documents under a single directory."""

    def __init__(self, data_dir: str | Path, max_document_bytes: int) -> None:
        self._dir = Path(data_dir)
        self._max_bytes = max_document_bytes
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"Cannot create data directory {self._dir}: {exc}") from exc

    @property
    def data_dir(self) -> Path:
        return self._dir

    def path_for(self, name: str) -> Path:
        return self._dir / f"{name}.json"

    # ── raw documents ───────────────────────────────────────────────────

    def read(self, name: str, default: Any = None) -> Any:
        path = self.path_for(name)
        if not path.is_file():
            return default
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            logger.warning("Corrupt document %s, using default: %s", path, exc)
            return default

    def write(self, name: str, data: Any) -> None:
        path = self.path_for(name)
        try:
            payload = json.dumps(data, ensure_ascii=False, indent=2)
        except (TypeError, ValueError) as exc:
            logger.error("Cannot serialize %s: %s", name, exc)
            raise StorageError(f"Could not serialize '{name}': {exc}") from exc

        encoded = payload.encode("utf-8")
        if len(encoded) > self._max_bytes:
            logger.error("Document %s too large: %d bytes (limit %d)",
                         name, len(encoded), self._max_bytes)
            raise StorageError(
                f"Could not save '{name}': {len(encoded)} bytes exceeds the "
                f"{self._max_bytes} byte storage limit."
            )

        tmp_name = None
        try:
            with tempfile.NamedTemporaryFile(
                "wb", dir=self._dir, prefix=f".{name}.", suffix=".tmp", delete=False,
            ) as tmp:
                tmp_name = tmp.name
                tmp.write(encoded)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_name, path)
        except OSError as exc:
            logger.error("Failed to write %s: %s", path, exc)
            if tmp_name:
                try:
                    os.remove(tmp_name)
                except OSError:
                    pass
            raise StorageError(f"Could not save '{name}': {exc}") from exc

        logger.debug("Saved %s (%d bytes)", path, len(encoded))

    def remove(self, name: str) -> None:
        path = self.path_for(name)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            logger.error("Failed to remove %s: %s", path, exc)
            raise StorageError(f"Could not remove '{name}': {exc}") from exc

    # ── typed documents ─────────────────────────────────────────────────

    def read_model(self, name: str, model: type[M]) -> M | None:
        raw = self.read(name)
        if raw is None:
            return None
        try:
            return model.model_validate(raw)
        except PydanticValidationError as exc:
            logger.warning("Document %s does not match %s, ignoring it: %s",
                           name, model.__name__, exc)
            return None

    def read_model_list(self, name: str, model: type[M]) -> list[M]:
        raw = self.read(name, default=[])
        try:
            return TypeAdapter(list[model]).validate_python(raw)
        except PydanticValidationError as exc:
            logger.warning("Document %s does not match list[%s], ignoring it: %s",
                           name, model.__name__, exc)
            return []

    def write_model(self, name: str, value: BaseModel) -> None:
        self.write(name, value.model_dump(mode="json", by_alias=True))

    def write_model_list(self, name: str, values: list[BaseModel]) -> None:
        self.write(name, [v.model_dump(mode="json", by_alias=True) for v in values])
