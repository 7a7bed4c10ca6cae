"""Operator preferences document."""
from __future__ import annotations

import logging
from typing import Any

from stocktake.schemas.session import Preferences
from stocktake.services.storage_service import USER_PREFERENCES, JsonDocumentStore

logger = logging.getLogger(__name__)


class PreferencesService:
    def __init__(self, store: JsonDocumentStore) -> None:
        self._store = store

    def get(self) -> Preferences:
        return self._store.read_model(USER_PREFERENCES, Preferences) or Preferences()

    def update(self, patch: dict[str, Any]) -> Preferences:
        """Merge *patch* (camelCase keys, as stored) and save."""
        current = self.get().model_dump(by_alias=True)
        current.update(patch)
        if isinstance(patch.get("countingPreferences"), dict):
            merged = self.get().counting_preferences.model_dump(by_alias=True)
            merged.update(patch["countingPreferences"])
            current["countingPreferences"] = merged
        prefs = Preferences.model_validate(current)
        self._store.write_model(USER_PREFERENCES, prefs)
        logger.info("Preferences updated: %s", sorted(patch))
        return prefs
