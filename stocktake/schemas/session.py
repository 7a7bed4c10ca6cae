"""Persisted document shapes: sessions, roster items, app counters.

Field names are snake_case in Python and camelCase on disk / over the wire.
"""
from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

SessionStatus = Literal["active", "completed", "cancelled"]


class _Document(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RosterItem(_Document):
    primary_identifier: str
    alternate_identifier: str | None = None
    barcode: str | None = None
    description: str = ""
    expected_quantity: int = Field(default=0, ge=0)
    counted: bool = False
    counted_quantity: int | None = None
    counted_time: datetime | None = None
    notes: str = ""


class UploadMetadata(_Document):
    filename: str | None = None
    uploaded_at: datetime


class CountProgress(_Document):
    total: int = 0
    counted: int = 0
    percentage: int = 0
    start_time: datetime
    end_time: datetime | None = None
    # milliseconds
    time_spent: int = 0


class Session(_Document):
    id: str
    status: SessionStatus = "active"
    upload_metadata: UploadMetadata
    items: list[RosterItem] = Field(default_factory=list)
    count_progress: CountProgress
    last_activity: datetime


class AppState(_Document):
    total_sessions_completed: int = 0
    last_active_session_id: str | None = None


class CountingPreferences(_Document):
    show_descriptions: bool = True
    auto_focus_quantity: bool = True
    enable_vibration: bool = True


class Preferences(_Document):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    last_upload_date: datetime | None = None
    counting_preferences: CountingPreferences = Field(default_factory=CountingPreferences)
