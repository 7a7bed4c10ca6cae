from datetime import datetime

from pydantic import BaseModel, Field

from stocktake.schemas.session import AppState, RosterItem, Session


# ── Roster import ─────────────────────────────────────────────────────────────
class RosterPreview(BaseModel):
    filename: str | None = None
    total_rows: int
    valid_rows: int
    skipped_rows: int
    skipped_row_numbers: list[int]
    mapped_headers: dict[str, str]
    sample: list[RosterItem]


class RosterImportResponse(BaseModel):
    status: str = "success"
    session: Session
    processed: int
    skipped: int


# ── Counting ──────────────────────────────────────────────────────────────────
class CountRequest(BaseModel):
    identifier: str = Field(min_length=1)
    # Any JSON scalar; parse_count_quantity does the validation.
    quantity: int | float | str | None
    notes: str = ""
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)


class CountResponse(BaseModel):
    item: RosterItem
    was_already_counted: bool
    total: int
    counted: int
    percentage: int


class SessionPatch(BaseModel):
    filename: str | None = None


class SearchResponse(BaseModel):
    term: str
    total_matches: int
    items: list[RosterItem]


class StatisticsResponse(BaseModel):
    total: int
    counted: int
    remaining: int
    percentage: int
    time_spent: int
    avg_time_per_item: float
    estimated_remaining_time: float
    time_spent_label: str
    estimated_remaining_label: str


# ── History ───────────────────────────────────────────────────────────────────
class HistoryResponse(BaseModel):
    limit: int
    sessions: list[Session]


class CleanupResponse(BaseModel):
    removed: int
    days: int


# ── Export ────────────────────────────────────────────────────────────────────
class ExportSessionsRequest(BaseModel):
    session_ids: list[str] = Field(min_length=1)


# ── Dashboard ─────────────────────────────────────────────────────────────────
class DashboardResponse(BaseModel):
    version: str
    active: bool
    session_id: str | None = None
    filename: str | None = None
    uploaded_at: datetime | None = None
    progress: StatisticsResponse | None = None
    total_sessions_completed: int
    last_completed: Session | None = None
    app_state: AppState
