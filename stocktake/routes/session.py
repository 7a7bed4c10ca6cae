"""
Active counting session endpoints.

  GET   /api/session                        current session (409 if none)
  PATCH /api/session                        update session metadata
  POST  /api/session/count                  record a count for one identifier
  GET   /api/session/items/{identifier}     look an item up without counting
  GET   /api/session/search                 substring search over the roster
  GET   /api/session/statistics             progress and time estimates
  POST  /api/session/complete               finish and archive
  POST  /api/session/cancel                 discard without archiving
"""
import logging

from fastapi import APIRouter, Depends, HTTPException

from stocktake.config import Settings
from stocktake.routes.deps import get_app_settings, get_engine
from stocktake.schemas.response import (
    CountRequest,
    CountResponse,
    SearchResponse,
    SessionPatch,
    StatisticsResponse,
)
from stocktake.schemas.session import RosterItem, Session
from stocktake.services.engine import StocktakeEngine
from stocktake.services.statistics import (
    SessionStatistics,
    compute_statistics,
    format_duration,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["session"])


def statistics_response(stats: SessionStatistics) -> StatisticsResponse:
    return StatisticsResponse(
        **stats.as_dict(),
        time_spent_label=format_duration(stats.time_spent),
        estimated_remaining_label=format_duration(stats.estimated_remaining_time),
    )


@router.get("/api/session", response_model=Session)
def get_session(engine: StocktakeEngine = Depends(get_engine)) -> Session:
    return engine.sessions.require_active()


@router.patch("/api/session", response_model=Session)
def patch_session(
    body: SessionPatch,
    engine: StocktakeEngine = Depends(get_engine),
) -> Session:
    """Rename the upload attached to the active session."""
    with engine.lock:
        session = engine.sessions.require_active()
        metadata = session.upload_metadata.model_copy(update=body.model_dump(exclude_unset=True))
        return engine.sessions.mutate_active({"upload_metadata": metadata})


@router.post("/api/session/count", response_model=CountResponse)
def count_item(
    body: CountRequest,
    engine: StocktakeEngine = Depends(get_engine),
) -> CountResponse:
    """Record a counted quantity for a scanned or typed identifier."""
    with engine.lock:
        result = engine.counter.count_item(
            body.identifier, body.quantity, body.notes, confidence=body.confidence,
        )

    progress = result.session.count_progress
    return CountResponse(
        item=result.item,
        was_already_counted=result.was_already_counted,
        total=progress.total,
        counted=progress.counted,
        percentage=progress.percentage,
    )


@router.get("/api/session/items/{identifier}", response_model=RosterItem)
def lookup_item(
    identifier: str,
    engine: StocktakeEngine = Depends(get_engine),
) -> RosterItem:
    item = engine.counter.lookup(identifier)
    if item is None:
        raise HTTPException(status_code=404, detail=f"Item '{identifier}' not found in the current session")
    return item


@router.get("/api/session/search", response_model=SearchResponse)
def search_items(
    term: str,
    include_descriptions: bool = True,
    limit: int | None = None,
    engine: StocktakeEngine = Depends(get_engine),
    settings: Settings = Depends(get_app_settings),
) -> SearchResponse:
    """Search the roster; results are capped at *limit* (default from settings)."""
    matches = engine.counter.search(term, include_descriptions)
    cap = limit if limit is not None and limit > 0 else settings.search_result_limit
    return SearchResponse(term=term, total_matches=len(matches), items=matches[:cap])


@router.get("/api/session/statistics", response_model=StatisticsResponse)
def session_statistics(engine: StocktakeEngine = Depends(get_engine)) -> StatisticsResponse:
    session = engine.sessions.require_active()
    return statistics_response(compute_statistics(session, engine.clock()))


@router.post("/api/session/complete", response_model=Session)
def complete_session(engine: StocktakeEngine = Depends(get_engine)) -> Session:
    with engine.lock:
        return engine.sessions.complete_session()


@router.post("/api/session/cancel", response_model=Session)
def cancel_session(engine: StocktakeEngine = Depends(get_engine)) -> Session:
    with engine.lock:
        return engine.sessions.cancel_session()
