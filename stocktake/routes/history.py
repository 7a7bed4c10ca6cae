"""
Finished-session archive.

  GET  /api/history                  all archived sessions, most recent first
  GET  /api/history/last-completed   most recent completed session (or null)
  POST /api/history/cleanup?days=N   drop sessions uploaded more than N days ago
"""
import logging

from fastapi import APIRouter, Depends, HTTPException

from stocktake.config import Settings
from stocktake.routes.deps import get_app_settings, get_engine
from stocktake.schemas.response import CleanupResponse, HistoryResponse
from stocktake.schemas.session import Session
from stocktake.services.engine import StocktakeEngine

logger = logging.getLogger(__name__)

router = APIRouter(tags=["history"])


@router.get("/api/history", response_model=HistoryResponse)
def list_history(engine: StocktakeEngine = Depends(get_engine)) -> HistoryResponse:
    return HistoryResponse(limit=engine.history.limit, sessions=engine.history.all())


@router.get("/api/history/last-completed", response_model=Session | None)
def last_completed(engine: StocktakeEngine = Depends(get_engine)) -> Session | None:
    return engine.history.last_completed()


@router.post("/api/history/cleanup", response_model=CleanupResponse)
def cleanup_history(
    days: int | None = None,
    engine: StocktakeEngine = Depends(get_engine),
    settings: Settings = Depends(get_app_settings),
) -> CleanupResponse:
    """Remove archived sessions older than *days* (default from settings)."""
    window = settings.history_retention_days if days is None else days
    if window < 0:
        raise HTTPException(status_code=400, detail="days must be 0 or more.")

    with engine.lock:
        removed = engine.history.cleanup_older_than(window, engine.clock())
    return CleanupResponse(removed=removed, days=window)
