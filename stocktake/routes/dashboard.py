"""
Dashboard and app-wide state.

  GET   /api/dashboard     current session progress plus history counters
  GET   /api/preferences   operator preferences
  PATCH /api/preferences   merge a partial preferences document
  POST  /api/reset         wipe every stored document
"""
import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException

from stocktake.routes.deps import get_engine
from stocktake.routes.session import statistics_response
from stocktake.schemas.response import DashboardResponse
from stocktake.schemas.session import Preferences
from stocktake.services.engine import StocktakeEngine

APP_VERSION = "0.1.0"

logger = logging.getLogger(__name__)

router = APIRouter(tags=["dashboard"])


@router.get("/api/dashboard", response_model=DashboardResponse)
def get_dashboard(engine: StocktakeEngine = Depends(get_engine)) -> DashboardResponse:
    """Return active-session progress and completed-session counters."""
    data = engine.dashboard()
    stats = data.pop("statistics")

    return DashboardResponse(
        version=APP_VERSION,
        progress=statistics_response(stats) if stats else None,
        app_state=engine.sessions.app_state(),
        **data,
    )


@router.get("/api/preferences", response_model=Preferences)
def get_preferences(engine: StocktakeEngine = Depends(get_engine)) -> Preferences:
    return engine.preferences.get()


@router.patch("/api/preferences", response_model=Preferences)
def update_preferences(
    patch: dict[str, Any] = Body(...),
    engine: StocktakeEngine = Depends(get_engine),
) -> Preferences:
    try:
        with engine.lock:
            return engine.preferences.update(patch)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@router.post("/api/reset")
def reset_all(engine: StocktakeEngine = Depends(get_engine)) -> dict[str, str]:
    with engine.lock:
        engine.reset_all()
    return {"status": "reset"}
