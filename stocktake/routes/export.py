"""
Downloads.

  GET  /api/export/session.csv?session_id=   one session as CSV (active if no id)
  POST /api/export/sessions.csv              several archived sessions in one CSV
  GET  /api/export/backup                    full JSON backup of all stored data
"""
import json
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import Response, StreamingResponse

from stocktake.routes.deps import get_engine
from stocktake.schemas.response import ExportSessionsRequest
from stocktake.services.engine import StocktakeEngine

logger = logging.getLogger(__name__)

router = APIRouter(tags=["export"])


def _attachment(filename: str) -> dict[str, str]:
    return {"Content-Disposition": f'attachment; filename="{filename}"'}


@router.get("/api/export/session.csv")
def export_session_csv(
    session_id: str | None = None,
    engine: StocktakeEngine = Depends(get_engine),
) -> StreamingResponse:
    session = engine.exporter.resolve(session_id)
    table = engine.exporter.to_delimited_table(engine.exporter.export_session(session))
    logger.info("Exported session %s (%d items)", session.id, len(session.items))
    return StreamingResponse(
        iter([table]),
        media_type="text/csv",
        headers=_attachment(engine.exporter.session_filename(session)),
    )


@router.post("/api/export/sessions.csv")
def export_sessions_csv(
    body: ExportSessionsRequest,
    engine: StocktakeEngine = Depends(get_engine),
) -> StreamingResponse:
    table = engine.exporter.export_sessions(body.session_ids)
    return StreamingResponse(
        iter([table]),
        media_type="text/csv",
        headers=_attachment(engine.exporter.sessions_filename(len(body.session_ids))),
    )


@router.get("/api/export/backup")
def export_backup(engine: StocktakeEngine = Depends(get_engine)) -> Response:
    with engine.lock:
        backup = engine.exporter.to_backup()
    logger.info("Full backup exported: %d archived session(s)", len(backup["history"]))
    return Response(
        content=json.dumps(backup, indent=2, ensure_ascii=False),
        media_type="application/json",
        headers=_attachment(engine.exporter.backup_filename()),
    )
