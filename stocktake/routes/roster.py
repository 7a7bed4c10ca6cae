"""
Roster upload endpoints:

  POST /api/roster
    Accepts a delimited roster file (csv, tsv, txt).  Validates the whole
    table and, only if it is clean, starts a new counting session from it.
    Any session already active is replaced.

  POST /api/roster/preview
    Same validation, no state change.  Returns row totals, the mapped headers
    and the first few parsed rows.
"""
import logging
from pathlib import Path

from fastapi import APIRouter, Depends, HTTPException, UploadFile

from stocktake.config import Settings
from stocktake.routes.deps import get_app_settings, get_engine
from stocktake.schemas.response import RosterImportResponse, RosterPreview
from stocktake.services.engine import StocktakeEngine

logger = logging.getLogger(__name__)

router = APIRouter(tags=["roster"])

ALLOWED_EXTENSIONS = {".csv", ".tsv", ".txt"}


def _read_upload(file: UploadFile, settings: Settings) -> tuple[str, bytes]:
    filename = file.filename or "roster.csv"
    ext = Path(filename).suffix.lower()
    if ext not in ALLOWED_EXTENSIONS:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported file type '{ext}'. "
                   f"Accepted: {', '.join(sorted(ALLOWED_EXTENSIONS))}",
        )

    contents = file.file.read()
    if len(contents) > settings.max_upload_bytes:
        raise HTTPException(
            status_code=413,
            detail=f"File exceeds the {settings.max_upload_bytes // (1024*1024)} MB limit.",
        )
    logger.info("Received roster upload: %s (%.1f KB)", filename, len(contents) / 1024)
    return filename, contents


@router.post("/api/roster", response_model=RosterImportResponse)
def upload_roster(
    file: UploadFile,
    engine: StocktakeEngine = Depends(get_engine),
    settings: Settings = Depends(get_app_settings),
) -> RosterImportResponse:
    """Import a roster file and start counting it."""
    filename, contents = _read_upload(file, settings)

    with engine.lock:
        imported = engine.import_roster(contents, filename)

    return RosterImportResponse(
        session=imported.session,
        processed=imported.result.valid_count,
        skipped=imported.result.skipped_count,
    )


@router.post("/api/roster/preview", response_model=RosterPreview)
def preview_roster(
    file: UploadFile,
    engine: StocktakeEngine = Depends(get_engine),
    settings: Settings = Depends(get_app_settings),
) -> RosterPreview:
    """Validate a roster file without touching the current session."""
    filename, contents = _read_upload(file, settings)
    result = engine.preview_roster(contents)

    return RosterPreview(
        filename=filename,
        total_rows=result.total_rows,
        valid_rows=result.valid_count,
        skipped_rows=result.skipped_count,
        skipped_row_numbers=result.skipped_rows,
        mapped_headers=result.mapped_headers,
        sample=result.preview(),
    )
