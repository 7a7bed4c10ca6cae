import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from stocktake.config import Settings, get_settings
from stocktake.routes.dashboard import APP_VERSION, router as dashboard_router
from stocktake.routes.export import router as export_router
from stocktake.routes.history import router as history_router
from stocktake.routes.roster import router as roster_router
from stocktake.routes.session import router as session_router
from stocktake.services.engine import build_engine
from stocktake.services.errors import (
    InvalidQuantity,
    ItemNotFound,
    NoActiveSession,
    StocktakeError,
    StorageError,
    ValidationError,
)

logger = logging.getLogger(__name__)

_STATUS_CODES: dict[type[StocktakeError], int] = {
    ValidationError: 400,
    InvalidQuantity: 400,
    ItemNotFound: 404,
    NoActiveSession: 409,
    StorageError: 500,
}


async def _stocktake_error_handler(request: Request, exc: StocktakeError) -> JSONResponse:
    status_code = _STATUS_CODES.get(type(exc), 400)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    body: dict = {"detail": exc.message}
    if isinstance(exc, ValidationError):
        body["errors"] = exc.errors
    return JSONResponse(status_code=status_code, content=body)


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()

    application = FastAPI(
        title="Stocktake Counting API",
        version=APP_VERSION,
        description="Import an inventory roster, count it item by item, and export the results.",
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.state.settings = settings
    application.state.engine = build_engine(settings)
    application.add_exception_handler(StocktakeError, _stocktake_error_handler)

    application.include_router(roster_router)
    application.include_router(session_router)
    application.include_router(history_router)
    application.include_router(export_router)
    application.include_router(dashboard_router)

    return application


app = create_app()


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run("stocktake.main:app", host="127.0.0.1", port=8000)
