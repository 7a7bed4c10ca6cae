from fastapi import Request

from stocktake.config import Settings
from stocktake.services.engine import StocktakeEngine


def get_engine(request: Request) -> StocktakeEngine:
    return request.app.state.engine


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings
