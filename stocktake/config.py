import os
import tempfile
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", env_prefix="STOCKTAKE_",
    )

    # ── Persistence ─────────────────────────────────────────────────────
    data_dir: str = os.path.join(tempfile.gettempdir(), "stocktake")
    # Largest serialized document the store will write (bytes).
    max_document_bytes: int = 5 * 1024 * 1024

    # ── History ─────────────────────────────────────────────────────────
    history_limit: int = 50
    history_retention_days: int = 30

    # ── Roster upload ───────────────────────────────────────────────────
    max_upload_bytes: int = 10 * 1024 * 1024

    # ── Counting ────────────────────────────────────────────────────────
    search_result_limit: int = 10

    # ── Audit ───────────────────────────────────────────────────────────
    # Empty = log-only audit sink.
    audit_log_path: str = ""


@lru_cache
def get_settings() -> Settings:
    return Settings()
