"""Shared pytest fixtures: an isolated engine on a temp dir with a steppable clock."""
from datetime import datetime, timedelta, timezone

import pytest

from stocktake.services.engine import StocktakeEngine
from stocktake.services.storage_service import JsonDocumentStore

ROSTER_A = "sku,description,quantity\nA1,Widget,5\nA2,Gadget,3\n"


class FakeClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class RecordingAuditSink:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict]] = []

    def notify(self, event: str, details: dict) -> None:
        self.events.append((event, details))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def audit() -> RecordingAuditSink:
    return RecordingAuditSink()


@pytest.fixture
def store(tmp_path) -> JsonDocumentStore:
    return JsonDocumentStore(tmp_path / "data", max_document_bytes=1024 * 1024)


@pytest.fixture
def engine(store, clock, audit) -> StocktakeEngine:
    return StocktakeEngine(store, history_limit=50, audit=audit, clock=clock)
