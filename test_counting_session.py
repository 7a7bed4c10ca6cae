"""Session lifecycle, counting, search, statistics and history."""
from datetime import timedelta

import pytest

from conftest import ROSTER_A
from stocktake.services.errors import (
    InvalidQuantity,
    ItemNotFound,
    NoActiveSession,
    StorageError,
    ValidationError,
)
from stocktake.services.statistics import compute_statistics, format_duration, percentage


def _progress(session):
    p = session.count_progress
    return {"total": p.total, "counted": p.counted, "percentage": p.percentage}


# ── end to end ────────────────────────────────────────────────────────────────

def test_import_count_recount_and_complete(engine, clock, audit):
    # import
    session = engine.import_roster(ROSTER_A, "roster.csv").session
    assert session.status == "active"
    assert _progress(session) == {"total": 2, "counted": 0, "percentage": 0}

    # case-insensitive count
    clock.advance(minutes=1)
    result = engine.counter.count_item("a1", 5)
    item = result.item
    assert item.primary_identifier == "A1"
    assert item.counted and item.counted_quantity == 5
    assert result.was_already_counted is False
    assert _progress(result.session) == {"total": 2, "counted": 1, "percentage": 50}

    # recount overwrites, never double counts
    result = engine.counter.count_item("A1", 7)
    assert result.was_already_counted is True
    assert result.session.count_progress.counted == 1
    assert result.item.counted_quantity == 7
    export = engine.exporter.export_session()
    assert export.results[0]["variance"] == 2

    # unknown identifier leaves the session unchanged
    before = engine.sessions.get_active()
    with pytest.raises(ItemNotFound):
        engine.counter.count_item("ZZZ", 1)
    assert engine.sessions.get_active() == before

    # complete
    engine.counter.count_item("A2", 3)
    completed_before = engine.sessions.app_state().total_sessions_completed
    completed = engine.sessions.complete_session()

    assert completed.status == "completed"
    assert engine.sessions.get_active() is None
    assert engine.history.all()[0].id == completed.id
    assert engine.history.all()[0].status == "completed"
    assert engine.sessions.app_state().total_sessions_completed == completed_before + 1
    assert [e for e, _ in audit.events] == ["import", "count", "count", "count", "complete"]


def test_duplicate_roster_creates_no_session(engine):
    with pytest.raises(ValidationError):
        engine.import_roster("sku,qty\nA1,1\nA1,2\n")
    assert engine.sessions.get_active() is None


def test_failed_import_keeps_existing_session(engine):
    original = engine.import_roster(ROSTER_A).session
    with pytest.raises(ValidationError):
        engine.import_roster("description\nno ids\n")
    assert engine.sessions.get_active().id == original.id


# ── session manager ──────────────────────────────────────────────────────────

def test_new_session_replaces_active_one(engine):
    first = engine.import_roster(ROSTER_A).session
    second = engine.import_roster("sku\nX\n").session
    assert engine.sessions.get_active().id == second.id != first.id
    assert engine.history.all() == []
    assert engine.sessions.app_state().last_active_session_id == second.id


def test_operations_without_active_session(engine):
    with pytest.raises(NoActiveSession):
        engine.counter.count_item("A1", 1)
    with pytest.raises(NoActiveSession):
        engine.sessions.complete_session()
    with pytest.raises(NoActiveSession):
        engine.sessions.cancel_session()
    with pytest.raises(NoActiveSession):
        engine.sessions.mutate_active({"items": []})


def test_mutate_active_refreshes_last_activity_and_progress(engine, clock):
    session = engine.import_roster(ROSTER_A).session
    clock.advance(seconds=30)
    items = [i.model_copy(update={"counted": True, "counted_quantity": 1}) for i in session.items]

    updated = engine.sessions.mutate_active({"items": items})

    assert updated.last_activity == session.last_activity + timedelta(seconds=30)
    assert updated.count_progress.counted == 2
    assert updated.count_progress.percentage == 100


def test_mutate_active_rejects_lifecycle_fields(engine):
    engine.import_roster(ROSTER_A)
    with pytest.raises(ValueError):
        engine.sessions.mutate_active({"status": "completed"})


def test_cancel_discards_without_archiving(engine, audit):
    engine.import_roster(ROSTER_A)
    cancelled = engine.sessions.cancel_session()

    assert cancelled.status == "cancelled"
    assert engine.sessions.get_active() is None
    assert engine.history.all() == []
    assert engine.sessions.app_state().total_sessions_completed == 0
    assert audit.events[-1][0] == "cancel"


def test_complete_records_time_spent(engine, clock):
    engine.import_roster(ROSTER_A)
    clock.advance(minutes=10)
    completed = engine.sessions.complete_session()
    assert completed.count_progress.time_spent == 10 * 60 * 1000
    assert completed.count_progress.end_time == clock.now


def test_complete_failure_keeps_session_active_and_unarchived(engine, store, audit, monkeypatch):
    engine.import_roster(ROSTER_A)
    engine.sessions.complete_session()
    active = engine.import_roster(ROSTER_A).session

    def failing_remove(name):
        raise StorageError(f"Could not remove '{name}': disk full")

    monkeypatch.setattr(store, "remove", failing_remove)
    with pytest.raises(StorageError):
        engine.sessions.complete_session()
    monkeypatch.undo()

    assert engine.sessions.get_active().id == active.id
    assert len(engine.history.all()) == 1
    assert engine.sessions.app_state().total_sessions_completed == 1
    assert audit.events[-1][0] == "import"

    engine.sessions.complete_session()
    assert [s.id for s in engine.history.all()].count(active.id) == 1


def test_state_survives_a_new_engine(engine, store, clock):
    from stocktake.services.engine import StocktakeEngine

    engine.import_roster(ROSTER_A)
    engine.counter.count_item("A1", 4)
    engine.sessions.complete_session()

    reopened = StocktakeEngine(store, clock=clock)
    assert reopened.sessions.app_state().total_sessions_completed == 1
    assert reopened.history.last_completed().items[0].counted_quantity == 4


# ── count resolver ───────────────────────────────────────────────────────────

@pytest.mark.parametrize("quantity", [-1, "abc", "1.5", 2.5, None, True, ""])
def test_invalid_quantities(engine, quantity):
    engine.import_roster(ROSTER_A)
    with pytest.raises(InvalidQuantity):
        engine.counter.count_item("A1", quantity)
    assert engine.sessions.get_active().count_progress.counted == 0


@pytest.mark.parametrize("quantity, expected", [(0, 0), ("12", 12), (" 4 ", 4), (3.0, 3)])
def test_valid_quantities(engine, quantity, expected):
    engine.import_roster(ROSTER_A)
    assert engine.counter.count_item("A1", quantity).item.counted_quantity == expected


def test_count_matches_alternate_identifier_and_trims(engine):
    engine.import_roster("sku,barcode\nSKU-1,111\nSKU-2,222\n")
    result = engine.counter.count_item("  sku-2 ", 9, notes="top shelf")
    assert result.item.primary_identifier == "222"
    assert result.item.notes == "top shelf"


def test_primary_matches_win_over_alternates(engine):
    # The first item's alternate (B2) is the second item's primary.
    engine.import_roster("sku,barcode\nB2,B1\nX,B2\n")
    result = engine.counter.count_item("B2", 1)
    assert result.item.primary_identifier == "B2"
    assert result.item.alternate_identifier == "X"


def test_audit_failure_does_not_roll_back(store, clock):
    from stocktake.services.engine import StocktakeEngine

    class BrokenSink:
        def notify(self, event, details):
            raise RuntimeError("sink down")

    engine = StocktakeEngine(store, audit=BrokenSink(), clock=clock)
    engine.import_roster(ROSTER_A)
    engine.counter.count_item("A1", 2)
    assert engine.sessions.get_active().count_progress.counted == 1


def test_confidence_goes_to_audit_only(engine, audit):
    engine.import_roster(ROSTER_A)
    engine.counter.count_item("A1", 1, confidence=0.87)
    assert audit.events[-1] == ("count", {
        "session_id": engine.sessions.get_active().id,
        "identifier": "A1",
        "quantity": 1,
        "recount": False,
        "confidence": 0.87,
    })


def test_lookup_does_not_count(engine):
    engine.import_roster(ROSTER_A)
    assert engine.counter.lookup("a2").primary_identifier == "A2"
    assert engine.counter.lookup("nope") is None
    assert engine.sessions.get_active().count_progress.counted == 0


def test_search_ordering(engine):
    engine.import_roster(
        "sku,description\n"
        "AB-10,Bracket\n"
        "AB-1,Bolt\n"
        "XY-2,AB-1 compatible nut\n"
        "AB-12,Bearing\n"
    )
    engine.counter.count_item("AB-10", 1)

    found = [i.primary_identifier for i in engine.counter.search("ab-1", include_descriptions=True)]
    # exact first, then uncounted in roster order, counted last
    assert found == ["AB-1", "XY-2", "AB-12", "AB-10"]

    found = [i.primary_identifier for i in engine.counter.search("ab-1", include_descriptions=False)]
    assert found == ["AB-1", "AB-12", "AB-10"]


def test_search_is_restartable_and_blank_term_matches_nothing(engine):
    engine.import_roster(ROSTER_A)
    assert engine.counter.search("a") == engine.counter.search("a")
    assert engine.counter.search("   ") == []


# ── statistics ───────────────────────────────────────────────────────────────

def test_statistics(engine, clock):
    engine.import_roster("sku\nA\nB\nC\nD\n")
    clock.advance(minutes=4)
    engine.counter.count_item("A", 1)
    engine.counter.count_item("B", 1)

    stats = compute_statistics(engine.sessions.get_active(), clock.now)
    assert stats.total == 4
    assert stats.counted == 2
    assert stats.remaining == 2
    assert stats.percentage == 50
    assert stats.time_spent == 240_000
    assert stats.avg_time_per_item == 120_000
    assert stats.estimated_remaining_time == 240_000


def test_statistics_with_nothing_counted(engine, clock):
    session = engine.import_roster(ROSTER_A).session
    stats = compute_statistics(session, clock.now)
    assert stats.avg_time_per_item == 0
    assert stats.estimated_remaining_time == 0


@pytest.mark.parametrize("counted, total, expected", [
    (0, 0, 0), (1, 3, 33), (2, 3, 67), (1, 2, 50), (1, 8, 13), (5, 5, 100),
])
def test_percentage(counted, total, expected):
    assert percentage(counted, total) == expected


@pytest.mark.parametrize("ms, label", [
    (42_000, "42s"), (192_000, "3m 12s"), (3_900_000, "1h 5m"), (0, "0s"),
])
def test_format_duration(ms, label):
    assert format_duration(ms) == label


# ── history ──────────────────────────────────────────────────────────────────

def test_history_is_bounded_and_most_recent_first(store, clock):
    from stocktake.services.engine import StocktakeEngine

    engine = StocktakeEngine(store, history_limit=3, clock=clock)
    ids = []
    for _ in range(5):
        engine.import_roster(ROSTER_A)
        ids.append(engine.sessions.complete_session().id)
        clock.advance(minutes=1)

    assert [s.id for s in engine.history.all()] == list(reversed(ids))[:3]
    assert engine.sessions.app_state().total_sessions_completed == 5


def test_last_completed_skips_other_statuses(engine):
    assert engine.history.last_completed() is None
    engine.import_roster(ROSTER_A)
    done = engine.sessions.complete_session()
    engine.history.append(done.model_copy(update={"id": "x", "status": "cancelled"}))
    assert engine.history.last_completed().id == done.id


def test_cleanup_older_than(engine, clock):
    engine.import_roster(ROSTER_A)
    old = engine.sessions.complete_session()
    clock.advance(days=40)
    engine.import_roster(ROSTER_A)
    recent = engine.sessions.complete_session()

    assert engine.history.cleanup_older_than(30, clock.now) == 1
    assert [s.id for s in engine.history.all()] == [recent.id]
    assert old.id not in [s.id for s in engine.history.all()]
    assert engine.history.cleanup_older_than(30, clock.now) == 0


# ── dashboard / preferences / reset ──────────────────────────────────────────

def test_dashboard_and_preferences(engine, clock):
    empty = engine.dashboard()
    assert empty["active"] is False
    assert empty["statistics"] is None

    engine.import_roster(ROSTER_A, "roster.csv")
    data = engine.dashboard()
    assert data["active"] is True
    assert data["filename"] == "roster.csv"
    assert data["statistics"].total == 2
    assert engine.preferences.get().last_upload_date == clock.now

    prefs = engine.preferences.update({"countingPreferences": {"enableVibration": False}})
    assert prefs.counting_preferences.enable_vibration is False
    assert prefs.counting_preferences.show_descriptions is True


def test_reset_all(engine, audit):
    engine.import_roster(ROSTER_A)
    engine.sessions.complete_session()
    engine.import_roster(ROSTER_A)

    engine.reset_all()

    assert engine.sessions.get_active() is None
    assert engine.history.all() == []
    assert engine.sessions.app_state().total_sessions_completed == 0
    assert audit.events[-1][0] == "reset"
