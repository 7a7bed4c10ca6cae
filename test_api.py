"""HTTP surface, exercised through FastAPI's TestClient."""
import pytest
from fastapi.testclient import TestClient

from conftest import ROSTER_A
from stocktake.config import Settings
from stocktake.main import create_app


@pytest.fixture
def client(tmp_path) -> TestClient:
    settings = Settings(data_dir=str(tmp_path / "data"), max_upload_bytes=4096)
    return TestClient(create_app(settings))


def _upload(client, content=ROSTER_A, filename="roster.csv", path="/api/roster"):
    return client.post(path, files={"file": (filename, content.encode("utf-8"), "text/csv")})


def test_full_counting_flow(client):
    resp = _upload(client)
    assert resp.status_code == 200
    body = resp.json()
    assert body["processed"] == 2
    assert body["skipped"] == 0
    assert body["session"]["countProgress"]["total"] == 2

    resp = client.post("/api/session/count", json={"identifier": "a1", "quantity": 5})
    assert resp.status_code == 200
    assert resp.json()["counted"] == 1
    assert resp.json()["percentage"] == 50
    assert resp.json()["item"]["countedQuantity"] == 5

    stats = client.get("/api/session/statistics").json()
    assert stats["remaining"] == 1

    resp = client.post("/api/session/complete")
    assert resp.status_code == 200
    assert resp.json()["status"] == "completed"

    assert client.get("/api/session").status_code == 409
    history = client.get("/api/history").json()
    assert history["limit"] == 50
    assert len(history["sessions"]) == 1
    assert client.get("/api/history/last-completed").json()["id"] == resp.json()["id"]

    dashboard = client.get("/api/dashboard").json()
    assert dashboard["active"] is False
    assert dashboard["total_sessions_completed"] == 1


def test_duplicate_upload_lists_rows(client):
    resp = _upload(client, "sku\nA1\nA1\n")
    assert resp.status_code == 400
    assert resp.json()["errors"] == ["Row 2: A1", "Row 3: A1"]
    assert client.get("/api/session").status_code == 409


def test_upload_rejects_bad_extension_and_size(client):
    assert _upload(client, filename="roster.xlsx").status_code == 400
    assert _upload(client, "sku\n" + "A" * 5000 + "\n").status_code == 413


def test_preview_does_not_create_a_session(client):
    resp = _upload(client, "sku,qty\nA1,1\n,2\n", path="/api/roster/preview")
    assert resp.status_code == 200
    body = resp.json()
    assert body["valid_rows"] == 1
    assert body["skipped_row_numbers"] == [3]
    assert client.get("/api/session").status_code == 409


def test_count_errors(client):
    assert client.post("/api/session/count", json={"identifier": "A1", "quantity": 1}).status_code == 409

    _upload(client)
    resp = client.post("/api/session/count", json={"identifier": "ZZZ", "quantity": 1})
    assert resp.status_code == 404
    resp = client.post("/api/session/count", json={"identifier": "A1", "quantity": "-3"})
    assert resp.status_code == 400
    assert "Invalid quantity" in resp.json()["detail"]

    for quantity in (2.5, None):
        resp = client.post("/api/session/count", json={"identifier": "A1", "quantity": quantity})
        assert resp.status_code == 400
        assert "whole number" in resp.json()["detail"]
    assert client.get("/api/session").json()["countProgress"]["counted"] == 0


def test_search_lookup_and_patch(client):
    _upload(client, "sku,description\n" + "".join(f"P{i},Part {i}\n" for i in range(15)))

    resp = client.get("/api/session/search", params={"term": "part"})
    assert resp.json()["total_matches"] == 15
    assert len(resp.json()["items"]) == 10

    resp = client.get("/api/session/search", params={"term": "p1", "include_descriptions": False, "limit": 3})
    assert [i["primaryIdentifier"] for i in resp.json()["items"]] == ["P1", "P10", "P11"]

    assert client.get("/api/session/items/p3").json()["primaryIdentifier"] == "P3"
    assert client.get("/api/session/items/nope").status_code == 404

    resp = client.patch("/api/session", json={"filename": "renamed.csv"})
    assert resp.json()["uploadMetadata"]["filename"] == "renamed.csv"


def test_cancel_and_cleanup(client):
    _upload(client)
    assert client.post("/api/session/cancel").json()["status"] == "cancelled"
    assert client.get("/api/history").json()["sessions"] == []
    assert client.post("/api/session/cancel").status_code == 409

    resp = client.post("/api/history/cleanup", params={"days": 30})
    assert resp.json() == {"removed": 0, "days": 30}


def test_exports(client):
    _upload(client, filename="march.csv")
    client.post("/api/session/count", json={"identifier": "A2", "quantity": "4"})

    resp = client.get("/api/export/session.csv")
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/csv")
    assert "inventory_count_march_" in resp.headers["content-disposition"]
    assert resp.text.splitlines()[0].startswith('"sku","barcode","alternate_id"')

    done = client.post("/api/session/complete").json()
    resp = client.post("/api/export/sessions.csv", json={"session_ids": [done["id"]]})
    assert resp.status_code == 200
    assert resp.text.count("\n") == 3

    backup = client.get("/api/export/backup").json()
    assert backup["activeSession"] is None
    assert backup["appState"]["totalSessionsCompleted"] == 1

    assert client.get("/api/export/session.csv").status_code == 409
    assert client.get("/api/export/session.csv", params={"session_id": "nope"}).status_code == 404


def test_preferences_and_reset(client):
    prefs = client.get("/api/preferences").json()
    assert prefs["countingPreferences"]["showDescriptions"] is True

    resp = client.patch("/api/preferences", json={"countingPreferences": {"showDescriptions": False}})
    assert resp.json()["countingPreferences"]["showDescriptions"] is False

    _upload(client)
    assert client.post("/api/reset").json() == {"status": "reset"}
    assert client.get("/api/session").status_code == 409
    assert client.get("/api/preferences").json()["countingPreferences"]["showDescriptions"] is True
