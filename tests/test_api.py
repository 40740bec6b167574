"""Tests for the HTTP surface."""
import pytest
from fastapi.testclient import TestClient

from gym_tracker_sync.main import create_app
from gym_tracker_sync.services.supabase_storage import SESSIONS_TABLE
from gym_tracker_sync.sync.lifecycle_sync import LifecycleSync


@pytest.fixture
def lifecycle(store, remote):
    # Long delay so the debounce never fires during a request
    return LifecycleSync(store, remote, delay_seconds=60)


@pytest.fixture
def client(store, lifecycle):
    with TestClient(create_app(store, lifecycle, sync_on_startup=False)) as test_client:
        yield test_client


def _log_bench(client, weight=100, reps=5):
    assert client.post("/workout/current/entries", json={"exercise_id": "bench-press"}).status_code == 201
    assert client.patch("/workout/current/entries/0/sets/0", json={"weight": weight, "reps": reps}).status_code == 200
    assert client.post("/workout/current/save").status_code == 200


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"ok": True, "state": "ready"}


class TestExerciseEndpoints:

    def test_list_and_filter(self, client):
        response = client.get("/exercises", params={"search": "curl", "muscle_group": "Arms"})
        assert response.status_code == 200
        assert [e["id"] for e in response.json()] == ["bicep-curls", "hammer-curls"]

    def test_create_custom(self, client):
        response = client.post("/exercises", json={"name": "Sled Push", "muscle_group": "Legs"})
        assert response.status_code == 201
        body = response.json()
        assert body["name"] == "Sled Push"
        assert body["is_custom"] is True

    def test_create_custom_requires_fields(self, client):
        response = client.post("/exercises", json={"name": " ", "muscle_group": "Legs"})
        assert response.status_code == 400


class TestDraftEndpoints:

    def test_add_entry(self, client):
        response = client.post("/workout/current/entries", json={"exercise_id": "squat"})
        assert response.status_code == 201
        entries = response.json()["entries"]
        assert entries[0]["exercise_id"] == "squat"
        assert entries[0]["sets"] == [{"weight": 0.0, "reps": 0, "custom_values": {}}]

    def test_add_unknown_entry(self, client):
        response = client.post("/workout/current/entries", json={"exercise_id": "nope"})
        assert response.status_code == 404

    def test_set_date(self, client):
        response = client.put("/workout/current/date", json={"date": "2024-02-28"})
        assert response.json()["date"] == "2024-02-28"

    def test_set_lifecycle(self, client):
        client.post("/workout/current/entries", json={"exercise_id": "squat"})
        client.patch("/workout/current/entries/0/sets/0", json={"weight": 100, "reps": 5})

        response = client.post("/workout/current/entries/0/sets/0/duplicate")
        assert response.status_code == 201
        assert [s["weight"] for s in response.json()["entries"][0]["sets"]] == [100, 100]

        response = client.post("/workout/current/entries/0/sets")
        assert len(response.json()["entries"][0]["sets"]) == 3

        response = client.delete("/workout/current/entries/0/sets/2")
        assert len(response.json()["entries"][0]["sets"]) == 2

    def test_update_set_validation(self, client):
        client.post("/workout/current/entries", json={"exercise_id": "squat"})
        assert client.patch("/workout/current/entries/0/sets/0", json={"weight": -5}).status_code == 400
        assert client.patch("/workout/current/entries/0/sets/4", json={"weight": 5}).status_code == 404
        assert client.patch("/workout/current/entries/3/sets/0", json={"weight": 5}).status_code == 404

    def test_update_entry(self, client):
        client.post("/workout/current/entries", json={"exercise_id": "squat"})
        response = client.patch(
            "/workout/current/entries/0",
            json={"sets": [{"weight": 120, "reps": 3}], "custom_trackers": {"Belt": "yes"}},
        )
        assert response.status_code == 200
        entry = response.json()["entries"][0]
        assert entry["sets"][0]["weight"] == 120
        assert entry["custom_trackers"] == {"Belt": "yes"}

        assert client.patch("/workout/current/entries/0", json={}).status_code == 400

    def test_remove_entry_and_clear(self, client):
        client.post("/workout/current/entries", json={"exercise_id": "squat"})
        client.post("/workout/current/entries", json={"exercise_id": "deadlift"})

        response = client.delete("/workout/current/entries/0")
        assert [e["exercise_id"] for e in response.json()["entries"]] == ["deadlift"]
        assert client.delete("/workout/current/entries/5").status_code == 404

        response = client.delete("/workout/current")
        assert response.json()["entries"] == []

    def test_save_empty_draft_is_rejected(self, client):
        response = client.post("/workout/current/save")
        assert response.status_code == 400


class TestHistoryEndpoints:

    def test_save_and_list(self, client):
        _log_bench(client)
        sessions = client.get("/sessions").json()
        assert len(sessions) == 1
        assert sessions[0]["date"] == "2024-03-01"
        assert client.get("/workout/current").json()["entries"] == []

    def test_stats_and_delete(self, client, store):
        _log_bench(client, weight=100, reps=5)
        session_id = client.get("/sessions").json()[0]["id"]

        stats = client.get(f"/sessions/{session_id}/stats").json()
        assert stats == {"total_sets": 1, "total_reps": 5, "total_volume": 500.0}

        assert client.delete(f"/sessions/{session_id}").status_code == 200
        assert client.get("/sessions").json() == []
        assert store.pending_deletions == [session_id]
        assert client.delete(f"/sessions/{session_id}").status_code == 404
        assert client.get(f"/sessions/{session_id}/stats").status_code == 404


class TestTrackerAndProgressEndpoints:

    def test_trackers(self, client):
        response = client.post("/trackers", json={"name": "RPE"})
        assert response.json() == {"added": True, "trackers": [{"name": "RPE", "unit": ""}]}
        response = client.post("/trackers", json={"name": "RPE", "unit": "pts"})
        assert response.json()["added"] is False
        assert client.get("/trackers").json() == [{"name": "RPE", "unit": ""}]

    def test_progress(self, client):
        client.put("/workout/current/date", json={"date": "2024-01-01"})
        _log_bench(client, weight=100)
        client.put("/workout/current/date", json={"date": "2024-01-08"})
        _log_bench(client, weight=120)

        response = client.get(
            "/progress", params={"type": "exercise", "value": "bench-press", "metric": "max_weight"}
        )
        body = response.json()
        assert body["filter"] == {"type": "exercise", "value": "bench-press"}
        assert [p["max_weight"] for p in body["data"]] == [100, 120]
        assert body["summary"]["current"] == 120
        assert body["summary"]["improvement"] == pytest.approx(20.0)

    def test_progress_without_filter(self, client):
        body = client.get("/progress").json()
        assert body == {"filter": None, "data": [], "summary": None}

    def test_muscle_groups(self, client):
        _log_bench(client)
        [point] = client.get("/progress/muscle-groups").json()
        assert point["volumes"]["Chest"] == 500


class TestSyncEndpoints:

    def test_status(self, client):
        body = client.get("/sync/status").json()
        assert body["label"] == "Offline"
        assert body["is_syncing"] is False
        assert body["status"]["pending_changes"] == 0

    def test_manual_sync(self, client, fake_supabase):
        _log_bench(client)
        response = client.post("/sync")
        assert response.status_code == 200
        assert response.json()["status"]["is_online"] is True
        assert len(fake_supabase.rows(SESSIONS_TABLE)) == 1

    def test_manual_sync_failure(self, client, fake_supabase):
        fake_supabase.fail_when = lambda table, op, payload: Exception("permission denied")
        response = client.post("/sync")
        assert response.status_code == 502
        assert client.get("/sync/status").json()["label"] == "Sync Error"

    def test_page_hide(self, client, fake_supabase):
        assert client.post("/lifecycle/page-hide").json() == {"synced": True}
        fake_supabase.fail_when = lambda table, op, payload: Exception("permission denied")
        assert client.post("/lifecycle/page-hide").json() == {"synced": False}

    def test_unload(self, client, fake_supabase):
        fake_supabase.fail_when = lambda table, op, payload: Exception("permission denied")
        assert client.post("/lifecycle/unload", json={}).json() == {"allow_navigation": False}
        response = client.post("/lifecycle/unload", json={"leave_if_unsynced": True})
        assert response.json() == {"allow_navigation": True}
