"""
Tests for the Flask endpoints, with the translator and calendar store patched out
"""
import json
from unittest.mock import MagicMock, Mock

import pytest
from google.auth.exceptions import RefreshError

import app as app_module
from calendar_utils import GoogleCalendarStore
from conftest import FakeCalendarStore, existing_event
from event_parser import GeminiTranslator
from prospects import ProspectStore

USER = {
    "id": "123",
    "name": "Test User",
    "email": "user@example.com",
    "picture": None,
    "accessToken": "access",
    "refreshToken": "refresh",
}

PARSED_EVENT = {
    "event": {
        "title": "Design review",
        "date": "2024-06-01",
        "startHour": "10",
        "startMinute": "00",
        "startAmPm": "AM",
        "endHour": "11",
        "endMinute": "00",
        "endAmPm": "AM",
        "timeZone": "Asia/Kolkata",
        "addMeet": False,
        "guests": ["a@x.com"],
    }
}


@pytest.fixture
def client(monkeypatch, tmp_path):
    app_module.app.config["TESTING"] = True
    monkeypatch.setattr(app_module, "prospect_store", ProspectStore(str(tmp_path / "prospects.json")))
    with app_module.app.test_client() as client:
        yield client


@pytest.fixture
def login(client):
    def _login(user=None):
        with client.session_transaction() as sess:
            sess["user"] = dict(user or USER)
    return _login


@pytest.fixture
def translator(monkeypatch):
    translator = Mock()
    translator.translate.return_value = json.dumps(PARSED_EVENT)
    monkeypatch.setattr(app_module, "translator", translator)
    return translator


@pytest.fixture
def store(monkeypatch):
    store = FakeCalendarStore()
    monkeypatch.setattr(app_module, "get_calendar_store", lambda user: store)
    return store


class TestAuth:
    def test_user_requires_login(self, client):
        response = client.get("/api/user")
        assert response.status_code == 401

    def test_user_hides_tokens(self, client, login):
        login()
        body = client.get("/api/user").get_json()
        assert body["user"]["email"] == "user@example.com"
        assert "accessToken" not in body["user"]

    def test_logout_clears_session(self, client, login):
        login()
        client.post("/api/logout")
        assert client.get("/api/user").status_code == 401

    def test_scheduling_requires_login(self, client, translator):
        response = client.post("/api/mcp/create", json={"prompt": "review tomorrow at 10"})
        assert response.status_code == 401
        assert response.get_json()["success"] is False
        translator.translate.assert_not_called()


class TestCreateFromPrompt:
    def test_creates_when_free(self, client, login, translator, store):
        login()

        response = client.post("/api/mcp/create", json={"prompt": "Design review at 10am with a@x.com"})

        body = response.get_json()
        assert response.status_code == 200
        assert body["success"] is True
        assert body["requested"] == 1
        assert body["created"][0]["summary"] == "Design review"
        assert store.call_names() == ["list", "insert"]

    def test_missing_prompt(self, client, login, translator, store):
        login()
        response = client.post("/api/mcp/create", json={"prompt": "   "})
        assert response.status_code == 400
        assert store.calls == []

    def test_conflicts_block_creation(self, client, login, translator, store):
        store.events = [existing_event("evt-1", "2024-06-01T10:30:00+05:30", "2024-06-01T11:30:00+05:30")]
        login()

        body = client.post("/api/mcp/create", json={"prompt": "Design review at 10am"}).get_json()

        assert body["success"] is False
        assert body["hasConflicts"] is True
        assert body["conflicts"][0]["conflictingEvent"]["id"] == "evt-1"
        assert [o["value"] for o in body["options"]] == ["overwrite", "postpone_existing", "reschedule_new"]
        assert body["instances"][0]["title"] == "Design review"
        assert body["prompt"] == "Design review at 10am"
        assert "insert" not in store.call_names()

    def test_conflict_round_trip_with_overwrite(self, client, login, translator, store):
        store.events = [existing_event("evt-1", "2024-06-01T10:30:00+05:30", "2024-06-01T11:30:00+05:30")]
        login()
        proposal = client.post("/api/mcp/create", json={"prompt": "Design review at 10am"}).get_json()

        response = client.post("/api/mcp/resolve-conflict", json={
            "action": "overwrite",
            "instances": proposal["instances"],
            "conflicts": proposal["conflicts"],
            "prompt": proposal["prompt"],
        })

        body = response.get_json()
        assert body["success"] is True
        assert body["resolved"] == 1
        assert store.call_names() == ["list", "delete", "insert"]
        assert store.inserted[0]["description"] == "Design review at 10am"

    def test_missing_tokens_ask_for_reauth(self, client, login, translator):
        login({"email": "user@example.com"})
        response = client.post("/api/mcp/create", json={"prompt": "Design review at 10am"})
        assert response.status_code == 403
        assert response.get_json()["reauth"] is True

    def test_translator_unavailable(self, client, login, store, monkeypatch):
        monkeypatch.setattr(app_module, "translator", GeminiTranslator(api_key=None))
        login()
        response = client.post("/api/mcp/create", json={"prompt": "Design review at 10am"})
        assert response.status_code == 503

    def test_unparseable_translation(self, client, login, translator, store):
        translator.translate.return_value = "I can only help with calendars."
        login()
        response = client.post("/api/mcp/create", json={"prompt": "what's the weather"})
        assert response.status_code == 400
        assert store.calls == []


class TestResolveConflict:
    def test_invalid_request(self, client, login, store):
        login()
        response = client.post("/api/mcp/resolve-conflict", json={"action": "overwrite"})
        assert response.status_code == 400

    def test_unknown_action(self, client, login, store):
        login()
        response = client.post("/api/mcp/resolve-conflict", json={
            "action": "ignore",
            "instances": [{"title": "x", "date": "2024-06-01", "startHour": "10", "startMinute": "00",
                           "startAmPm": "AM"}],
            "conflicts": [],
        })
        assert response.status_code == 400
        assert store.calls == []

    def test_guests_must_be_a_list(self, client, login, store):
        login()
        response = client.post("/api/mcp/resolve-conflict", json={
            "action": "overwrite",
            "instances": [{"title": "x", "date": "2024-06-01", "startHour": "10", "startMinute": "00",
                           "startAmPm": "AM", "guests": "a@x.com"}],
            "conflicts": [],
        })
        assert response.status_code == 400
        assert store.calls == []


def test_revoked_grant_asks_for_reauth(client, login, translator, monkeypatch):
    service = MagicMock()
    service.events.return_value.list.return_value.execute.side_effect = RefreshError("invalid_grant")
    monkeypatch.setattr(app_module, "get_calendar_store", lambda user: GoogleCalendarStore(service))
    login()

    response = client.post("/api/mcp/create", json={"prompt": "Design review at 10am"})

    assert response.status_code == 403
    assert response.get_json()["reauth"] is True
    service.events.return_value.insert.assert_not_called()


class TestCalendarEndpoints:
    def test_delete_event(self, client, login, store):
        login()
        response = client.delete("/api/mcp/event/evt-9")
        assert response.get_json()["success"] is True
        assert store.calls == [("delete", "evt-9")]

    def test_free_slots(self, client, login, store):
        store.events = [existing_event("a", "2024-06-01T09:00:00+05:30", "2024-06-01T10:00:00+05:30")]
        login()
        body = client.post("/api/mcp/free-slots", json={"date": "2024-06-01", "duration": 30}).get_json()
        assert body["slots"][0] == {"start_time": "10:00"}

    def test_free_slots_rejects_unknown_time_zone(self, client, login, store):
        login()
        response = client.post("/api/mcp/free-slots",
                               json={"date": "2024-06-01", "duration": 30, "timeZone": "Asia/Atlantis"})
        assert response.status_code == 400
        assert store.calls == []

    def test_free_slots_requires_duration(self, client, login, store):
        login()
        response = client.post("/api/mcp/free-slots", json={"date": "2024-06-01"})
        assert response.status_code == 400

    def test_cleanup_duplicates(self, client, login, store):
        login()
        body = client.post("/api/mcp/cleanup-duplicates").get_json()
        assert body["found"] == 0

    def test_create_event_rejects_backwards_range(self, client, login, store):
        login()
        response = client.post("/api/calendar/create-event", json={
            "title": "Lunch", "date": "2024-06-01", "startTime": "13:00", "endTime": "12:00",
        })
        assert response.status_code == 400
        assert store.calls == []

    def test_create_event(self, client, login, store):
        login()
        body = client.post("/api/calendar/create-event", json={
            "title": "Lunch", "date": "2024-06-01", "startTime": "12:00", "endTime": "13:00", "addMeet": True,
        }).get_json()
        assert body["event"]["start"] == "2024-06-01T12:00:00"
        assert body["event"]["meetLink"] == "https://meet.google.com/abc-defg-hij"

    def test_chat(self, client, login, translator):
        translator.chat.return_value = "Sure, how about Friday?"
        login()
        body = client.post("/api/llm/process", json={"prompt": "when should we meet?"}).get_json()
        assert body["response"] == "Sure, how about Friday?"


class TestProspects:
    def test_crud(self, client, login):
        login()
        created = client.post("/api/prospects", json={"name": "Ada"})
        assert created.status_code == 201
        prospect_id = created.get_json()["id"]

        assert client.get(f"/api/prospects/{prospect_id}").get_json()["name"] == "Ada"
        assert client.put(f"/api/prospects/{prospect_id}", json={"name": "Ada L."}).get_json()["name"] == "Ada L."
        assert len(client.get("/api/prospects").get_json()["data"]) == 1
        assert client.delete(f"/api/prospects/{prospect_id}").status_code == 200
        assert client.get(f"/api/prospects/{prospect_id}").status_code == 404

    def test_requires_login(self, client):
        assert client.get("/api/prospects").status_code == 401


def test_unknown_route(client):
    response = client.get("/api/nowhere")
    assert response.status_code == 404
    assert response.get_json()["message"] == "Route not found"
