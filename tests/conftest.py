"""
Pytest configuration and fixtures
"""
import pytest

from errors import ProviderError
from models import EventInstance


class FakeCalendarStore:
    """In-memory stand-in for GoogleCalendarStore that records every call in order"""

    def __init__(self, events=None, fail_insert_titles=(), fail_delete_ids=(),
                 insert_error=None, organizer="user@example.com"):
        self.events = list(events or [])
        self.fail_insert_titles = set(fail_insert_titles)
        self.fail_delete_ids = set(fail_delete_ids)
        self.insert_error = insert_error
        self.organizer = organizer
        self.calls = []
        self.inserted = []

    def list_events(self, time_min, time_max, max_results=100, order_by=None):
        self.calls.append(("list", time_min, time_max))
        return list(self.events)

    def insert_event(self, body, conference=False):
        self.calls.append(("insert", body["summary"]))
        if body["summary"] in self.fail_insert_titles:
            raise self.insert_error or ProviderError("Failed to create event: backend error")
        event = dict(body)
        event["id"] = f"created-{len(self.inserted) + 1}"
        event["organizer"] = {"email": self.organizer}
        event["htmlLink"] = f"https://calendar.google.com/event?eid={event['id']}"
        if conference:
            event["conferenceData"] = {
                **body.get("conferenceData", {}),
                "entryPoints": [{"entryPointType": "video", "uri": "https://meet.google.com/abc-defg-hij"}],
            }
        self.inserted.append(event)
        return event

    def patch_event(self, event_id, body):
        self.calls.append(("patch", event_id, body))
        return {"id": event_id, **body}

    def delete_event(self, event_id):
        self.calls.append(("delete", event_id))
        if event_id in self.fail_delete_ids:
            raise ProviderError(f"Failed to delete event: {event_id} not found")

    def call_names(self):
        return [call[0] for call in self.calls]


def existing_event(event_id, start, end, summary="Existing meeting"):
    """A timed Google Calendar event in Asia/Kolkata"""
    return {
        "id": event_id,
        "summary": summary,
        "start": {"dateTime": start, "timeZone": "Asia/Kolkata"},
        "end": {"dateTime": end, "timeZone": "Asia/Kolkata"},
    }


@pytest.fixture
def fake_store():
    return FakeCalendarStore()


@pytest.fixture
def make_instance():
    def _make(**overrides):
        fields = {
            "title": "Sync",
            "date": "2024-06-01",
            "start_hour": "10",
            "start_minute": "00",
            "start_am_pm": "AM",
            "end_hour": "11",
            "end_minute": "00",
            "end_am_pm": "AM",
            "time_zone": "Asia/Kolkata",
            "guests": [],
        }
        fields.update(overrides)
        return EventInstance(**fields)
    return _make
