"""
Tests for the wire form of instances, conflicts and commit results
"""
import pytest

from errors import ValidationFailure
from models import CommitResult, Conflict, EventInstance


def wire_instance(**overrides):
    data = {
        "title": "Sync",
        "date": "2024-06-01",
        "startHour": "10",
        "startMinute": "00",
        "startAmPm": "AM",
        "endHour": "11",
        "endMinute": "00",
        "endAmPm": "AM",
        "endDate": None,
        "timeZone": "Asia/Kolkata",
        "addMeet": False,
        "guests": ["a@x.com"],
    }
    data.update(overrides)
    return data


class TestEventInstanceFromDict:
    def test_echoed_instance_is_rebuilt(self):
        instance = EventInstance.from_dict(wire_instance())
        assert instance.to_dict() == wire_instance()

    def test_missing_time_zone_uses_default(self):
        instance = EventInstance.from_dict(wire_instance(timeZone=None), default_time_zone="UTC")
        assert instance.time_zone == "UTC"

    @pytest.mark.parametrize("overrides", [
        {"date": None},
        {"startHour": None},
        {"startAmPm": "noon"},
        {"date": "tomorrow"},
        {"startHour": "25"},
        {"endMinute": "75"},
        {"title": 42},
        {"guests": "a@x.com"},
        {"guests": ["a@x.com", 7]},
        {"timeZone": "Mars/Olympus_Mons"},
        {"timeZone": 330},
    ])
    def test_invalid_instances(self, overrides):
        with pytest.raises(ValidationFailure):
            EventInstance.from_dict(wire_instance(**overrides))

    def test_not_an_object(self):
        with pytest.raises(ValidationFailure):
            EventInstance.from_dict("Sync at 10")

    def test_guest_list_is_kept_whole(self):
        instance = EventInstance.from_dict(wire_instance(guests=["a@x.com", " b@x.com ", ""]))
        assert instance.guests == ["a@x.com", "b@x.com"]

    def test_missing_title_and_guests(self):
        instance = EventInstance.from_dict(wire_instance(title=None, guests=None))
        assert instance.title == "Untitled Meeting"
        assert instance.guests == []


class TestConflictFromDict:
    def test_links_to_instance(self):
        instances = [EventInstance.from_dict(wire_instance())]
        conflict = Conflict.from_dict({"instanceIdx": 0, "conflictingEvent": {"id": "evt-1"}}, instances)
        assert conflict.instance is instances[0]
        assert conflict.event_id == "evt-1"

    @pytest.mark.parametrize("data", [
        {"instanceIdx": 1, "conflictingEvent": {"id": "evt-1"}},
        {"instanceIdx": "0", "conflictingEvent": {"id": "evt-1"}},
        {"instanceIdx": 0, "conflictingEvent": {}},
        {"instanceIdx": 0, "conflictingEvent": "evt-1"},
        {"instanceIdx": 0, "conflictingEvent": {"id": 5}},
        {"instanceIdx": 0},
        [],
    ])
    def test_rejected(self, data):
        instances = [EventInstance.from_dict(wire_instance())]
        with pytest.raises(ValidationFailure):
            Conflict.from_dict(data, instances)

    def test_wire_form(self):
        instance = EventInstance.from_dict(wire_instance())
        event = {"id": "evt-1", "summary": "Board", "start": {"dateTime": "x"}, "end": {"dateTime": "y"}}
        payload = Conflict(instance_idx=0, instance=instance, conflicting_event=event).to_dict()
        assert payload["proposedEvent"] == {
            "title": "Sync", "date": "2024-06-01", "start": "10:00 AM", "end": "11:00 AM", "guests": ["a@x.com"],
        }
        assert payload["conflictingEvent"]["title"] == "Board"


class TestCommitResult:
    def test_counts(self):
        result = CommitResult(requested=3, created=[
            {"success": True, "durationAutoSet": True},
            {"success": False, "error": "boom"},
            {"success": True, "durationAutoSet": True},
        ])
        payload = result.to_dict()
        assert payload["success"] is True
        assert payload["failed"] == 1
        assert payload["message"] == ("Note: 2 event(s) had no duration specified, "
                                      "so they were set to 1 hour by default.")
        assert "reauth" not in payload

    def test_no_message_without_defaults(self):
        assert CommitResult(requested=1, created=[{"success": True, "durationAutoSet": False}]).message == ""
