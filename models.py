"""
Value types passed between the parser, expander, detector and committer.

The JSON form uses the camelCase keys the chat UI already speaks
(startHour, startAmPm, addMeet, ...), because proposed instances and
conflicts are echoed back by the client on the resolve-conflict call.
"""
from dataclasses import dataclass, field
from typing import List, Optional

from config import DEFAULT_TIME_ZONE
from errors import ValidationFailure
from time_utils import check_clock_parts, check_time_zone, parse_date

PATTERNS = ("single", "back-to-back", "sequential", "parallel")


def normalize_clock_field(value):
    """Zero-pad hour/minute values ("9" -> "09"); None and blanks stay None."""
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    if text.isdigit():
        return f"{int(text):02d}"
    return text


def normalize_am_pm(value):
    if not value:
        return None
    text = str(value).strip().upper().replace(".", "")
    return text if text in ("AM", "PM") else None


@dataclass
class EventRequest:
    """One event as understood from the user's text, before expansion."""
    title: str
    date: Optional[str]
    start_hour: Optional[str]
    start_minute: Optional[str]
    start_am_pm: Optional[str]
    end_hour: Optional[str] = None
    end_minute: Optional[str] = None
    end_am_pm: Optional[str] = None
    time_zone: str = DEFAULT_TIME_ZONE
    add_meet: bool = False
    guests: List[str] = field(default_factory=list)
    pattern: str = "single"
    buffer_minutes: Optional[int] = None
    per_guest: bool = False
    occurrences: Optional[int] = None

    @property
    def has_start_time(self):
        return bool(self.date and self.start_hour and self.start_minute and self.start_am_pm)

    @property
    def has_end_time(self):
        return bool(self.end_hour and self.end_minute and self.end_am_pm)

    def to_dict(self):
        return {
            "title": self.title,
            "date": self.date,
            "startHour": self.start_hour,
            "startMinute": self.start_minute,
            "startAmPm": self.start_am_pm,
            "endHour": self.end_hour,
            "endMinute": self.end_minute,
            "endAmPm": self.end_am_pm,
            "timeZone": self.time_zone,
            "addMeet": self.add_meet,
            "guests": list(self.guests),
            "pattern": self.pattern,
            "bufferMinutes": self.buffer_minutes,
            "perGuest": self.per_guest,
            "occurrences": self.occurrences,
        }


@dataclass
class EventInstance:
    """A concrete, time-bound event ready to be checked and committed."""
    title: str
    date: str
    start_hour: str
    start_minute: str
    start_am_pm: str
    end_hour: Optional[str] = None
    end_minute: Optional[str] = None
    end_am_pm: Optional[str] = None
    end_date: Optional[str] = None
    time_zone: str = DEFAULT_TIME_ZONE
    add_meet: bool = False
    guests: List[str] = field(default_factory=list)

    @property
    def has_end_time(self):
        return bool(self.end_hour and self.end_minute and self.end_am_pm)

    def to_dict(self):
        return {
            "title": self.title,
            "date": self.date,
            "startHour": self.start_hour,
            "startMinute": self.start_minute,
            "startAmPm": self.start_am_pm,
            "endHour": self.end_hour,
            "endMinute": self.end_minute,
            "endAmPm": self.end_am_pm,
            "endDate": self.end_date,
            "timeZone": self.time_zone,
            "addMeet": self.add_meet,
            "guests": list(self.guests),
        }

    @classmethod
    def from_dict(cls, data, default_time_zone=DEFAULT_TIME_ZONE):
        """Rebuild an instance echoed back by the client."""
        if not isinstance(data, dict):
            raise ValidationFailure("Each instance must be an object")
        title = data.get("title")
        guests = data.get("guests")
        if title is not None and not isinstance(title, str):
            raise ValidationFailure("Instance title must be a string")
        if guests is not None and not (isinstance(guests, list) and all(isinstance(g, str) for g in guests)):
            raise ValidationFailure("Instance guests must be a list of email addresses")

        instance = cls(
            title=(title or "").strip() or "Untitled Meeting",
            date=data.get("date"),
            start_hour=normalize_clock_field(data.get("startHour")),
            start_minute=normalize_clock_field(data.get("startMinute")),
            start_am_pm=normalize_am_pm(data.get("startAmPm")),
            end_hour=normalize_clock_field(data.get("endHour")),
            end_minute=normalize_clock_field(data.get("endMinute")),
            end_am_pm=normalize_am_pm(data.get("endAmPm")),
            end_date=data.get("endDate") or None,
            time_zone=data.get("timeZone") or default_time_zone,
            add_meet=bool(data.get("addMeet")),
            guests=[g.strip() for g in guests or [] if g.strip()],
        )
        if not (instance.date and instance.start_hour and instance.start_minute and instance.start_am_pm):
            raise ValidationFailure("Instance missing date or start time")
        try:
            parse_date(instance.date)
            if instance.end_date:
                parse_date(instance.end_date)
            check_clock_parts(instance.start_hour, instance.start_minute, instance.start_am_pm)
            if instance.has_end_time:
                check_clock_parts(instance.end_hour, instance.end_minute, instance.end_am_pm)
        except (TypeError, ValueError):
            raise ValidationFailure(f"Invalid date or time on instance '{instance.title}'")
        try:
            check_time_zone(instance.time_zone)
        except ValueError:
            raise ValidationFailure(f"Unknown time zone on instance '{instance.title}': {instance.time_zone}")
        return instance

    def describe(self):
        start = f"{self.start_hour}:{self.start_minute} {self.start_am_pm}"
        return f"{self.title} on {self.date} {start}"


@dataclass
class CommitResult:
    """Outcome of one commit pass, one entry per instance in order."""
    created: list = field(default_factory=list)
    requested: int = 0

    @property
    def auto_set_count(self):
        return sum(1 for entry in self.created if entry.get("durationAutoSet"))

    @property
    def failed_count(self):
        return sum(1 for entry in self.created if entry.get("success") is False)

    @property
    def reauth(self):
        return any(entry.get("reauth") for entry in self.created)

    @property
    def message(self):
        if self.auto_set_count:
            return (f"Note: {self.auto_set_count} event(s) had no duration specified, "
                    f"so they were set to 1 hour by default.")
        return ""

    def to_dict(self):
        payload = {
            "success": True,
            "created": self.created,
            "requested": self.requested,
            "failed": self.failed_count,
            "message": self.message,
        }
        if self.reauth:
            payload["reauth"] = True
        return payload


@dataclass
class Conflict:
    """A proposed instance (by index) overlapping an existing calendar event."""
    instance_idx: int
    instance: EventInstance
    conflicting_event: dict
    # (hour, minute, am_pm) the instance was checked with when it had no end time
    checked_end: Optional[tuple] = None

    @property
    def event_id(self):
        return self.conflicting_event.get("id")

    def to_dict(self):
        inst = self.instance
        if inst.has_end_time:
            end = f"{inst.end_hour}:{inst.end_minute} {inst.end_am_pm}"
        elif self.checked_end:
            end = "{}:{} {}".format(*self.checked_end)
        else:
            end = None
        return {
            "instanceIdx": self.instance_idx,
            "proposedEvent": {
                "title": inst.title,
                "date": inst.date,
                "start": f"{inst.start_hour}:{inst.start_minute} {inst.start_am_pm}",
                "end": end,
                "guests": list(inst.guests),
            },
            "conflictingEvent": {
                "id": self.conflicting_event.get("id"),
                "title": self.conflicting_event.get("summary", self.conflicting_event.get("title")),
                "start": self.conflicting_event.get("start"),
                "end": self.conflicting_event.get("end"),
                "attendees": self.conflicting_event.get("attendees"),
            },
        }

    @classmethod
    def from_dict(cls, data, instances):
        """Rebuild a conflict echoed back by the client against its instance list."""
        if not isinstance(data, dict):
            raise ValidationFailure("Each conflict must be an object")
        idx = data.get("instanceIdx")
        if not isinstance(idx, int) or not 0 <= idx < len(instances):
            raise ValidationFailure(f"Conflict refers to unknown instance index: {idx}")
        event = data.get("conflictingEvent")
        if not isinstance(event, dict):
            raise ValidationFailure("Conflict must carry the existing event as an object")
        if not isinstance(event.get("id"), str) or not event["id"]:
            raise ValidationFailure("Conflict is missing the existing event id")
        return cls(instance_idx=idx, instance=instances[idx], conflicting_event=dict(event))
