import datetime
import logging

from dateutil import tz
from dateutil.parser import parse as dateutil_parse
from dateutil.relativedelta import relativedelta
from google.auth.exceptions import RefreshError, TransportError
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from config import (
    CALENDAR_ID,
    CLEANUP_LOOKAHEAD_MONTHS,
    CLEANUP_LOOKBACK_DAYS,
    GOOGLE_CLIENT_ID,
    GOOGLE_CLIENT_SECRET,
    SCOPES,
    TOKEN_URI,
    free_slot_window,
)
from errors import CredentialsRequired, ProviderError, ProviderPermissionError
from time_utils import parse_date

logger = logging.getLogger(__name__)


def build_credentials(user):
    """Google credentials from the tokens stored on the signed-in user"""
    if not user.get("accessToken") or not user.get("refreshToken"):
        raise CredentialsRequired()
    return Credentials(
        token=user["accessToken"],
        refresh_token=user["refreshToken"],
        token_uri=TOKEN_URI,
        client_id=GOOGLE_CLIENT_ID,
        client_secret=GOOGLE_CLIENT_SECRET,
        scopes=SCOPES,
    )


def get_calendar_store(user):
    """Calendar store acting on behalf of the signed-in user"""
    service = build("calendar", "v3", credentials=build_credentials(user), cache_discovery=False)
    return GoogleCalendarStore(service)


def fetch_user_profile(credentials):
    """Fetch the Google profile for freshly issued OAuth credentials"""
    service = build("oauth2", "v2", credentials=credentials, cache_discovery=False)
    return service.userinfo().get().execute()


def is_permission_error(error):
    status = getattr(getattr(error, "resp", None), "status", None)
    if status in (401, 403):
        return True
    return "insufficient" in str(error).lower()


def translate_http_error(error, action):
    """Map a Google API error to ProviderPermissionError or ProviderError"""
    if is_permission_error(error):
        return ProviderPermissionError()
    return ProviderError(f"Failed to {action}: {error}")


class GoogleCalendarStore:
    """List/insert/patch/delete against one Google calendar.

    Every failure of a calendar call leaves this class as a ProviderError,
    expired refresh tokens and dropped connections included, so callers
    never depend on the Google client library.
    """

    def __init__(self, service, calendar_id=CALENDAR_ID):
        self.service = service
        self.calendar_id = calendar_id

    def _execute(self, request, action, target):
        try:
            return request.execute()
        except HttpError as e:
            logger.error(f"Error trying to {action} {target}: {e}")
            raise translate_http_error(e, action)
        except RefreshError as e:
            logger.critical(f"Authentication expired/revoked while trying to {action} {target}: {e}")
            raise ProviderPermissionError()
        except (TransportError, OSError) as e:
            logger.error(f"Connection failed while trying to {action} {target}: {e}")
            raise ProviderError(f"Failed to {action}: {e}")

    def list_events(self, time_min, time_max, max_results=100, order_by=None):
        params = {
            "calendarId": self.calendar_id,
            "timeMin": time_min,
            "timeMax": time_max,
            "singleEvents": True,
            "maxResults": max_results,
        }
        if order_by:
            params["orderBy"] = order_by
        events_result = self._execute(self.service.events().list(**params), "list events",
                                      f"between {time_min} and {time_max}")
        return events_result.get("items", [])

    def insert_event(self, body, conference=False):
        request = self.service.events().insert(
            calendarId=self.calendar_id,
            body=body,
            conferenceDataVersion=1 if conference else 0,
        )
        return self._execute(request, "create event", f"'{body.get('summary')}'")

    def patch_event(self, event_id, body):
        request = self.service.events().patch(
            calendarId=self.calendar_id,
            eventId=event_id,
            body=body,
        )
        return self._execute(request, "update event", event_id)

    def delete_event(self, event_id):
        request = self.service.events().delete(calendarId=self.calendar_id, eventId=event_id)
        self._execute(request, "delete event", event_id)


def get_zone(time_zone):
    zone = tz.gettz(time_zone) if time_zone else None
    return zone or tz.UTC


def day_window(date_value, time_zone):
    """ISO bounds covering the whole calendar day in the given time zone"""
    day = parse_date(date_value)
    zone = get_zone(time_zone)
    time_min = datetime.datetime.combine(day, datetime.time(0, 0)).replace(tzinfo=zone)
    time_max = datetime.datetime.combine(day, datetime.time(23, 59, 59)).replace(tzinfo=zone)
    return time_min.isoformat(), time_max.isoformat()


def event_datetime(event_time, time_zone):
    """Concrete start/end of an event in time_zone, or None for all-day entries"""
    if not event_time or not event_time.get("dateTime"):
        return None
    dt = dateutil_parse(event_time["dateTime"])
    zone = get_zone(time_zone)
    if dt.tzinfo is None:
        # Naive values are wall-clock times in the event's own zone
        dt = dt.replace(tzinfo=get_zone(event_time.get("timeZone") or time_zone))
    return dt.astimezone(zone)


def cleanup_window(now=None):
    """Window scanned for duplicates: a week back and a month ahead"""
    now = now or datetime.datetime.now(tz.UTC)
    time_min = now - datetime.timedelta(days=CLEANUP_LOOKBACK_DAYS)
    time_max = now + relativedelta(months=CLEANUP_LOOKAHEAD_MONTHS)
    return time_min.isoformat(), time_max.isoformat()


def find_duplicate_events(events):
    """Every event after the first sharing the same title, start and end"""
    seen = {}
    duplicates = []
    for event in events:
        start = event.get("start", {}).get("dateTime")
        if not start or not event.get("summary"):
            continue
        key = (event["summary"], start, event.get("end", {}).get("dateTime"))
        if key in seen:
            duplicates.append({
                "id": event.get("id"),
                "summary": event["summary"],
                "start": event.get("start"),
                "end": event.get("end"),
                "originalId": seen[key].get("id"),
            })
        else:
            seen[key] = event
    return duplicates


def find_free_slots(events, date_value, duration_minutes, time_zone, window=free_slot_window):
    """Start times inside the working window that clash with no timed event"""
    day = parse_date(date_value)
    day_start = datetime.datetime.combine(day, datetime.time(0, 0)).replace(tzinfo=get_zone(time_zone))

    busy_intervals = []
    for event in events:
        ev_start = event_datetime(event.get("start"), time_zone)
        ev_end = event_datetime(event.get("end"), time_zone)
        if ev_start is None or ev_end is None:
            continue
        start = max((ev_start - day_start).total_seconds() // 60, 0)
        end = min((ev_end - day_start).total_seconds() // 60, 24 * 60)
        if end > start:
            busy_intervals.append((start, end))

    work_start = _clock_to_minutes(window["start"])
    work_end = _clock_to_minutes(window["end"])
    free_slots = []
    for slot_start in range(work_start, work_end, window["step_minutes"]):
        slot_end = slot_start + duration_minutes
        if slot_end > work_end:
            break
        if not any(not (slot_end <= busy_start or slot_start >= busy_end)
                   for busy_start, busy_end in busy_intervals):
            hours, minutes = divmod(slot_start, 60)
            free_slots.append({"start_time": f"{hours:02d}:{minutes:02d}"})
        if len(free_slots) >= window["max_suggestions"]:
            break
    return free_slots


def _clock_to_minutes(value):
    hours, minutes = map(int, value.split(":"))
    return hours * 60 + minutes
