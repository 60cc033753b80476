"""
12-hour clock arithmetic shared by the expander, the conflict detector and
the committer.

Times travel through the pipeline as zero-padded string parts
("09", "30", "AM") next to an ISO date string ("2024-06-01"), which is the
shape the translator produces and the client echoes back.
"""
import datetime

from dateutil import tz

from config import MINUTES_PER_DAY

DATE_FORMAT = "%Y-%m-%d"


def _normalize_am_pm(am_pm):
    return (am_pm or "").strip().upper()


def check_clock_parts(hour, minute, am_pm):
    """Raise ValueError unless the parts form a valid 12-hour time."""
    h = int(hour)
    m = int(minute)
    if not 1 <= h <= 12 or not 0 <= m <= 59 or _normalize_am_pm(am_pm) not in ("AM", "PM"):
        raise ValueError(f"Invalid 12-hour time: {hour}:{minute} {am_pm}")


def to_24_hour(hour, minute, am_pm):
    """Convert 12-hour parts to an "HH:MM" string (12 AM -> 00, 12 PM -> 12)."""
    h = int(hour)
    m = int(minute or 0)
    am_pm = _normalize_am_pm(am_pm)
    if am_pm == "PM" and h != 12:
        h += 12
    if am_pm == "AM" and h == 12:
        h = 0
    return f"{h:02d}:{m:02d}"


def to_minutes_since_midnight(hour, minute, am_pm):
    """Minutes since midnight, in [0, 1439] for valid 12-hour parts."""
    h = int(hour or 0)
    m = int(minute or 0)
    am_pm = _normalize_am_pm(am_pm)
    if am_pm == "PM" and h != 12:
        h += 12
    if am_pm == "AM" and h == 12:
        h = 0
    return h * 60 + m


def minutes_to_clock_parts(total_minutes):
    """Turn a minute offset into ("HH", "MM", "AM"/"PM"), wrapping modulo one day."""
    day_minutes = total_minutes % MINUTES_PER_DAY
    h, m = divmod(day_minutes, 60)
    am_pm = "PM" if h >= 12 else "AM"
    if h == 0:
        h = 12
    elif h > 12:
        h -= 12
    return f"{h:02d}", f"{m:02d}", am_pm


def parse_date(date_value):
    if isinstance(date_value, datetime.date):
        return date_value
    return datetime.datetime.strptime(date_value, DATE_FORMAT).date()


def add_days(date_value, days):
    return (parse_date(date_value) + datetime.timedelta(days=days)).strftime(DATE_FORMAT)


def add_minutes(date_value, hour, minute, am_pm, delta_minutes):
    """Shift a date plus 12-hour time by delta_minutes, rolling the date over midnight.

    Returns a (date, hour, minute, am_pm) tuple.
    """
    new_total = to_minutes_since_midnight(hour, minute, am_pm) + delta_minutes
    day_offset = new_total // MINUTES_PER_DAY
    new_hour, new_minute, new_am_pm = minutes_to_clock_parts(new_total)
    return add_days(date_value, day_offset), new_hour, new_minute, new_am_pm


def to_absolute_minutes(date_value, hour, minute, am_pm):
    """Minutes on a single timeline spanning days, used for range comparisons."""
    return parse_date(date_value).toordinal() * MINUTES_PER_DAY + to_minutes_since_midnight(hour, minute, am_pm)


def clock_parts_from_datetime(dt):
    """Split a datetime into (date, hour, minute, am_pm)."""
    hour, minute, am_pm = minutes_to_clock_parts(dt.hour * 60 + dt.minute)
    return dt.strftime(DATE_FORMAT), hour, minute, am_pm


def check_time_zone(time_zone):
    """Raise ValueError unless time_zone names a zone dateutil can load."""
    # gettz("") returns the server's local zone
    if not isinstance(time_zone, str) or not time_zone.strip() or tz.gettz(time_zone) is None:
        raise ValueError(f"Unknown time zone: {time_zone}")
