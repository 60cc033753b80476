"""
Expansion of parsed event requests into concrete event instances.

A request becomes exactly one of:
  * one instance per guest, run back to back (pattern back-to-back/sequential with perGuest)
  * `occurrences` repeats of the same meeting
  * a single instance, copied verbatim
Consecutive instances are separated by the meeting duration plus the buffer.
The total across all requests is capped at MAX_INSTANCES.
"""
import logging

from config import DEFAULT_BUFFER_MINUTES, DEFAULT_DURATION_MINUTES, MAX_INSTANCES
from errors import ValidationFailure
from models import EventInstance
from time_utils import add_minutes, check_clock_parts, check_time_zone, parse_date, to_minutes_since_midnight

logger = logging.getLogger(__name__)

SEQUENTIAL_PATTERNS = ("back-to-back", "sequential")


def validate_requests(requests):
    """Reject the whole batch if any request lacks a usable date or start time."""
    if not requests:
        raise ValidationFailure("No event data parsed from prompt")
    for request in requests:
        if not request.has_start_time:
            raise ValidationFailure(f"Parsed event '{request.title}' is missing date or start time")
        try:
            parse_date(request.date)
        except (TypeError, ValueError):
            raise ValidationFailure(f"Parsed event '{request.title}' has an invalid date: {request.date}")
        try:
            check_clock_parts(request.start_hour, request.start_minute, request.start_am_pm)
            if request.has_end_time:
                check_clock_parts(request.end_hour, request.end_minute, request.end_am_pm)
        except ValueError:
            raise ValidationFailure(f"Parsed event '{request.title}' has an invalid time")
        try:
            check_time_zone(request.time_zone)
        except ValueError:
            raise ValidationFailure(f"Parsed event '{request.title}' has an unknown time zone: {request.time_zone}")


def request_duration(request):
    """Duration in minutes from the request's start/end, defaulting to an hour."""
    if request.has_end_time:
        start = to_minutes_since_midnight(request.start_hour, request.start_minute, request.start_am_pm)
        end = to_minutes_since_midnight(request.end_hour, request.end_minute, request.end_am_pm)
        if end - start > 0:
            return end - start
    return DEFAULT_DURATION_MINUTES


def _shifted_instance(request, offset, duration, guests):
    start_date, start_hour, start_minute, start_am_pm = add_minutes(
        request.date, request.start_hour, request.start_minute, request.start_am_pm, offset)
    end_date, end_hour, end_minute, end_am_pm = add_minutes(
        request.date, request.start_hour, request.start_minute, request.start_am_pm, offset + duration)
    return EventInstance(
        title=request.title,
        date=start_date,
        start_hour=start_hour,
        start_minute=start_minute,
        start_am_pm=start_am_pm,
        end_hour=end_hour,
        end_minute=end_minute,
        end_am_pm=end_am_pm,
        end_date=end_date,
        time_zone=request.time_zone,
        add_meet=request.add_meet,
        guests=list(guests),
    )


def _single_instance(request):
    return EventInstance(
        title=request.title,
        date=request.date,
        start_hour=request.start_hour,
        start_minute=request.start_minute,
        start_am_pm=request.start_am_pm,
        end_hour=request.end_hour if request.has_end_time else None,
        end_minute=request.end_minute if request.has_end_time else None,
        end_am_pm=request.end_am_pm if request.has_end_time else None,
        time_zone=request.time_zone,
        add_meet=request.add_meet,
        guests=list(request.guests),
    )


def expand_requests(requests, cap=MAX_INSTANCES):
    instances = []

    for request in requests:
        if len(instances) >= cap:
            logger.warning(f"Instance cap of {cap} reached, ignoring remaining requests")
            break

        duration = request_duration(request)
        buffer = request.buffer_minutes if request.buffer_minutes is not None else DEFAULT_BUFFER_MINUTES

        if request.pattern in SEQUENTIAL_PATTERNS and request.per_guest and request.guests:
            for i, guest in enumerate(request.guests):
                if len(instances) >= cap:
                    break
                instances.append(_shifted_instance(request, i * (duration + buffer), duration, [guest]))
            continue

        if request.occurrences and request.occurrences > 1:
            count = min(request.occurrences, cap - len(instances))
            for i in range(count):
                instances.append(_shifted_instance(request, i * (duration + buffer), duration, request.guests))
            continue

        instances.append(_single_instance(request))

    return instances


def build_instances(requests, cap=MAX_INSTANCES):
    """Validate parsed requests and expand them; raises ValidationFailure on bad input."""
    validate_requests(requests)
    instances = expand_requests(requests, cap)
    if not instances:
        raise ValidationFailure("No event instances generated from prompt")
    logger.info(f"Built {len(instances)} event instance(s) from {len(requests)} request(s)")
    return instances
