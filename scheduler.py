"""
Conflict detection, conflict resolution and committing event instances.

Nothing here keeps state between calls: a conflicts-found answer carries the
proposed instances and conflicts back to the caller, who resubmits them with
the chosen action.

Instances are processed one at a time in list order and every calendar call
finishes before the next starts. Failed calls are recorded, never retried.
"""
import datetime
import logging
import uuid
from dataclasses import replace

from calendar_utils import cleanup_window, day_window, event_datetime, find_duplicate_events
from config import CLEANUP_LIST_LIMIT, CONFLICT_LIST_LIMIT, DEFAULT_DURATION_MINUTES, DEFAULT_TIME_ZONE
from errors import InvalidTimeRange, ProviderError, ProviderPermissionError, ValidationFailure
from models import CommitResult, Conflict, EventInstance, normalize_am_pm, normalize_clock_field
from time_utils import (
    add_days,
    add_minutes,
    check_clock_parts,
    check_time_zone,
    clock_parts_from_datetime,
    parse_date,
    to_24_hour,
    to_absolute_minutes,
    to_minutes_since_midnight,
)

logger = logging.getLogger(__name__)

ACTIONS = ("overwrite", "postpone_existing", "reschedule_new")


def ranges_overlap(start1, end1, start2, end2):
    """Half-open ranges [start, end) overlap unless one ends before the other starts."""
    return not (end1 <= start2 or end2 <= start1)


def effective_end(instance):
    """(end_date, hour, minute, am_pm, auto_set) for an instance.

    Without an end time the meeting lasts DEFAULT_DURATION_MINUTES. With an
    end time but no end date, an end at or before the start means the next day.
    """
    if not instance.has_end_time:
        end_date, hour, minute, am_pm = add_minutes(
            instance.date, instance.start_hour, instance.start_minute, instance.start_am_pm,
            DEFAULT_DURATION_MINUTES)
        return end_date, hour, minute, am_pm, True

    end_date = instance.end_date
    if not end_date:
        start = to_minutes_since_midnight(instance.start_hour, instance.start_minute, instance.start_am_pm)
        end = to_minutes_since_midnight(instance.end_hour, instance.end_minute, instance.end_am_pm)
        end_date = add_days(instance.date, 1) if end <= start else instance.date
    return end_date, instance.end_hour, instance.end_minute, instance.end_am_pm, False


def instance_range(instance):
    end_date, end_hour, end_minute, end_am_pm, _ = effective_end(instance)
    start = to_absolute_minutes(instance.date, instance.start_hour, instance.start_minute, instance.start_am_pm)
    end = to_absolute_minutes(end_date, end_hour, end_minute, end_am_pm)
    return start, end


def existing_range(event, time_zone):
    """Range of an existing calendar event seen from time_zone; None for all-day events."""
    start_dt = event_datetime(event.get("start"), time_zone)
    end_dt = event_datetime(event.get("end"), time_zone)
    if start_dt is None or end_dt is None:
        return None
    start = to_absolute_minutes(*clock_parts_from_datetime(start_dt))
    end = to_absolute_minutes(*clock_parts_from_datetime(end_dt))
    return start, end


def instances_overlap(first, second):
    return ranges_overlap(*instance_range(first), *instance_range(second))


def detect_conflicts(store, instances):
    """First overlapping existing event for each instance, if any."""
    conflicts = []

    for idx, instance in enumerate(instances):
        end_date, end_hour, end_minute, end_am_pm, auto_set = effective_end(instance)
        proposed = instance_range(instance)

        time_min, time_max = day_window(instance.date, instance.time_zone)
        logger.info(f"Checking conflicts for: {instance.describe()}")
        existing = store.list_events(time_min, time_max, max_results=CONFLICT_LIST_LIMIT)
        logger.info(f"Found {len(existing)} existing events on {instance.date}")

        for event in existing:
            current = existing_range(event, instance.time_zone)
            if current is None:
                continue
            if ranges_overlap(*proposed, *current):
                logger.info(f"Conflict: '{instance.title}' overlaps '{event.get('summary')}' ({event.get('id')})")
                conflicts.append(Conflict(
                    instance_idx=idx,
                    instance=instance,
                    conflicting_event=event,
                    checked_end=(end_hour, end_minute, end_am_pm) if auto_set else None,
                ))
                break

    return conflicts


def finalize_instance(instance):
    """Fill in end date/time and check the range; returns (instance, duration_auto_set)."""
    end_date, end_hour, end_minute, end_am_pm, auto_set = effective_end(instance)
    final = replace(instance, end_date=end_date, end_hour=end_hour, end_minute=end_minute, end_am_pm=end_am_pm)
    start, end = instance_range(final)
    if end <= start:
        raise InvalidTimeRange()
    return final, auto_set


def build_event_body(instance, description):
    start_date_time = f"{instance.date}T{to_24_hour(instance.start_hour, instance.start_minute, instance.start_am_pm)}:00"
    end_date_time = f"{instance.end_date}T{to_24_hour(instance.end_hour, instance.end_minute, instance.end_am_pm)}:00"
    body = {
        "summary": instance.title,
        "description": description,
        "start": {"dateTime": start_date_time, "timeZone": instance.time_zone},
        "end": {"dateTime": end_date_time, "timeZone": instance.time_zone},
    }
    if instance.add_meet:
        body["conferenceData"] = {
            "createRequest": {
                "requestId": uuid.uuid4().hex,
                "conferenceSolutionKey": {"type": "hangoutsMeet"},
            }
        }
    if instance.guests:
        body["attendees"] = [{"email": email, "responseStatus": "needsAction"} for email in instance.guests]
    return body


def format_created_event(event, duration_auto_set):
    video_links = [ep.get("uri") for ep in event.get("conferenceData", {}).get("entryPoints", [])
                   if ep.get("entryPointType") == "video"]
    return {
        "success": True,
        "id": event.get("id"),
        "summary": event.get("summary"),
        "start": event.get("start"),
        "end": event.get("end"),
        "timeZone": (event.get("start") or {}).get("timeZone"),
        "meetLink": video_links[0] if video_links else None,
        "attendees": event.get("attendees", []),
        "htmlLink": event.get("htmlLink"),
        "organizer": event.get("organizer"),
        "durationAutoSet": duration_auto_set,
    }


def commit_instances(store, instances, description=None, organizer_email=None):
    """Insert every instance in order; a failure is recorded and the rest continue."""
    result = CommitResult(requested=len(instances))
    description = description or "Event created by the scheduling assistant"
    logger.info(f"Creating {len(instances)} event(s) on Google Calendar...")

    for instance in instances:
        try:
            final, auto_set = finalize_instance(instance)
        except InvalidTimeRange as e:
            logger.error(f"Invalid time range for {instance.describe()}")
            result.created.append({"success": False, "error": e.message, "instance": instance.to_dict()})
            continue

        try:
            event = store.insert_event(build_event_body(final, description), conference=final.add_meet)
        except ProviderError as e:
            logger.error(f"Failed to create event for {final.describe()}: {e.message}")
            entry = {"success": False, "error": e.message, "instance": final.to_dict()}
            if isinstance(e, ProviderPermissionError):
                entry["reauth"] = True
            result.created.append(entry)
            continue

        organizer = (event.get("organizer") or {}).get("email", "unknown")
        logger.info(f"Created event {len(result.created) + 1}/{len(instances)}: {event.get('id')} | Organizer: {organizer}")
        if organizer_email and organizer != organizer_email:
            logger.warning(f"Account mismatch! Logged-in user: {organizer_email}, Event organizer: {organizer}")
        result.created.append(format_created_event(event, auto_set))

    return result


def parse_reschedule_time(data, default_time_zone=DEFAULT_TIME_ZONE):
    """The caller-chosen new slot as an EventInstance (title unused)."""
    if not isinstance(data, dict) or not data.get("date") or not data.get("startHour"):
        raise ValidationFailure("Reschedule time required (date and startHour)")

    start_am_pm = normalize_am_pm(data.get("startAmPm"))
    if not start_am_pm:
        raise ValidationFailure("Reschedule time requires startAmPm (AM or PM)")
    end_hour = normalize_clock_field(data.get("endHour"))

    slot = EventInstance(
        title="",
        date=data["date"],
        start_hour=normalize_clock_field(data["startHour"]),
        start_minute=normalize_clock_field(data.get("startMinute")) or "00",
        start_am_pm=start_am_pm,
        end_hour=end_hour,
        end_minute=(normalize_clock_field(data.get("endMinute")) or "00") if end_hour else None,
        end_am_pm=(normalize_am_pm(data.get("endAmPm")) or start_am_pm) if end_hour else None,
        time_zone=data.get("timeZone") or default_time_zone,
    )
    try:
        parse_date(slot.date)
        check_clock_parts(slot.start_hour, slot.start_minute, slot.start_am_pm)
        if slot.has_end_time:
            check_clock_parts(slot.end_hour, slot.end_minute, slot.end_am_pm)
        if slot.time_zone is not None:
            check_time_zone(slot.time_zone)
    except (TypeError, ValueError):
        raise ValidationFailure("Reschedule time is not a valid date, time and time zone")
    return slot


def _postpone_body(slot):
    final, _ = finalize_instance(slot)
    start_time = to_24_hour(final.start_hour, final.start_minute, final.start_am_pm)
    end_time = to_24_hour(final.end_hour, final.end_minute, final.end_am_pm)
    return {
        "start": {"dateTime": f"{final.date}T{start_time}:00", "timeZone": final.time_zone},
        "end": {"dateTime": f"{final.end_date}T{end_time}:00", "timeZone": final.time_zone},
    }


def _unique_events(conflicts):
    """Conflicts with distinct existing events, first occurrence kept."""
    seen = set()
    unique = []
    for conflict in conflicts:
        if conflict.event_id not in seen:
            seen.add(conflict.event_id)
            unique.append(conflict)
    return unique


def _move_instance(instance, slot):
    return replace(
        instance,
        date=slot.date,
        start_hour=slot.start_hour,
        start_minute=slot.start_minute,
        start_am_pm=slot.start_am_pm,
        end_hour=slot.end_hour,
        end_minute=slot.end_minute,
        end_am_pm=slot.end_am_pm,
        end_date=None,
        time_zone=slot.time_zone if slot.time_zone else instance.time_zone,
    )


def resolve_conflicts(store, action, instances, conflicts, conflict_indices=None,
                      reschedule_time=None, description=None, organizer_email=None):
    """Apply the caller's choice for a set of conflicts, then commit every instance.

    overwrite          delete each conflicting event, then insert all instances
    postpone_existing  move each conflicting event to reschedule_time, then insert all
    reschedule_new     move only the conflicting instances to reschedule_time, then insert all
    """
    if action not in ACTIONS:
        raise ValidationFailure(f"Unknown conflict resolution action: {action}")
    if conflict_indices is None:
        conflict_indices = [c.instance_idx for c in conflicts]
    for idx in conflict_indices:
        if not isinstance(idx, int) or not 0 <= idx < len(instances):
            raise ValidationFailure(f"Conflict index out of range: {idx}")

    instances = list(instances)

    if action == "overwrite":
        logger.info(f"Overwriting {len(conflicts)} conflicting event(s)")
        for conflict in _unique_events(conflicts):
            try:
                store.delete_event(conflict.event_id)
                logger.info(f"Deleted existing event: {conflict.event_id}")
            except ProviderError as e:
                logger.error(f"Failed to delete event {conflict.event_id}: {e.message}")

    elif action == "postpone_existing":
        body = _postpone_body(parse_reschedule_time(reschedule_time))
        logger.info(f"Postponing {len(conflicts)} existing event(s) to {body['start']['dateTime']}")
        for conflict in _unique_events(conflicts):
            try:
                store.patch_event(conflict.event_id, body)
                logger.info(f"Postponed existing event: {conflict.event_id}")
            except ProviderError as e:
                logger.error(f"Failed to postpone event {conflict.event_id}: {e.message}")

    else:
        slot = parse_reschedule_time(reschedule_time, default_time_zone=None)
        logger.info(f"Rescheduling {len(set(conflict_indices))} new event(s) to {slot.date}")
        for idx in set(conflict_indices):
            instances[idx] = _move_instance(instances[idx], slot)

    return commit_instances(store, instances, description, organizer_email)


def cleanup_duplicates(store, now=None):
    """Delete all but the first of each group of identical events near today."""
    time_min, time_max = cleanup_window(now)
    events = store.list_events(time_min, time_max, max_results=CLEANUP_LIST_LIMIT, order_by="startTime")
    duplicates = find_duplicate_events(events)
    logger.info(f"Found {len(duplicates)} duplicate events")

    deleted = []
    for duplicate in duplicates:
        try:
            store.delete_event(duplicate["id"])
            deleted.append(duplicate)
            logger.info(f"Deleted duplicate: {duplicate['summary']} ({duplicate['id']})")
        except ProviderError as e:
            logger.error(f"Failed to delete duplicate {duplicate['id']}: {e.message}")

    return {
        "success": True,
        "message": f"Cleaned up {len(deleted)} duplicate events",
        "deleted": len(deleted),
        "found": len(duplicates),
    }


def reschedule_meeting(store, email, meeting_date, start_time, duration_minutes,
                       old_event_id=None, title=None, time_zone=DEFAULT_TIME_ZONE):
    """Replace an old meeting with a new one for a single attendee."""
    if not meeting_date or not start_time or not duration_minutes:
        raise ValidationFailure("meeting_date, start_time and duration_minutes are required")
    try:
        start_dt = datetime.datetime.strptime(f"{meeting_date} {start_time}", "%Y-%m-%d %H:%M")
        duration = int(duration_minutes)
    except (TypeError, ValueError):
        raise ValidationFailure("Use 'YYYY-MM-DD' for meeting_date and 'HH:MM' for start_time")
    if duration <= 0:
        raise InvalidTimeRange()

    if old_event_id:
        try:
            store.delete_event(old_event_id)
            logger.info(f"Deleted old event: {old_event_id}")
        except ProviderError as e:
            logger.warning(f"Failed to delete old event (might not exist): {e.message}")

    end_dt = start_dt + datetime.timedelta(minutes=duration)
    body = {
        "summary": title or "Meeting",
        "description": f"Meeting with {email}" if email else "Rescheduled meeting",
        "start": {"dateTime": start_dt.strftime("%Y-%m-%dT%H:%M:%S"), "timeZone": time_zone},
        "end": {"dateTime": end_dt.strftime("%Y-%m-%dT%H:%M:%S"), "timeZone": time_zone},
    }
    if email:
        body["attendees"] = [{"email": email}]

    event = store.insert_event(body)
    return {
        "success": True,
        "created": [{
            "id": event.get("id"),
            "summary": event.get("summary"),
            "start": event.get("start"),
            "end": event.get("end"),
        }],
    }
