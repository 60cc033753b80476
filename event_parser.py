"""
Natural-language event parsing.

The user's text is sent to Gemini together with instructions that already
contain every relative date the user might use ("tomorrow", "next Monday",
"this Sunday"), computed here from the current date. The model's reply is
treated as untrusted text: the first JSON object is pulled out of it and
normalized into EventRequest objects before anything else sees it.
"""
import datetime
import json
import logging
import re
from dataclasses import replace

import google.generativeai as genai

from config import (
    DEFAULT_TIME_ZONE,
    GEMINI_API_KEY,
    GEMINI_MODEL,
    MAX_INSTANCES,
    PER_GUEST_PHRASES,
)
from errors import ParseFailure, TranslatorUnavailable
from models import PATTERNS, EventRequest, normalize_am_pm, normalize_clock_field

logger = logging.getLogger(__name__)

# Sunday-first, so Saturday (6) is followed by Sunday (0)
WEEKDAYS = ["sunday", "monday", "tuesday", "wednesday", "thursday", "friday", "saturday"]


class GeminiTranslator:
    """Free text in, raw model text out."""

    def __init__(self, api_key=GEMINI_API_KEY, model_name=GEMINI_MODEL):
        self.api_key = api_key
        self.model_name = model_name
        if api_key:
            genai.configure(api_key=api_key)

    def _model(self, instructions=None):
        if not self.api_key:
            raise TranslatorUnavailable()
        return genai.GenerativeModel(model_name=self.model_name, system_instruction=instructions)

    def translate(self, prompt_text, instructions):
        model = self._model(instructions)
        try:
            response = model.generate_content(
                prompt_text,
                generation_config=genai.GenerationConfig(temperature=0),
            )
            return response.text.strip()
        except Exception as e:
            logger.error(f"Gemini request failed: {e}")
            raise TranslatorUnavailable(f"Failed to reach the language model: {e}")

    def chat(self, prompt_text):
        """Plain conversational completion for the chat UI."""
        model = self._model()
        try:
            response = model.generate_content(
                prompt_text,
                generation_config=genai.GenerationConfig(temperature=0.3, max_output_tokens=500),
            )
            return response.text.strip()
        except Exception as e:
            logger.error(f"Gemini chat request failed: {e}")
            raise TranslatorUnavailable(f"Failed to process with LLM: {e}")


def _weekday_index(day):
    return (day.weekday() + 1) % 7


def next_weekday(today, target):
    """Next occurrence of target after today; today itself rolls to next week."""
    target_index = WEEKDAYS.index(target.lower())
    today_index = _weekday_index(today)
    if target_index > today_index:
        days_to_add = target_index - today_index
    elif target_index == today_index:
        days_to_add = 7
    else:
        days_to_add = 7 - today_index + target_index
    return today + datetime.timedelta(days=days_to_add)


def this_weekday(today, target):
    """Upcoming occurrence of target within the current week, else next week's."""
    target_index = WEEKDAYS.index(target.lower())
    today_index = _weekday_index(today)
    if today_index == 6 and target_index == 0:
        days_to_add = 1
    elif target_index > today_index:
        days_to_add = target_index - today_index
    else:
        days_to_add = 7 - today_index + target_index
    return today + datetime.timedelta(days=days_to_add)


def resolve_relative_dates(today):
    """All relative dates the instructions pin down, as YYYY-MM-DD strings."""
    dates = {
        "today": today.isoformat(),
        "day_of_week": today.strftime("%A"),
        "tomorrow": (today + datetime.timedelta(days=1)).isoformat(),
        "this_sunday": this_weekday(today, "sunday").isoformat(),
    }
    for day in WEEKDAYS:
        dates[f"next_{day}"] = next_weekday(today, day).isoformat()
    return dates


def build_instructions(today, context=None):
    dates = resolve_relative_dates(today)
    logger.info(f"Date calculations for {dates['today']} ({dates['day_of_week']}): "
                f"tomorrow={dates['tomorrow']}, this Sunday={dates['this_sunday']}, "
                f"next Sunday={dates['next_sunday']}, next Monday={dates['next_monday']}")

    next_days = "\n".join(
        f'- "next {day.capitalize()}" = {dates["next_" + day]}'
        for day in WEEKDAYS[1:] + WEEKDAYS[:1]
    )
    pattern_names = ", ".join(f'"{p}"' for p in PATTERNS)

    instructions = f"""
    You turn natural language meeting/event requests into structured JSON.
    Return ONLY valid JSON, with no text before or after it.

    CRITICAL: Today's date is {dates['today']} ({dates['day_of_week']}). Use EXACTLY these dates:
    - "today" = {dates['today']}
    - "tomorrow" = {dates['tomorrow']}
    - "this Sunday" = {dates['this_sunday']}
    - "coming Sunday" = {dates['next_sunday']}
    {next_days}
    Never calculate dates yourself.

    The output MUST be a single JSON object containing either an "event" object or an "events" array.
    Every event object has these fields (null when not mentioned):
    - title: string, inferred from context when missing
    - date: "YYYY-MM-DD" or null
    - startHour: "01" to "12" or null
    - startMinute: one of "00", "15", "30", "45", or null
    - startAmPm: "AM" or "PM" or null
    - endHour, endMinute, endAmPm: same shapes as the start fields
    - timeZone: IANA name such as "Asia/Kolkata" or "America/New_York", default "{DEFAULT_TIME_ZONE}"
    - addMeet: true when video, meet, zoom or a conference is mentioned, else false
    - guests: array of every email address mentioned, or []

    Optional fields describing multi-meeting schedules:
    - pattern: one of {pattern_names}
    - bufferMinutes: integer gap between consecutive meetings
    - occurrences: integer number of repeated meetings
    - perGuest: true to schedule a separate meeting for each guest

    Rules:
    - "one-on-one" or "back-to-back" meetings with several guests: return one event per guest,
      each with only that guest, pattern "back-to-back" and perGuest true.
    - Back-to-back per guest meetings run one after another from the stated start time,
      separated by bufferMinutes (15 when a gap is asked for but not given).
    - occurrences repeats the meeting that many times, each separated by the duration plus bufferMinutes.
    - Never return more than {MAX_INSTANCES} events.

    Example for the back-to-back per guest case:
    {{"events": [{{"title": "Demo", "date": "{dates['today']}", "startHour": "01", "startMinute": "00",
    "startAmPm": "PM", "endHour": "02", "endMinute": "00", "endAmPm": "PM", "timeZone": "{DEFAULT_TIME_ZONE}",
    "addMeet": true, "guests": ["a@example.com"], "pattern": "back-to-back", "bufferMinutes": 15, "perGuest": true}}]}}
    """

    if context:
        instructions += f"""
    Background only (the meeting currently being discussed, do not schedule it again unless asked):
    {context}
    """
    return instructions


def extract_json(raw_text):
    """Pull the outermost JSON object out of the model reply."""
    text = (raw_text or "").strip()
    if text.startswith("```json"):
        text = text[7:]
    elif text.startswith("```"):
        text = text[3:]
    if text.endswith("```"):
        text = text[:-3]

    match = re.search(r"\{[\s\S]*\}", text)
    if not match:
        raise ParseFailure("LLM did not return valid JSON")
    try:
        return json.loads(match.group(0))
    except json.JSONDecodeError as e:
        logger.error(f"JSON parsing error: {e} for response: {raw_text}")
        raise ParseFailure(f"Failed to parse event request: {e}")


def _optional_int(value, minimum):
    if value is None or isinstance(value, bool):
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number if number >= minimum else None


def normalize_event(raw, default_time_zone=DEFAULT_TIME_ZONE):
    """Fill defaults on one translator event object."""
    guests = raw.get("guests")
    guests = [g.strip() for g in guests if isinstance(g, str) and g.strip()] if isinstance(guests, list) else []
    pattern = raw.get("pattern") if raw.get("pattern") in PATTERNS else "single"

    return EventRequest(
        title=str(raw.get("title") or "").strip() or "Untitled Meeting",
        date=raw.get("date") or None,
        start_hour=normalize_clock_field(raw.get("startHour")),
        start_minute=normalize_clock_field(raw.get("startMinute")),
        start_am_pm=normalize_am_pm(raw.get("startAmPm")),
        end_hour=normalize_clock_field(raw.get("endHour")),
        end_minute=normalize_clock_field(raw.get("endMinute")),
        end_am_pm=normalize_am_pm(raw.get("endAmPm")),
        time_zone=raw.get("timeZone") or default_time_zone,
        add_meet=bool(raw.get("addMeet")),
        guests=list(dict.fromkeys(guests)),
        pattern=pattern,
        buffer_minutes=_optional_int(raw.get("bufferMinutes"), 0),
        per_guest=bool(raw.get("perGuest")),
        occurrences=_optional_int(raw.get("occurrences"), 1),
    )


def normalize_translation(parsed, default_time_zone=DEFAULT_TIME_ZONE):
    """Accept {"event": {...}}, {"events": [...]} or a bare event object."""
    if not isinstance(parsed, dict):
        raise ParseFailure("LLM did not return a JSON object")

    if isinstance(parsed.get("event"), dict) and "events" not in parsed:
        raw_events = [parsed["event"]]
    elif "events" not in parsed and (parsed.get("title") or parsed.get("date") or parsed.get("startHour")):
        raw_events = [parsed]
    else:
        raw_events = parsed.get("events")

    if not isinstance(raw_events, list):
        raw_events = []
    return [normalize_event(e, default_time_zone) for e in raw_events if isinstance(e, dict)]


def wants_per_guest(text):
    lowered = (text or "").lower()
    return any(phrase in lowered for phrase in PER_GUEST_PHRASES)


def split_per_guest(requests, text):
    """Split multi-guest requests when the user asked for one-on-one meetings."""
    if not wants_per_guest(text) or not any(len(r.guests) > 1 for r in requests):
        return requests

    split = []
    for request in requests:
        if len(request.guests) > 1:
            for guest in request.guests:
                split.append(replace(request, guests=[guest], pattern="back-to-back", per_guest=True))
        else:
            split.append(request)
    logger.info(f"Split {len(requests)} parsed event(s) into {len(split)} per-guest event(s)")
    return split


def parse_event_request(text, translator, today=None, context=None):
    """Free text -> list of EventRequest, resolved against today's date."""
    today = today or datetime.date.today()
    instructions = build_instructions(today, context)
    raw_text = translator.translate(f'Parse this event request: "{text}"', instructions)
    logger.debug(f"LLM response: {raw_text}")

    requests = normalize_translation(extract_json(raw_text))
    requests = split_per_guest(requests, text)
    logger.info(f"Parsed {len(requests)} event request(s)")
    return requests
