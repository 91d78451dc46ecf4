"""Locate event arrays inside upstream JSON payloads.

Event listings come in several shapes. The first match wins:

1. The payload itself is an array
2. `events` on the root object
3. `calendars[].events` (each calendar processed separately)
4. `data`, then `items`
5. The first array on the root whose elements expose a start or end time

Calendar names are removed from the root object and from each per-calendar
object before the processed events are put back.
"""

from __future__ import annotations

from typing import Any

from calendar_proxy.events.processor import EventProcessor
from calendar_proxy.models.event import CalendarEvent

CALENDAR_NAME_FIELDS = (
    "calendar_name",
    "calendarName",
    "calendar-name",
    "calendar_title",
    "calendarTitle",
    "x-wr-calname",
    "X-WR-CALNAME",
)
# On a per-calendar object the plain name fields are the calendar's name
PER_CALENDAR_NAME_FIELDS = CALENDAR_NAME_FIELDS + ("name", "title", "summary")

_WRAPPER_KEYS = ("data", "items")


def strip_calendar_names(obj: dict[str, Any], fields: tuple[str, ...]) -> dict[str, Any]:
    """Return a copy of `obj` without any of the given name fields."""
    return {key: value for key, value in obj.items() if key not in fields}


def _has_events(value: Any) -> bool:
    return isinstance(value, list) and any(CalendarEvent.is_event_like(v) for v in value)


def find_event_key(payload: dict[str, Any]) -> str | None:
    """Name of the root key holding a flat event array, if any."""
    if isinstance(payload.get("events"), list):
        return "events"
    for key in _WRAPPER_KEYS:
        if _has_events(payload.get(key)):
            return key
    for key, value in payload.items():
        if _has_events(value):
            return key
    return None


def process_payload(payload: Any, processor: EventProcessor) -> Any:
    """Run the event processor over whatever event arrays the payload holds.

    Returns a new payload; the input is not modified. Payloads with no
    recognizable events come back with only calendar names stripped.
    """
    if isinstance(payload, list):
        return processor.process(payload)

    if not isinstance(payload, dict):
        return payload

    out = strip_calendar_names(payload, CALENDAR_NAME_FIELDS)

    if not isinstance(out.get("events"), list) and isinstance(out.get("calendars"), list):
        calendars: list[Any] = []
        for calendar in out["calendars"]:
            if isinstance(calendar, dict):
                calendar = strip_calendar_names(calendar, PER_CALENDAR_NAME_FIELDS)
                if isinstance(calendar.get("events"), list):
                    calendar["events"] = processor.process(calendar["events"])
            calendars.append(calendar)
        out["calendars"] = calendars
        return out

    key = find_event_key(out)
    if key is not None:
        out[key] = processor.process(out[key])
    return out
