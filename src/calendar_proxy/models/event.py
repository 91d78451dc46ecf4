"""Canonical calendar event record.

Upstream event listings have accumulated many spellings for the same
concept (`start` / `startDate` / `dtstart`, `name` / `title` / `summary`,
...). Rather than probing aliases wherever a field is needed, each event is
read once through `CalendarEvent.from_record()` into a fixed schema. The
original record is kept alongside so `to_record()` can write changes back
under the field names the consumer already reads.

## Field Aliases

| Canonical | Aliases (first present wins) |
|-----------|------------------------------|
| start | start, startDate, start_date, startTime, start_time, dtstart |
| end | end, endDate, end_date, endTime, end_time, dtend |
| title | name, title, summary, text |
| description | description, body, details, notes |
| calendar_id | calendar-index, calendarIndex, calendar_index, calendarId, calendar_id, calendar |
| visibility_class | class, visibility, classification, privacy, then `CLASS-*` css class, then `CLASS:` line of the raw fragment |
| raw_fragment | ical, ics, raw, rawFragment, raw_ical |

## Visibility

Only a visibility class equal to `PUBLIC` (case-insensitive) is public.
Anything else, including a missing value, is treated as private.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

BUSY_TITLE = "BUSY"

START_FIELDS = ("start", "startDate", "start_date", "startTime", "start_time", "dtstart")
END_FIELDS = ("end", "endDate", "end_date", "endTime", "end_time", "dtend")
TITLE_FIELDS = ("name", "title", "summary", "text")
DESCRIPTION_FIELDS = ("description", "body", "details", "notes")
CALENDAR_ID_FIELDS = (
    "calendar-index",
    "calendarIndex",
    "calendar_index",
    "calendarId",
    "calendar_id",
    "calendar",
)
VISIBILITY_FIELDS = ("class", "visibility", "classification", "privacy")
RAW_FRAGMENT_FIELDS = ("ical", "ics", "raw", "rawFragment", "raw_ical")
CSS_CLASS_FIELDS = ("css-classes", "cssClasses", "css_classes", "classes", "className")
STATUS_FIELDS = ("status", "type", "eventType", "event_type")

# Cleared on every non-public event, in addition to titles and descriptions
IDENTIFYING_FIELDS = (
    "location",
    "organizer",
    "attendees",
    "participants",
    "url",
    "uid",
    "categories",
    "color",
    "recurrence",
    "sequence",
    "type",
    *RAW_FRAGMENT_FIELDS,
)

_BASIC_FORMATS = ("%Y%m%dT%H%M%SZ", "%Y%m%dT%H%M%S", "%Y%m%d")


class Visibility(str, Enum):
    """Effective visibility of an event."""

    PUBLIC = "PUBLIC"
    PRIVATE = "PRIVATE"


def _first_present(record: dict[str, Any], fields: tuple[str, ...]) -> tuple[str | None, Any]:
    for name in fields:
        value = record.get(name)
        if value is not None and value != "":
            return name, value
    return None, None


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _cleared(value: Any) -> Any:
    """Empty value of the same shape, so consumers keep their types."""
    if isinstance(value, str):
        return ""
    if isinstance(value, list):
        return []
    if isinstance(value, dict):
        return {}
    return None


def _as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def normalize_timestamp(value: Any) -> datetime | str | None:
    """Normalize a timestamp for exact comparison.

    Accepts ISO 8601 strings (extended or basic format, `Z` suffix, date-only),
    epoch seconds or milliseconds, datetimes, dates, and `{"dateTime": ...}` /
    `{"date": ...}` objects. Naive values are taken as UTC. Values that cannot
    be parsed compare as their stripped string form.
    """
    if value is None or value == "":
        return None

    if isinstance(value, dict):
        return normalize_timestamp(value.get("dateTime") or value.get("date"))

    if isinstance(value, datetime):
        return _as_utc(value)

    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)

    if isinstance(value, bool):
        return str(value)

    if isinstance(value, (int, float)):
        seconds = value / 1000 if abs(value) > 1e11 else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return str(value)

    text = str(value).strip()
    # Eight digits is a basic-format date (20240131), not epoch seconds
    if text.isascii() and text.isdigit() and len(text) != 8:
        return normalize_timestamp(int(text))

    iso = text[:-1] + "+00:00" if text.endswith(("Z", "z")) else text
    try:
        return _as_utc(datetime.fromisoformat(iso))
    except ValueError:
        pass

    for fmt in _BASIC_FORMATS:
        try:
            return _as_utc(datetime.strptime(text, fmt))
        except ValueError:
            continue

    return text


def timestamp_sort_key(value: Any) -> tuple[int, float | str]:
    """Sort key that orders parseable timestamps first, then raw strings."""
    normalized = normalize_timestamp(value)
    if isinstance(normalized, datetime):
        return (0, normalized.timestamp())
    if normalized is None:
        return (2, "")
    return (1, normalized)


def _split_css_classes(value: Any) -> tuple[str, ...]:
    if isinstance(value, str):
        return tuple(value.split())
    if isinstance(value, (list, tuple)):
        return tuple(str(item) for item in value if item is not None)
    return ()


def _calendar_id(value: Any) -> str | None:
    if isinstance(value, dict):
        value = value.get("id", value.get("index"))
    if value is None or value == "":
        return None
    return str(value)


def unfold_lines(fragment: str) -> list[str]:
    """Split raw iCalendar text into logical lines, joining folded continuations."""
    lines: list[str] = []
    for line in fragment.replace("\r\n", "\n").replace("\r", "\n").split("\n"):
        if line[:1] in (" ", "\t") and lines:
            lines[-1] += line[1:]
        elif line:
            lines.append(line)
    return lines


def _fragment_class(fragment: str | None) -> str | None:
    if not fragment:
        return None
    for line in unfold_lines(fragment):
        name, _, value = line.partition(":")
        if name.split(";", 1)[0].upper() == "CLASS":
            return value.strip()
    return None


class CalendarEvent(BaseModel):
    """An upstream event read into a fixed schema.

    Instances are treated as immutable: processing steps return updated
    copies via `model_copy()`.
    """

    start: Any = Field(default=None, description="Start timestamp as received")
    end: Any = Field(default=None, description="End timestamp as received")
    title: str = ""
    description: str = ""
    calendar_id: str | None = None
    visibility_class: str | None = Field(
        default=None, description="Raw visibility class; None means private"
    )
    raw_fragment: str | None = Field(
        default=None, description="Embedded iCalendar text for this event"
    )
    css_classes: tuple[str, ...] = ()
    statuses: tuple[str, ...] = Field(
        default=(), description="Values of every type/status field present"
    )
    redacted: bool = False

    # Where title/description were read from, for write-back
    title_field: str | None = None
    description_field: str | None = None

    record: dict[str, Any] = Field(default_factory=dict, repr=False)

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> CalendarEvent:
        """Read an upstream event dict through the alias table."""
        _, start = _first_present(record, START_FIELDS)
        _, end = _first_present(record, END_FIELDS)
        title_field, title = _first_present(record, TITLE_FIELDS)
        description_field, description = _first_present(record, DESCRIPTION_FIELDS)
        _, calendar = _first_present(record, CALENDAR_ID_FIELDS)
        _, raw = _first_present(record, RAW_FRAGMENT_FIELDS)
        _, css = _first_present(record, CSS_CLASS_FIELDS)
        _, visibility = _first_present(record, VISIBILITY_FIELDS)

        raw_fragment = raw if isinstance(raw, str) else None
        css_classes = _split_css_classes(css)

        if visibility is None:
            for css_class in css_classes:
                if css_class.upper().startswith("CLASS-"):
                    visibility = css_class[len("CLASS-"):]
                    break
        if visibility is None:
            visibility = _fragment_class(raw_fragment)

        return cls(
            start=start,
            end=end,
            title=_as_text(title),
            description=_as_text(description),
            calendar_id=_calendar_id(calendar),
            visibility_class=_as_text(visibility) if visibility is not None else None,
            raw_fragment=raw_fragment,
            css_classes=css_classes,
            statuses=tuple(
                _as_text(record[name]) for name in STATUS_FIELDS if record.get(name)
            ),
            redacted=bool(record.get("redacted", False)),
            title_field=title_field,
            description_field=description_field,
            record=dict(record),
        )

    @staticmethod
    def is_event_like(value: Any) -> bool:
        """Check whether a JSON value looks like an event (exposes a start or end)."""
        if not isinstance(value, dict):
            return False
        return any(name in value for name in START_FIELDS + END_FIELDS)

    @property
    def visibility(self) -> Visibility:
        if self.visibility_class and self.visibility_class.strip().upper() == "PUBLIC":
            return Visibility.PUBLIC
        return Visibility.PRIVATE

    @property
    def is_public(self) -> bool:
        return self.visibility is Visibility.PUBLIC

    @property
    def normalized_start(self) -> datetime | str | None:
        return normalize_timestamp(self.start)

    @property
    def normalized_end(self) -> datetime | str | None:
        return normalize_timestamp(self.end)

    def redact(self) -> CalendarEvent:
        """Return a copy with every identifying detail removed."""
        return self.model_copy(
            update={
                "title": BUSY_TITLE,
                "description": "",
                "raw_fragment": None,
                "statuses": (),
                "redacted": True,
            }
        )

    def to_record(self) -> dict[str, Any]:
        """Write the canonical values back into a copy of the original record.

        The end timestamp is written into every end alias present so that
        consumers reading any particular alias see the same value.
        """
        out = dict(self.record)

        end_fields = [name for name in END_FIELDS if name in out] or ["end"]
        if self.end is not None:
            for name in end_fields:
                out[name] = self.end

        if self.redacted:
            for name in IDENTIFYING_FIELDS + DESCRIPTION_FIELDS:
                if name in out:
                    out[name] = _cleared(out[name])
            title_fields = [name for name in TITLE_FIELDS if name in out] or ["title"]
            for name in title_fields:
                out[name] = BUSY_TITLE
            if not any(name in out for name in DESCRIPTION_FIELDS):
                out["description"] = ""
            out["redacted"] = True
            return out

        if self.title or self.title_field:
            out[self.title_field or "title"] = self.title
        if self.description or self.description_field:
            out[self.description_field or "description"] = self.description
        return out
