"""Event post-processing for upstream event listings.

Runs over the events of a JSON listing before it is returned to the
browser. The steps are order-sensitive:

1. **Declined filter**: drop events the owner declined or that were cancelled
2. **Visibility redaction**: anything not explicitly PUBLIC becomes "BUSY"
3. **Grouping**: partition by calendar identifier
4. **Merge**: join back-to-back events of the same calendar into one block

## Declined Detection

An event is dropped if any of these hold:
- a css class is exactly `status-declined` or `partstat-declined`
- a type/status field is `CANCELLED` or `DECLINED`
- its raw iCalendar fragment has a top-level `STATUS:CANCELLED` or
  `STATUS:DECLINED` line (nested components such as VALARM do not count)
- its raw fragment has an `ATTENDEE` line with `PARTSTAT=DECLINED` that
  mentions one of the configured owner addresses

The last rule only fires for the owner's own attendee line, so another
attendee declining does not hide the event.

## Merging

Two events merge only when they share a calendar identifier and the first's
normalized end equals the second's normalized start exactly. If either side
is redacted the merged block is redacted too; otherwise titles are joined
with " + " and descriptions with a blank line.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from calendar_proxy.models.event import (
    CalendarEvent,
    timestamp_sort_key,
    unfold_lines,
)

logger = logging.getLogger(__name__)

DECLINED_CSS_CLASSES = frozenset({"status-declined", "partstat-declined"})
DECLINED_STATUSES = frozenset({"CANCELLED", "DECLINED"})

TITLE_SEPARATOR = " + "
DESCRIPTION_SEPARATOR = "\n\n"

# Components whose STATUS line describes the event itself
_EVENT_LEVEL_COMPONENTS = frozenset({"VCALENDAR", "VEVENT"})


def _property_name(line: str) -> str:
    return line.split(":", 1)[0].split(";", 1)[0].strip().upper()


def fragment_status_declined(fragment: str) -> bool:
    """Check for a top-level STATUS:CANCELLED / STATUS:DECLINED line."""
    stack: list[str] = []
    for line in unfold_lines(fragment):
        name = _property_name(line)
        value = line.split(":", 1)[1].strip().upper() if ":" in line else ""

        if name == "BEGIN":
            stack.append(value)
        elif name == "END":
            if stack:
                stack.pop()
        elif name == "STATUS" and (not stack or stack[-1] in _EVENT_LEVEL_COMPONENTS):
            if value in DECLINED_STATUSES:
                return True
    return False


def owner_declined(fragment: str, user_emails: Iterable[str]) -> bool:
    """Check whether one of the owner's attendee lines has PARTSTAT=DECLINED."""
    emails = [email.lower() for email in user_emails if email]
    if not emails:
        return False

    for line in unfold_lines(fragment):
        if _property_name(line) != "ATTENDEE":
            continue
        lowered = line.lower()
        if "partstat=declined" not in lowered:
            continue
        if any(email in lowered for email in emails):
            return True
    return False


def is_declined(event: CalendarEvent, user_emails: Iterable[str] = ()) -> bool:
    """Check whether an event should be hidden as declined or cancelled."""
    if any(css.lower() in DECLINED_CSS_CLASSES for css in event.css_classes):
        return True

    if any(status.strip().upper() in DECLINED_STATUSES for status in event.statuses):
        return True

    if event.raw_fragment:
        if fragment_status_declined(event.raw_fragment):
            return True
        if owner_declined(event.raw_fragment, user_emails):
            return True

    return False


def redact_private(events: Iterable[CalendarEvent]) -> list[CalendarEvent]:
    """Redact every event that is not explicitly PUBLIC."""
    return [event if event.is_public else event.redact() for event in events]


def group_by_calendar(
    events: Iterable[CalendarEvent],
) -> dict[str | None, list[CalendarEvent]]:
    """Partition events by calendar identifier, keeping first-seen group order.

    Events without an identifier share the `None` bucket.
    """
    groups: dict[str | None, list[CalendarEvent]] = {}
    for event in events:
        groups.setdefault(event.calendar_id, []).append(event)
    return groups


def _touches(first: CalendarEvent, second: CalendarEvent) -> bool:
    end = first.normalized_end
    return end is not None and end == second.normalized_start


def merge_pair(first: CalendarEvent, second: CalendarEvent) -> CalendarEvent:
    """Merge two back-to-back events into one block spanning both."""
    extended = first.model_copy(update={"end": second.end})

    if first.redacted or second.redacted:
        return extended.redact()

    title = TITLE_SEPARATOR.join(t for t in (first.title, second.title) if t)
    description = DESCRIPTION_SEPARATOR.join(
        d for d in (first.description, second.description) if d
    )
    return extended.model_copy(
        update={
            "title": title,
            "description": description,
            "title_field": first.title_field or second.title_field,
            "description_field": first.description_field or second.description_field,
        }
    )


def merge_consecutive(events: Iterable[CalendarEvent]) -> list[CalendarEvent]:
    """Sort one calendar's events by start and merge touching runs."""
    merged: list[CalendarEvent] = []
    for event in sorted(events, key=lambda e: timestamp_sort_key(e.start)):
        if merged and _touches(merged[-1], event):
            merged[-1] = merge_pair(merged[-1], event)
        else:
            merged.append(event)
    return merged


@dataclass
class EventProcessor:
    """Applies the full post-processing pipeline to raw event dicts.

    Attributes:
        user_emails: Owner addresses used for declined-invitation detection
    """

    user_emails: list[str] = field(default_factory=list)

    def process_events(self, events: Iterable[CalendarEvent]) -> list[CalendarEvent]:
        kept = [event for event in events if not is_declined(event, self.user_emails)]
        redacted = redact_private(kept)

        result: list[CalendarEvent] = []
        for group in group_by_calendar(redacted).values():
            result.extend(merge_consecutive(group))
        return result

    def process(self, records: list[Any]) -> list[Any]:
        """Process a JSON array of events.

        Elements that are not objects are passed through untouched at the end.

        Returns:
            New list of event dicts in output order
        """
        events = [
            CalendarEvent.from_record(record)
            for record in records
            if isinstance(record, dict)
        ]
        others = [record for record in records if not isinstance(record, dict)]

        processed = self.process_events(events)
        logger.debug(
            f"Processed {len(events)} events into {len(processed)} "
            f"({sum(1 for e in processed if e.redacted)} redacted)"
        )
        return [event.to_record() for event in processed] + others
