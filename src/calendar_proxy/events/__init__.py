"""Event post-processing for upstream event listings.

## Pipeline

1. Drop declined and cancelled events
2. Redact every event that is not explicitly PUBLIC
3. Group by calendar and merge back-to-back events

See `calendar_proxy.events.processor` for the exact rules.
"""

from calendar_proxy.events.payload import process_payload, strip_calendar_names
from calendar_proxy.events.processor import (
    EventProcessor,
    group_by_calendar,
    is_declined,
    merge_consecutive,
    redact_private,
)

__all__ = [
    "EventProcessor",
    "group_by_calendar",
    "is_declined",
    "merge_consecutive",
    "process_payload",
    "redact_private",
    "strip_calendar_names",
]
