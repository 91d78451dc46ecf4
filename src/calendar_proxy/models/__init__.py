"""Domain models for the calendar proxy."""

from calendar_proxy.models.event import (
    BUSY_TITLE,
    CalendarEvent,
    Visibility,
    normalize_timestamp,
)
from calendar_proxy.models.request import (
    RequestContext,
    ResolvedSources,
    Route,
)

__all__ = [
    "BUSY_TITLE",
    "CalendarEvent",
    "Visibility",
    "normalize_timestamp",
    "RequestContext",
    "ResolvedSources",
    "Route",
]
