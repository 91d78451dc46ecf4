"""Request classification and upstream URL construction.

## Routes

| Path | Route |
|------|-------|
| `/`, `/calendar.html`, `*/calendar.html` | MAIN_PAGE |
| `/srcdoc*`, `*.json` | API_ENDPOINT |
| anything else | STATIC_PASSTHROUGH |

Any path ending in `.ics` or `.ical` (case-insensitive) is denied with 403
before classification runs.

## Upstream URLs

MAIN_PAGE and API_ENDPOINT requests get every original query parameter
except the source parameter, followed by one source parameter per resolved
(decrypted) source in the original order. STATIC_PASSTHROUGH keeps the raw
query string verbatim. A MAIN_PAGE request for `/` is sent to
`/calendar.html`.
"""

from __future__ import annotations

import logging
from typing import Iterable
from urllib.parse import quote, urlencode

from calendar_proxy.errors import AccessDenied
from calendar_proxy.models.request import RequestContext, Route

logger = logging.getLogger(__name__)

CALENDAR_FILE_EXTENSIONS = (".ics", ".ical")
MAIN_PAGE_FILE = "/calendar.html"
EVENT_LISTING_SUFFIXES = (".events.json", "/events.json")


def is_calendar_file_path(pathname: str) -> bool:
    """Check whether a path names a raw calendar file."""
    return pathname.lower().endswith(CALENDAR_FILE_EXTENSIONS)


def check_access(pathname: str) -> None:
    """Deny raw calendar-file downloads.

    Raises:
        AccessDenied: If the path ends in a calendar-file extension
    """
    if is_calendar_file_path(pathname):
        logger.warning("Denied calendar file request by path")
        raise AccessDenied()


def classify(pathname: str) -> Route:
    """Classify an inbound path.

    Raises:
        AccessDenied: For calendar-file paths, regardless of anything else
    """
    check_access(pathname)

    if pathname in ("", "/", MAIN_PAGE_FILE) or pathname.endswith(MAIN_PAGE_FILE):
        return Route.MAIN_PAGE

    if pathname.startswith("/srcdoc") or pathname.endswith(".json"):
        return Route.API_ENDPOINT

    return Route.STATIC_PASSTHROUGH


def is_event_listing(pathname: str) -> bool:
    """Check whether a JSON endpoint returns an event listing."""
    return pathname.lower().endswith(EVENT_LISTING_SUFFIXES)


def upstream_path(route: Route, pathname: str) -> str:
    if route is Route.MAIN_PAGE and pathname in ("", "/"):
        return MAIN_PAGE_FILE
    return pathname or "/"


def build_upstream_url(
    route: Route,
    context: RequestContext,
    sources: Iterable[str],
    base_url: str,
    source_param: str = "url",
) -> str:
    """Build the upstream URL for a classified request.

    Args:
        route: Classification of the request
        context: Inbound request
        sources: Decrypted calendar URLs, in order (ignored for passthrough)
        base_url: Upstream scheme and host, without trailing slash
        source_param: Name of the repeated source query parameter

    Returns:
        Absolute upstream URL
    """
    target = base_url + quote(upstream_path(route, context.pathname))

    if route is Route.STATIC_PASSTHROUGH:
        return f"{target}?{context.raw_query}" if context.raw_query else target

    params = [(key, value) for key, value in context.query if key != source_param]
    params.extend((source_param, source) for source in sources)

    if not params:
        return target
    return f"{target}?{urlencode(params)}"
