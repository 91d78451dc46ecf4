"""Response sanitization.

Everything the upstream returns passes through `sanitize()` before it
reaches the browser.

## Steps

1. Calendar files (by content type or path) are denied with 403
2. Bodies other than `text/html` and `application/json`, and empty bodies
   (HEAD replies), pass through with only the CORS header added
3. Event-listing JSON is run through the event processor; unparseable JSON
   is left as-is
4. Calendar URLs and percent-encoded addresses are replaced with a
   placeholder in HTML and JSON
5. HTML gets a script that drops console output carrying calendar
   identifiers
"""

from __future__ import annotations

import json
import logging
import re

from starlette.responses import Response

from calendar_proxy.errors import CORS_HEADER, AccessDenied
from calendar_proxy.events.payload import process_payload
from calendar_proxy.events.processor import EventProcessor
from calendar_proxy.proxy.router import is_calendar_file_path, is_event_listing
from calendar_proxy.proxy.upstream import UpstreamResponse, with_header

logger = logging.getLogger(__name__)

PLACEHOLDER = "[Calendar URL hidden]"

CALENDAR_CONTENT_TYPES = (
    "text/calendar",
    "application/ics",
    "application/x-ical",
    "text/x-vcalendar",
)

# Matches both plain and JSON-escaped ("\/") slashes
_SLASH = r"(?:\\?/)"

REDACTION_PATTERNS = (
    re.compile(rf"(?:https?|webcal):{_SLASH}{{2}}[^\s\"'<>]+\.ics", re.IGNORECASE),
    re.compile(
        rf"https?:{_SLASH}{{2}}calendar\.google\.com{_SLASH}calendar{_SLASH}ical{_SLASH}[^\s\"'<>]+",
        re.IGNORECASE,
    ),
    # Percent-encoded URLs, as carried inside query strings
    re.compile(r"(?:https?|webcal)%3A%2F%2F[^\s\"'<>&]*?\.ics\b", re.IGNORECASE),
    re.compile(
        r"https?%3A%2F%2Fcalendar\.google\.com%2Fcalendar%2Fical%2F[^\s\"'<>&]+",
        re.IGNORECASE,
    ),
    # Everything after an encoded "@" up to the next quote or whitespace
    re.compile(r"[A-Za-z0-9._+-]*%40[^\s\"'<>\\]+", re.IGNORECASE),
)

# Console messages containing any of these are dropped in the browser
LEAK_MARKERS = (
    "calendar.google.com/calendar/ical",
    "fernet://",
    ".ics",
    "%40",
    "X-WR-CALNAME",
)
# Console payload objects exposing any of these keys are dropped
LEAK_KEYS = ("url", "urls", "calendar_url", "calendarUrl", "source", "sources", "ics")

_CONSOLE_GUARD = """<script>
(function () {
  var markers = %(markers)s;
  var keys = %(keys)s;
  function leaks(value) {
    if (value === null || value === undefined) return false;
    if (typeof value === "string") {
      for (var i = 0; i < markers.length; i++) {
        if (value.indexOf(markers[i]) !== -1) return true;
      }
      return false;
    }
    if (typeof value === "object") {
      for (var j = 0; j < keys.length; j++) {
        if (Object.prototype.hasOwnProperty.call(value, keys[j])) return true;
      }
      try { return leaks(JSON.stringify(value)); } catch (e) { return true; }
    }
    return false;
  }
  ["log", "info", "debug", "warn", "error", "trace"].forEach(function (name) {
    var original = console[name];
    if (typeof original !== "function") return;
    console[name] = function () {
      for (var k = 0; k < arguments.length; k++) {
        if (leaks(arguments[k])) return;
      }
      return original.apply(console, arguments);
    };
  });
})();
</script>"""

_HEAD_TAG = re.compile(r"<head\b[^>]*>", re.IGNORECASE)
_HTML_TAG = re.compile(r"<html\b[^>]*>", re.IGNORECASE)
_CHARSET = re.compile(r"charset=([\w-]+)", re.IGNORECASE)


def console_guard_script() -> str:
    return _CONSOLE_GUARD % {
        "markers": json.dumps(list(LEAK_MARKERS)),
        "keys": json.dumps(list(LEAK_KEYS)),
    }


def inject_console_guard(html: str) -> str:
    """Insert the console guard as early in the document as possible."""
    script = console_guard_script()
    for tag in (_HEAD_TAG, _HTML_TAG):
        match = tag.search(html)
        if match:
            return html[: match.end()] + script + html[match.end():]
    return script + html


def redact_urls(text: str) -> str:
    """Replace calendar URLs and percent-encoded addresses with a placeholder."""
    for pattern in REDACTION_PATTERNS:
        text = pattern.sub(PLACEHOLDER, text)
    return text


def is_calendar_content_type(content_type: str) -> bool:
    lowered = content_type.lower()
    return any(calendar_type in lowered for calendar_type in CALENDAR_CONTENT_TYPES)


def _charset(content_type: str) -> str:
    match = _CHARSET.search(content_type)
    return match.group(1) if match else "utf-8"


def process_event_json(text: str, processor: EventProcessor) -> str:
    """Run event post-processing over a JSON body.

    Malformed JSON is not an error: the body is returned unchanged.
    """
    try:
        payload = json.loads(text)
    except ValueError:
        logger.warning("Event listing is not valid JSON; skipping event processing")
        return text

    return json.dumps(process_payload(payload, processor), ensure_ascii=False)


def _to_response(upstream: UpstreamResponse, content: bytes) -> Response:
    response = Response(content=content, status_code=upstream.status_code)
    for key, value in with_header(upstream.headers, *CORS_HEADER):
        response.headers.append(key, value)
    return response


def sanitize(
    upstream: UpstreamResponse,
    pathname: str,
    processor: EventProcessor,
) -> Response:
    """Filter and rewrite an upstream response for the browser.

    Raises:
        AccessDenied: For calendar files, by content type or path
    """
    content_type = upstream.content_type
    if is_calendar_content_type(content_type) or is_calendar_file_path(pathname):
        logger.warning("Denied calendar file response")
        raise AccessDenied()

    lowered = content_type.lower()
    is_html = "text/html" in lowered
    is_json = "application/json" in lowered
    if not (is_html or is_json) or not upstream.content:
        return _to_response(upstream, upstream.content)

    charset = _charset(content_type)
    try:
        text = upstream.content.decode(charset, errors="replace")
    except LookupError:
        charset = "utf-8"
        text = upstream.content.decode(charset, errors="replace")

    if is_json and is_event_listing(pathname):
        text = process_event_json(text, processor)

    text = redact_urls(text)

    if is_html:
        text = inject_console_guard(text)

    return _to_response(upstream, text.encode(charset, errors="replace"))
