"""ASGI application for the calendar proxy.

## Routes

- /healthz - Local health check
- everything else - Proxied to the upstream calendar renderer

## Security

- Calendar source URLs are only ever sent upstream, never to the browser
- Raw calendar files (.ics / text/calendar) are refused with 403
- Non-public event details are replaced with "BUSY"
"""

from calendar_proxy.api.app import create_app

__all__ = ["create_app"]
