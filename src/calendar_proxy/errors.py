"""Error taxonomy for the calendar proxy.

Every failure is terminal for the request that triggered it. Each error knows
the HTTP status it maps to and renders itself as a plain-text response that
already carries the CORS header, so the catch-all handler can return it
directly.

## Mapping

| Error | Status | Body |
|-------|--------|------|
| ConfigurationError | 500 | names the missing setting |
| DecodeError | 500 | "Failed to decrypt calendar URL: <reason>" |
| AccessDenied | 403 | fixed message |
| UpstreamError | 500 | "Error: <message>" |

Messages never contain token text or decrypted URLs.
"""

from __future__ import annotations

from starlette.responses import PlainTextResponse

CORS_HEADER = ("Access-Control-Allow-Origin", "*")


def plain_text_response(message: str, status_code: int) -> PlainTextResponse:
    """Build a text/plain response with the CORS header set."""
    return PlainTextResponse(
        message,
        status_code=status_code,
        headers=dict([CORS_HEADER]),
    )


class ProxyError(Exception):
    """Base exception for errors surfaced to the client."""

    status_code: int = 500

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def body(self) -> str:
        return f"Error: {self.message}"

    def to_response(self) -> PlainTextResponse:
        """Render this error as a client response."""
        return plain_text_response(self.body(), self.status_code)


class ConfigurationError(ProxyError):
    """Raised when a required setting (secret or source list) is absent."""

    def body(self) -> str:
        return self.message


class DecodeError(ProxyError):
    """Raised when a token cannot be decoded, authenticated or decrypted."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason

    def body(self) -> str:
        return f"Failed to decrypt calendar URL: {self.reason}"


class AccessDenied(ProxyError):
    """Raised for raw calendar-file downloads (by path or content type)."""

    status_code = 403
    MESSAGE = "Access to calendar files is not allowed"

    def __init__(self, message: str = MESSAGE):
        super().__init__(message)

    def body(self) -> str:
        return self.MESSAGE


class UpstreamError(ProxyError):
    """Raised when the upstream fetch fails at the transport level."""

    pass
