"""Per-request models for the proxy pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from calendar_proxy.config import is_token


class Route(str, Enum):
    """How an inbound path is handled."""

    MAIN_PAGE = "main_page"  # Calendar page; sources resolved and decrypted
    API_ENDPOINT = "api_endpoint"  # srcdoc / JSON endpoints; sources resolved
    STATIC_PASSTHROUGH = "static_passthrough"  # Forwarded verbatim


@dataclass(frozen=True)
class RequestContext:
    """Immutable view of the inbound request.

    Built once at the edge of the app and passed through the pipeline. The
    query is kept as ordered pairs because the source parameter repeats.
    """

    pathname: str
    query: tuple[tuple[str, str], ...] = ()
    raw_query: str = ""
    cookie_header: str | None = None
    referer: str | None = None
    method: str = "GET"
    headers: tuple[tuple[str, str], ...] = ()
    body: bytes = field(default=b"", repr=False)

    def query_values(self, name: str) -> list[str]:
        """All values of a repeated query parameter, in order."""
        return [value for key, value in self.query if key == name]

    def header(self, name: str) -> str | None:
        """First value of a header (case-insensitive)."""
        lowered = name.lower()
        for key, value in self.headers:
            if key.lower() == lowered:
                return value
        return None


@dataclass(frozen=True)
class ResolvedSources:
    """Calendar sources for one request, with the carrier they came from."""

    sources: tuple[str, ...] = ()
    carrier: str | None = None

    @property
    def has_tokens(self) -> bool:
        return any(is_token(source) for source in self.sources)

    def __bool__(self) -> bool:
        return bool(self.sources)
