"""Per-request resolution of calendar sources.

## Modes

**Per-request** (`ALLOW_CLIENT_SOURCES=true`): the first non-empty carrier
wins, with no merging across carriers:

1. Source query parameters on the request
2. `CALENDAR_SOURCES` setting
3. Source-list cookie from an earlier calendar page response
4. Source query parameters on the Referer URL

**Fixed** (`ALLOW_CLIENT_SOURCES=false`): always the `CALENDAR_SOURCES`
setting. Source parameters supplied by the client are ignored.

Sources may be plain URLs or `fernet://` tokens; resolution never decrypts.
"""

from __future__ import annotations

import logging
from urllib.parse import parse_qsl, quote, unquote, urlsplit

from starlette.requests import cookie_parser

from calendar_proxy.config import Settings
from calendar_proxy.errors import ConfigurationError
from calendar_proxy.models.request import RequestContext, ResolvedSources

logger = logging.getLogger(__name__)

COOKIE_SEPARATOR = "|"
# Characters encodeURIComponent leaves alone
_COOKIE_SAFE = "-_.!~*'()"


def encode_source_cookie(sources: tuple[str, ...] | list[str]) -> str:
    """Pipe-join and percent-encode sources for the cookie value."""
    return quote(COOKIE_SEPARATOR.join(sources), safe=_COOKIE_SAFE)


def decode_source_cookie(value: str) -> list[str]:
    """Inverse of `encode_source_cookie`; blank entries are dropped."""
    return [source for source in unquote(value).split(COOKIE_SEPARATOR) if source]


def sources_from_referer(referer: str | None, source_param: str) -> list[str]:
    """Source parameters on the Referer URL, in order."""
    if not referer:
        return []
    try:
        query = urlsplit(referer).query
    except ValueError:
        return []
    return [
        value
        for key, value in parse_qsl(query, keep_blank_values=True)
        if key == source_param and value
    ]


class SecretResolver:
    """Decides which calendar sources apply to a request."""

    def __init__(
        self,
        configured: list[str],
        allow_client_sources: bool = True,
        source_param: str = "url",
        cookie_name: str = "owc_urls",
    ):
        self.configured = tuple(configured)
        self.allow_client_sources = allow_client_sources
        self.source_param = source_param
        self.cookie_name = cookie_name

    @classmethod
    def from_settings(cls, settings: Settings) -> SecretResolver:
        return cls(
            configured=settings.source_list,
            allow_client_sources=settings.allow_client_sources,
            source_param=settings.source_param,
            cookie_name=settings.cookie_name,
        )

    def _from_cookie(self, cookie_header: str | None) -> list[str]:
        if not cookie_header:
            return []
        value = cookie_parser(cookie_header).get(self.cookie_name)
        return decode_source_cookie(value) if value else []

    def resolve(self, context: RequestContext) -> ResolvedSources:
        """Resolve the ordered source list for a request.

        Raises:
            ConfigurationError: In fixed mode when no sources are configured
        """
        if not self.allow_client_sources:
            if not self.configured:
                raise ConfigurationError("CALENDAR_SOURCES not configured")
            return ResolvedSources(self.configured, carrier="config")

        carriers = (
            ("query", lambda: [v for v in context.query_values(self.source_param) if v]),
            ("config", lambda: list(self.configured)),
            ("cookie", lambda: self._from_cookie(context.cookie_header)),
            ("referer", lambda: sources_from_referer(context.referer, self.source_param)),
        )
        for carrier, read in carriers:
            sources = read()
            if sources:
                logger.debug(f"Resolved {len(sources)} calendar source(s) from {carrier}")
                return ResolvedSources(tuple(sources), carrier=carrier)

        logger.debug("No calendar sources resolved")
        return ResolvedSources()
