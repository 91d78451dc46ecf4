"""Forwarding to the upstream calendar renderer.

One `httpx.AsyncClient` is opened per request and closed with it; nothing
is pooled or cached across requests. No timeout or retry is applied here:
the hosting platform's request deadline bounds the fetch, and any failure
is terminal for the request.

## Headers

Request headers are forwarded except those that identify the inbound
transport or edge hop (Host, Cloudflare tracing headers, X-Forwarded-*).
Accept-Encoding is left to httpx, which decodes the body; the matching
Content-Encoding / Content-Length headers are dropped from the response
because the body is re-emitted decoded and possibly rewritten.

All header work is done on immutable tuples of pairs: every helper returns a
new tuple.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace

import httpx

from calendar_proxy.config import Settings
from calendar_proxy.errors import UpstreamError
from calendar_proxy.models.request import RequestContext, ResolvedSources, Route
from calendar_proxy.proxy.resolver import encode_source_cookie

logger = logging.getLogger(__name__)

Headers = tuple[tuple[str, str], ...]

STRIPPED_REQUEST_HEADERS = frozenset(
    {
        "host",
        "cf-ray",
        "cf-connecting-ip",
        "cf-ipcountry",
        "cf-visitor",
        "cdn-loop",
        "x-forwarded-for",
        "x-forwarded-host",
        "x-forwarded-proto",
        "x-real-ip",
        "forwarded",
        "accept-encoding",
        "content-length",
        "connection",
        "keep-alive",
        "transfer-encoding",
    }
)

STRIPPED_RESPONSE_HEADERS = frozenset(
    {
        "content-encoding",
        "content-length",
        "transfer-encoding",
        "connection",
        "keep-alive",
    }
)


def without_headers(headers: Headers, names: frozenset[str]) -> Headers:
    """Drop every header whose lower-cased name is in `names`."""
    return tuple((key, value) for key, value in headers if key.lower() not in names)


def with_header(headers: Headers, name: str, value: str) -> Headers:
    """Replace all values of a header with a single value."""
    return without_headers(headers, frozenset({name.lower()})) + ((name, value),)


def get_header(headers: Headers, name: str) -> str | None:
    lowered = name.lower()
    for key, value in headers:
        if key.lower() == lowered:
            return value
    return None


def forward_headers(headers: Headers, fallback_user_agent: str) -> Headers:
    """Inbound headers minus transport-identifying ones, with a User-Agent."""
    forwarded = without_headers(headers, STRIPPED_REQUEST_HEADERS)
    if get_header(forwarded, "user-agent") is None:
        forwarded = forwarded + (("User-Agent", fallback_user_agent),)
    return forwarded


@dataclass(frozen=True)
class UpstreamResponse:
    """Fully-read upstream response."""

    status_code: int
    headers: Headers
    content: bytes

    @property
    def content_type(self) -> str:
        return get_header(self.headers, "content-type") or ""

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    @classmethod
    def from_httpx(cls, response: httpx.Response) -> UpstreamResponse:
        return cls(
            status_code=response.status_code,
            headers=without_headers(
                tuple(response.headers.multi_items()), STRIPPED_RESPONSE_HEADERS
            ),
            content=response.content,
        )


def source_cookie(sources: tuple[str, ...], settings: Settings) -> str:
    """Set-Cookie value carrying the still-encrypted source list."""
    return (
        f"{settings.cookie_name}={encode_source_cookie(sources)}; "
        f"Path=/; SameSite=Lax; Max-Age={settings.cookie_max_age_seconds}"
    )


def with_source_cookie(
    response: UpstreamResponse,
    route: Route,
    resolved: ResolvedSources,
    settings: Settings,
) -> UpstreamResponse:
    """Attach the source-list cookie to a successful calendar page response.

    Only done when at least one source is token-wrapped, so later srcdoc and
    JSON requests from the same browser can recover the list without it
    appearing in a URL. The cookie holds the raw sources, never plaintext.
    """
    if route is not Route.MAIN_PAGE or not response.is_success or not resolved.has_tokens:
        return response

    headers = response.headers + (("Set-Cookie", source_cookie(resolved.sources, settings)),)
    return replace(response, headers=headers)


class UpstreamProxy:
    """Forwards classified requests to the fixed upstream host.

    Attributes:
        user_agent: User-Agent sent when the inbound request has none
        transport: Optional httpx transport (tests use `httpx.MockTransport`)
    """

    def __init__(
        self,
        user_agent: str,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.user_agent = user_agent
        self.transport = transport

    async def forward(self, target_url: str, context: RequestContext) -> UpstreamResponse:
        """Send the request upstream and read the whole response.

        Raises:
            UpstreamError: On any transport-level failure
        """
        headers = forward_headers(context.headers, self.user_agent)

        try:
            async with httpx.AsyncClient(
                transport=self.transport,
                timeout=None,
                follow_redirects=True,
            ) as client:
                response = await client.request(
                    context.method,
                    target_url,
                    headers=list(headers),
                    content=context.body or None,
                )
        except httpx.HTTPError as e:
            # Exception text can contain the target URL, which may hold a decrypted source
            logger.error(f"Upstream request failed: {type(e).__name__}")
            raise UpstreamError(f"Upstream request failed: {type(e).__name__}") from e

        logger.info(f"Upstream {context.method} {context.pathname} -> {response.status_code}")
        return UpstreamResponse.from_httpx(response)
