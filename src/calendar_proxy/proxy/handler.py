"""Per-request proxy pipeline.

```
classify -> resolve sources -> decrypt tokens -> forward -> sanitize
```

Each request is handled independently; the only state carried between
requests is the client-held source-list cookie.
"""

from __future__ import annotations

import logging

from starlette.responses import Response

from calendar_proxy.config import Settings
from calendar_proxy.crypto.token import decode_source
from calendar_proxy.errors import ConfigurationError
from calendar_proxy.events.processor import EventProcessor
from calendar_proxy.models.request import RequestContext, ResolvedSources, Route
from calendar_proxy.proxy.resolver import SecretResolver
from calendar_proxy.proxy.router import build_upstream_url, classify
from calendar_proxy.proxy.sanitizer import sanitize
from calendar_proxy.proxy.upstream import UpstreamProxy, with_source_cookie

logger = logging.getLogger(__name__)


async def handle_request(
    context: RequestContext,
    settings: Settings,
    upstream: UpstreamProxy,
) -> Response:
    """Proxy one inbound request to the upstream renderer.

    Raises:
        AccessDenied: For calendar-file paths or responses
        ConfigurationError: If the secret (or, in fixed mode, the source list) is missing
        DecodeError: If a token-wrapped source cannot be decrypted
        UpstreamError: If the upstream fetch fails
    """
    route = classify(context.pathname)

    if not settings.encryption_key:
        raise ConfigurationError("ENCRYPTION_KEY not configured")

    logger.debug(f"{context.method} {context.pathname} classified as {route.value}")

    resolved = ResolvedSources()
    sources: list[str] = []
    if route is not Route.STATIC_PASSTHROUGH:
        resolved = SecretResolver.from_settings(settings).resolve(context)
        sources = [decode_source(source, settings.encryption_key) for source in resolved.sources]

    target_url = build_upstream_url(
        route,
        context,
        sources,
        base_url=settings.upstream_base_url,
        source_param=settings.source_param,
    )

    response = await upstream.forward(target_url, context)
    response = with_source_cookie(response, route, resolved, settings)

    processor = EventProcessor(user_emails=settings.user_email_list)
    return sanitize(response, context.pathname, processor)
