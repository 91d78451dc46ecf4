"""FastAPI application factory.

Creates the ASGI app: a local health check plus one catch-all route that
hands every other request to the proxy pipeline.

## Usage

```python
from calendar_proxy.api import create_app

app = create_app()

# Run with uvicorn
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8787)
```

## Configuration

The app is configured via environment variables. See `calendar_proxy.config`
for available settings.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import httpx
from fastapi import FastAPI, Request
from starlette.responses import Response

from calendar_proxy.config import Settings, get_settings
from calendar_proxy.errors import ProxyError, plain_text_response
from calendar_proxy.models.request import RequestContext
from calendar_proxy.proxy.handler import handle_request
from calendar_proxy.proxy.upstream import UpstreamProxy

logger = logging.getLogger(__name__)

PROXY_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


async def context_from_request(request: Request) -> RequestContext:
    """Snapshot the inbound request into an immutable context."""
    return RequestContext(
        pathname=request.url.path,
        query=tuple(request.query_params.multi_items()),
        raw_query=request.url.query,
        cookie_header=request.headers.get("cookie"),
        referer=request.headers.get("referer"),
        method=request.method,
        headers=tuple(request.headers.items()),
        body=await request.body(),
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    settings: Settings = app.state.settings

    logger.info(f"Starting {settings.app_name} v{settings.app_version}")
    logger.info(
        f"Upstream {settings.upstream_base_url}, "
        f"{len(settings.source_list)} configured source(s), "
        f"client sources {'allowed' if settings.allow_client_sources else 'ignored'}"
    )
    if not settings.encryption_key:
        logger.warning("ENCRYPTION_KEY is not set; proxied requests will fail")

    yield

    logger.info("Shutting down")


def create_app(
    settings: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Settings to use instead of the cached environment settings
        transport: httpx transport for upstream requests (tests pass a mock)

    Returns:
        Configured FastAPI application
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Privacy proxy for a hosted calendar renderer",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.upstream = UpstreamProxy(
        user_agent=settings.upstream_user_agent,
        transport=transport,
    )

    # Health check endpoint
    @app.get("/healthz", tags=["Health"])
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "version": settings.app_version}

    @app.api_route("/{path:path}", methods=PROXY_METHODS, include_in_schema=False)
    async def proxy(request: Request) -> Response:
        """Proxy everything else to the upstream renderer."""
        try:
            context = await context_from_request(request)
            return await handle_request(context, settings, app.state.upstream)
        except ProxyError as e:
            return e.to_response()
        except Exception as e:
            logger.exception("Unexpected error while proxying")
            return plain_text_response(f"Error: {e}", 500)

    return app
