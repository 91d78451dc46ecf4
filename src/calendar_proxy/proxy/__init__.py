"""Edge proxy in front of the hosted calendar renderer.

Real calendar URLs never reach the browser: sources arrive as `fernet://`
tokens (or come from server configuration), are decrypted here, and are only
ever sent to the upstream. Responses are scrubbed of calendar URLs and
private event details on the way back.

## Components

- `router`: path classification and upstream URL construction
- `resolver`: which calendar sources apply to a request
- `upstream`: the outbound fetch and header handling
- `sanitizer`: response filtering and rewriting
- `handler`: the per-request pipeline tying them together
"""

from calendar_proxy.proxy.handler import handle_request
from calendar_proxy.proxy.resolver import SecretResolver
from calendar_proxy.proxy.router import build_upstream_url, classify
from calendar_proxy.proxy.sanitizer import PLACEHOLDER, redact_urls, sanitize
from calendar_proxy.proxy.upstream import UpstreamProxy, UpstreamResponse

__all__ = [
    "PLACEHOLDER",
    "SecretResolver",
    "UpstreamProxy",
    "UpstreamResponse",
    "build_upstream_url",
    "classify",
    "handle_request",
    "redact_urls",
    "sanitize",
]
