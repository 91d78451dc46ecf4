"""Token codec for encrypted calendar sources."""

from calendar_proxy.crypto.token import (
    MIN_TOKEN_LENGTH,
    SecretKeys,
    TokenParts,
    decode,
    decode_source,
    encode,
    parse_token,
    strip_prefix,
)

__all__ = [
    "MIN_TOKEN_LENGTH",
    "SecretKeys",
    "TokenParts",
    "decode",
    "decode_source",
    "encode",
    "parse_token",
    "strip_prefix",
]
