"""Fernet token codec for calendar source URLs.

Calendar sources that embed personal data are distributed as `fernet://`
tokens instead of plain URLs. This module authenticates and decrypts them.

## Token Layout

```
version (1B, 0x80) | timestamp (8B) | IV (16B) | ciphertext | HMAC-SHA256 (32B)
```

The whole token is URL-safe base64 encoded. The HMAC covers every byte
before the tag. The timestamp is parsed but never checked: tokens do not
expire.

## Key Handling

The secret is a URL-safe base64 string that must decode to exactly 32 bytes.
It is split directly, with no hashing or derivation step:
- Signing key: bytes 0-15
- Encryption key: bytes 16-31 (AES-128-CBC)

This is the same split `cryptography.fernet.Fernet` uses, so tokens issued by
any standard Fernet library decode here. Do not add a derivation step.

## Usage

```python
from calendar_proxy.crypto import decode, encode

token = encode("https://example.com/private.ics", secret)
url = decode(token, secret)
```
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
from dataclasses import dataclass

from cryptography.exceptions import InvalidSignature
from cryptography.fernet import Fernet
from cryptography.hazmat.primitives import hashes, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.hmac import HMAC

from calendar_proxy.config import TOKEN_PREFIX
from calendar_proxy.errors import ConfigurationError, DecodeError

logger = logging.getLogger(__name__)

VERSION = 0x80
SECRET_LENGTH = 32
TIMESTAMP_LENGTH = 8
IV_LENGTH = 16
HMAC_LENGTH = 32
# version + timestamp + IV + empty ciphertext + HMAC
MIN_TOKEN_LENGTH = 1 + TIMESTAMP_LENGTH + IV_LENGTH + HMAC_LENGTH

_IV_START = 1 + TIMESTAMP_LENGTH
_CIPHERTEXT_START = _IV_START + IV_LENGTH

_B64URL = re.compile(r"[A-Za-z0-9_-]*={0,2}")


def _b64url_decode(value: str) -> bytes:
    """Decode URL-safe base64, tolerating missing padding.

    Characters outside the URL-safe alphabet are rejected, not skipped.
    """
    value = value.strip()
    if not _B64URL.fullmatch(value):
        raise ValueError("invalid base64url characters")
    padded = value + "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii"))


@dataclass(frozen=True)
class TokenParts:
    """A token split into its fields. The timestamp is informational only."""

    version: int
    timestamp: int
    iv: bytes
    ciphertext: bytes
    tag: bytes
    signed: bytes


@dataclass(frozen=True)
class SecretKeys:
    """Signing and encryption halves of a 32-byte secret."""

    signing_key: bytes
    encryption_key: bytes

    @classmethod
    def from_secret(cls, secret: str) -> SecretKeys:
        """Split a base64url secret into its two 16-byte keys.

        Raises:
            DecodeError: If the secret is not base64 or not exactly 32 bytes
        """
        try:
            raw = _b64url_decode(secret)
        except (binascii.Error, ValueError) as e:
            raise DecodeError(f"Failed to decode secret key: {e}") from e

        if len(raw) != SECRET_LENGTH:
            raise DecodeError(
                f"Invalid secret key length: {len(raw)}, expected {SECRET_LENGTH}"
            )

        return cls(signing_key=raw[:16], encryption_key=raw[16:])


def parse_token(token: str) -> TokenParts:
    """Decode the transport encoding and split a token into its fields.

    Raises:
        DecodeError: If the token is not base64, too short, or has the wrong version
    """
    try:
        data = _b64url_decode(token)
    except (binascii.Error, ValueError) as e:
        raise DecodeError("Invalid Fernet token: not valid base64") from e

    if len(data) < MIN_TOKEN_LENGTH:
        raise DecodeError("Invalid Fernet token: too short")

    if data[0] != VERSION:
        raise DecodeError("Invalid Fernet token: unsupported version")

    return TokenParts(
        version=data[0],
        timestamp=int.from_bytes(data[1:_IV_START], byteorder="big"),
        iv=data[_IV_START:_CIPHERTEXT_START],
        ciphertext=data[_CIPHERTEXT_START:-HMAC_LENGTH],
        tag=data[-HMAC_LENGTH:],
        signed=data[:-HMAC_LENGTH],
    )


def _verify_signature(parts: TokenParts, keys: SecretKeys) -> None:
    h = HMAC(keys.signing_key, hashes.SHA256())
    h.update(parts.signed)
    try:
        # Constant-time comparison
        h.verify(parts.tag)
    except InvalidSignature as e:
        raise DecodeError("Invalid Fernet token: HMAC verification failed") from e


def _decrypt(parts: TokenParts, keys: SecretKeys) -> bytes:
    decryptor = Cipher(
        algorithms.AES(keys.encryption_key),
        modes.CBC(parts.iv),
    ).decryptor()
    unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
    try:
        padded = decryptor.update(parts.ciphertext) + decryptor.finalize()
        return unpadder.update(padded) + unpadder.finalize()
    except ValueError as e:
        raise DecodeError("Invalid Fernet token: decryption failed") from e


def strip_prefix(source: str) -> str:
    """Remove the `fernet://` scheme prefix if present."""
    if source.startswith(TOKEN_PREFIX):
        return source[len(TOKEN_PREFIX):]
    return source


def decode(token: str, secret: str) -> str:
    """Authenticate and decrypt a token into its plaintext URL.

    The HMAC is verified before any decryption is attempted.

    Args:
        token: Token text, with or without the `fernet://` prefix
        secret: URL-safe base64 encoded 32-byte secret

    Returns:
        The decrypted plaintext

    Raises:
        DecodeError: On any decoding, authentication or decryption failure
    """
    parts = parse_token(strip_prefix(token))
    keys = SecretKeys.from_secret(secret)

    _verify_signature(parts, keys)
    plaintext = _decrypt(parts, keys)

    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecodeError("Invalid Fernet token: plaintext is not UTF-8") from e


def encode(plaintext: str, secret: str) -> str:
    """Encrypt a URL into a `fernet://` token.

    Uses the standard Fernet construction, so the output is what any other
    Fernet issuer would produce for the same secret.

    Raises:
        DecodeError: If the secret is unusable
    """
    # Validates length and encoding with the same rules as decode()
    keys = SecretKeys.from_secret(secret)
    key = base64.urlsafe_b64encode(keys.signing_key + keys.encryption_key)
    token = Fernet(key).encrypt(plaintext.encode("utf-8"))
    return TOKEN_PREFIX + token.decode("ascii")


def decode_source(source: str, secret: str | None) -> str:
    """Resolve one calendar source to the URL the upstream should fetch.

    Plain URLs pass through unchanged; `fernet://` sources are decrypted.
    """
    if not source.startswith(TOKEN_PREFIX):
        return source

    if not secret:
        raise ConfigurationError("ENCRYPTION_KEY not configured")

    try:
        return decode(source, secret)
    except DecodeError as e:
        logger.error(f"Token decode failed: {e.reason}")
        raise
