"""Application configuration.

Configuration is loaded from environment variables using pydantic-settings.
The encryption secret must be provided via the environment, never committed
to a config file.

## Required Environment Variables

- ENCRYPTION_KEY: URL-safe base64 encoded 32-byte secret used to decrypt
  `fernet://` calendar sources

## Optional Environment Variables

- CALENDAR_SOURCES: Comma-separated calendar sources (plain URLs and/or
  `fernet://` tokens). `CALENDAR_URL` is accepted as an alias.
- USER_EMAILS: Comma-separated addresses of the calendar owner, used to tell
  the owner declining an invitation apart from another attendee declining
- ALLOW_CLIENT_SOURCES: Accept sources from query/cookie/referer
  (default: true). Set to false to only ever use CALENDAR_SOURCES.
- UPSTREAM_BASE_URL: Calendar rendering service to front
- LOG_LEVEL: Logging level for the `serve` command (default: INFO)

## Example .env file

```
ENCRYPTION_KEY=cw_0x689RpI-jtRR7oE8h_eQsKImvJapLeSbXpwF4e4=
CALENDAR_SOURCES=fernet://gAAAAABl...,https://example.com/public.ics
USER_EMAILS=alice@example.com
ALLOW_CLIENT_SOURCES=false
```
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

TOKEN_PREFIX = "fernet://"


def is_token(source: str) -> bool:
    """Check whether a calendar source is token-wrapped."""
    return source.startswith(TOKEN_PREFIX)


def split_csv(value: str | None) -> list[str]:
    """Split a comma-separated setting, trimming whitespace and dropping blanks."""
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Application
    app_name: str = "Calendar Proxy"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"

    # Server
    host: str = "0.0.0.0"
    port: int = 8787

    # Security
    encryption_key: str | None = Field(
        default=None,
        description="URL-safe base64 encoded 32-byte token secret",
    )

    # Calendar sources
    calendar_sources: str = Field(
        default="",
        validation_alias=AliasChoices("calendar_sources", "calendar_url"),
        description="Comma-separated calendar sources (URLs or fernet:// tokens)",
    )
    user_emails: str = Field(
        default="",
        description="Comma-separated owner addresses for declined-event filtering",
    )
    allow_client_sources: bool = Field(
        default=True,
        description="Resolve sources from query/cookie/referer per request",
    )

    # Upstream
    upstream_base_url: str = "https://open-web-calendar.hosted.quelltext.eu"
    upstream_user_agent: str = "calendar-proxy/0.1.0"
    source_param: str = "url"

    # Source-list cookie
    cookie_name: str = "owc_urls"
    cookie_max_age_seconds: int = Field(default=3600, ge=1)

    @field_validator("upstream_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Upstream paths are appended verbatim, so drop any trailing slash."""
        return v.rstrip("/")

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return v.upper()

    @property
    def source_list(self) -> list[str]:
        """Configured calendar sources, in order."""
        return split_csv(self.calendar_sources)

    @property
    def user_email_list(self) -> list[str]:
        """Configured owner addresses, lower-cased."""
        return [email.lower() for email in split_csv(self.user_emails)]


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Settings are loaded once and cached. To reload, clear the cache:
    ```python
    get_settings.cache_clear()
    ```
    """
    return Settings()


def get_settings_uncached() -> Settings:
    """Get fresh settings without caching.

    Useful for testing when environment variables change.
    """
    return Settings()
