"""Pytest fixtures for calendar proxy tests.

This module provides test fixtures that ensure:
1. No real upstream calls are made (httpx.MockTransport stands in)
2. Isolated test environment with controlled configuration
3. Tokens are produced with the standard Fernet implementation
"""

import os
from typing import Callable

import httpx
import pytest
from cryptography.fernet import Fernet

# Set test environment BEFORE importing application modules
TEST_SECRET = "cw_0x689RpI-jtRR7oE8h_eQsKImvJapLeSbXpwF4e4="
os.environ.setdefault("ENCRYPTION_KEY", TEST_SECRET)
os.environ.setdefault("CALENDAR_SOURCES", "")
os.environ.setdefault("USER_EMAILS", "alice@example.com")

from fastapi.testclient import TestClient

from calendar_proxy.api import create_app
from calendar_proxy.config import Settings


# =============================================================================
# Test Isolation Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def reset_settings_cache():
    """Reset settings cache before each test to ensure clean state."""
    from calendar_proxy.config import get_settings
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


# =============================================================================
# Token Fixtures
# =============================================================================


@pytest.fixture
def secret() -> str:
    """A valid 32-byte URL-safe base64 secret."""
    return TEST_SECRET


@pytest.fixture
def make_token(secret: str) -> Callable[[str], str]:
    """Create `fernet://` tokens with the reference Fernet implementation."""
    fernet = Fernet(secret.encode("ascii"))

    def _make(plaintext: str) -> str:
        return "fernet://" + fernet.encrypt(plaintext.encode("utf-8")).decode("ascii")

    return _make


# =============================================================================
# App Fixtures
# =============================================================================


class RecordingUpstream:
    """Mock upstream that records requests and replies from a handler."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.responder: Callable[[httpx.Request], httpx.Response] = lambda request: httpx.Response(
            200,
            headers={"content-type": "text/html; charset=utf-8"},
            text="<html><head><title>Calendar</title></head><body></body></html>",
        )

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responder(request)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]

    def source_params(self) -> list[str]:
        return self.last.url.params.get_list("url")


@pytest.fixture
def upstream() -> RecordingUpstream:
    """Mock upstream calendar renderer."""
    return RecordingUpstream()


@pytest.fixture
def settings(secret: str) -> Settings:
    """Settings for per-request source mode."""
    return Settings(
        encryption_key=secret,
        calendar_sources="",
        user_emails="alice@example.com",
        allow_client_sources=True,
    )


@pytest.fixture
def make_client(upstream: RecordingUpstream) -> Callable[[Settings], TestClient]:
    """Build a test client whose upstream is the recording mock."""

    def _make(app_settings: Settings) -> TestClient:
        app = create_app(app_settings, transport=httpx.MockTransport(upstream))
        return TestClient(app)

    return _make


@pytest.fixture
def client(make_client, settings: Settings) -> TestClient:
    """Test client in per-request source mode."""
    return make_client(settings)


# =============================================================================
# Event Fixtures
# =============================================================================


@pytest.fixture
def public_event() -> dict:
    return {
        "name": "Team sync",
        "description": "Weekly",
        "start": "2024-03-04T09:00:00Z",
        "end": "2024-03-04T10:00:00Z",
        "calendar-index": 0,
        "class": "PUBLIC",
        "location": "Room 1",
    }


@pytest.fixture
def private_event() -> dict:
    return {
        "name": "Doctor",
        "description": "Annual checkup",
        "start": "2024-03-04T14:00:00Z",
        "end": "2024-03-04T15:00:00Z",
        "calendar-index": 0,
        "location": "Clinic",
        "uid": "abc-123",
        "attendees": ["alice@example.com"],
    }
