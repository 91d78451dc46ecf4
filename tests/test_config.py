"""Tests for settings loading."""

import pytest

from calendar_proxy.config import Settings, get_settings, is_token, split_csv


class TestSplitCsv:
    def test_trims_and_drops_blanks(self):
        assert split_csv(" a , ,b,, c ") == ["a", "b", "c"]

    def test_empty(self):
        assert split_csv("") == []
        assert split_csv(None) == []


class TestSettings:
    """Tests for environment-driven settings."""

    def test_sources_from_env(self, monkeypatch):
        """Test CALENDAR_SOURCES keeps order and mixes URLs with tokens."""
        monkeypatch.setenv("CALENDAR_SOURCES", "fernet://abc, https://example.com/a.ics")
        settings = Settings()
        assert settings.source_list == ["fernet://abc", "https://example.com/a.ics"]

    def test_calendar_url_alias(self, monkeypatch):
        """Test the CALENDAR_URL spelling is accepted."""
        monkeypatch.delenv("CALENDAR_SOURCES", raising=False)
        monkeypatch.setenv("CALENDAR_URL", "https://example.com/a.ics")
        assert Settings().source_list == ["https://example.com/a.ics"]

    def test_user_emails_lowercased(self):
        settings = Settings(user_emails="Alice@Example.com, bob@example.com")
        assert settings.user_email_list == ["alice@example.com", "bob@example.com"]

    def test_upstream_trailing_slash_stripped(self):
        settings = Settings(upstream_base_url="https://owc.example/")
        assert settings.upstream_base_url == "https://owc.example"

    def test_allow_client_sources_from_env(self, monkeypatch):
        monkeypatch.setenv("ALLOW_CLIENT_SOURCES", "false")
        assert Settings().allow_client_sources is False

    def test_defaults(self):
        settings = Settings()
        assert settings.allow_client_sources is True
        assert settings.cookie_name == "owc_urls"
        assert settings.cookie_max_age_seconds == 3600
        assert settings.source_param == "url"

    def test_invalid_cookie_age(self):
        with pytest.raises(ValueError):
            Settings(cookie_max_age_seconds=0)

    def test_get_settings_cached(self):
        assert get_settings() is get_settings()


class TestIsToken:
    def test_prefix(self):
        assert is_token("fernet://gAAAA")
        assert not is_token("https://example.com/a.ics")
        assert not is_token("FERNET://gAAAA")
