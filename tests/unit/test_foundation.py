#!/usr/bin/env python3
"""
Foundation Tests for PiRSS
==========================

Configuration, exception hierarchy and URL helpers.
"""

import pytest

from conftest import build_settings
from pirss.config.settings import (
    PiRSSSettings,
    PrimarySourceSettings,
    SchedulerSettings,
    SecondarySourceSettings,
    ServerSettings,
    ExtractionSettings,
)
from pirss.utils.exceptions import (
    ConfigurationError,
    ContentNotFoundError,
    ErrorCode,
    GenerationError,
    NetworkError,
    UnsupportedContentTypeError,
    ValidationError,
    is_retryable_error,
)
from pirss.utils.validators import (
    URLValidator,
    host_matches,
    normalize_base_url,
    resolve_url,
    safe_hostname,
)


class TestSettings:
    """Test configuration defaults and derived values."""

    def test_defaults(self):
        settings = PiRSSSettings(_env_file=None)

        assert settings.server.port == 3000
        assert settings.primary.route == "/sspai"
        assert settings.primary.cache_id == "full-rss-feed"
        assert settings.secondary.cache_id == "hacker-news-feed"
        assert settings.fetch.max_attempts == 3
        assert settings.cache.feed_ttl == 1800
        assert settings.cache.article_ttl == 3600
        assert settings.cache.image_ttl == 86400
        assert settings.extraction.min_text_length == 200
        assert settings.extraction.image_proxy_path == "/image-proxy"
        assert "text/html" in settings.fetch.allowed_content_types

    def test_resolve_base_url_from_host_and_port(self):
        assert ServerSettings(host="0.0.0.0", port=8080).resolve_base_url() == "http://localhost:8080"
        assert ServerSettings(host="10.0.0.2", port=80).resolve_base_url() == "http://10.0.0.2:80"

    def test_resolve_base_url_prefers_configured_value(self):
        server = ServerSettings(service_base_url="https://feeds.example.org/")
        assert server.resolve_base_url() == "https://feeds.example.org"

    def test_scheduled_ttl_never_shorter_than_interval(self):
        settings = build_settings(scheduler=SchedulerSettings(feed_refresh_interval_minutes=60))
        assert settings.scheduled_feed_ttl == 3600

        settings = build_settings(scheduler=SchedulerSettings(feed_refresh_interval_minutes=10))
        assert settings.scheduled_feed_ttl == settings.cache.feed_ttl

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("PIRSS_SERVER__PORT", "4100")
        monkeypatch.setenv("PIRSS_PRIMARY__CDN_DOMAIN", "img.example.net")

        settings = PiRSSSettings(_env_file=None)

        assert settings.server.port == 4100
        assert settings.primary.cdn_domain == "img.example.net"

    def test_route_collision_rejected(self):
        settings = build_settings(
            primary=PrimarySourceSettings(route="/feed"),
            secondary=SecondarySourceSettings(route="/feed"),
        )
        with pytest.raises(ConfigurationError):
            settings.validate_configuration()

    def test_proxy_path_must_be_absolute(self):
        with pytest.raises(ValueError):
            ExtractionSettings(image_proxy_path="image-proxy")

    def test_debug_forces_debug_level(self):
        settings = build_settings()
        settings.debug = True
        assert settings.get_effective_log_level() == "DEBUG"


class TestExceptions:
    """Test the error hierarchy."""

    def test_network_error_carries_cause(self):
        cause = ConnectionError("reset")
        error = NetworkError("fetch failed", url="https://a.example", cause=cause)

        assert error.recoverable is True
        assert error.cause is cause
        assert error.url == "https://a.example"
        assert str(error).startswith(f"[{ErrorCode.FETCH_NETWORK_ERROR.value}]")
        assert is_retryable_error(error)

    def test_unsupported_content_type_not_retryable(self):
        error = UnsupportedContentTypeError("bad type", url="https://a.example", content_type="image/png")

        assert error.content_type == "image/png"
        assert not is_retryable_error(error)

    def test_to_dict(self):
        error = GenerationError("upstream down", feed_id="full-rss-feed")
        data = error.to_dict()

        assert data["error_type"] == "GenerationError"
        assert data["error_code"] == ErrorCode.GENERATION_FAILED.value
        assert data["context"]["feed_id"] == "full-rss-feed"
        assert data["user_message"] == "Failed to generate RSS feed"

    def test_content_not_found_context(self):
        error = ContentNotFoundError("nothing", article_url="https://a.example/post")
        assert error.context["article_url"] == "https://a.example/post"
        assert not error.recoverable


class TestValidators:
    """Test URL helpers."""

    def test_validate_http_url(self):
        assert URLValidator.validate_http_url("  https://example.com/a ") == "https://example.com/a"

        for bad in ["", "ftp://example.com/x", "/relative/path", "https://"]:
            with pytest.raises(ValidationError):
                URLValidator.validate_http_url(bad)

    def test_validate_image_url_domain(self):
        url = "https://cdn.example.com/x.jpg"
        assert URLValidator.validate_image_url(url, "cdn.example.com") == url

        with pytest.raises(ValidationError) as exc_info:
            URLValidator.validate_image_url("https://evil.example.org/x.jpg", "cdn.example.com")
        assert exc_info.value.error_code == ErrorCode.VALIDATION_DOMAIN_NOT_ALLOWED

    def test_host_matches(self):
        assert host_matches("https://CDN.example.com/x.jpg", "cdn.example.com")
        assert host_matches("//cdn.example.com/x.jpg", "cdn.example.com")
        assert not host_matches("https://cdn.example.com.evil.org/x.jpg", "cdn.example.com")
        assert not host_matches("/local/x.jpg", "cdn.example.com")
        assert not host_matches(None, "cdn.example.com")

    def test_resolve_url(self):
        page = "https://example.com/posts/1"
        assert resolve_url("/img/a.png", page) == "https://example.com/img/a.png"
        assert resolve_url("//cdn.example.com/a.png", page) == "https://cdn.example.com/a.png"
        assert resolve_url("data:image/png;base64,AAAA", page) is None
        assert resolve_url("   ", page) is None
        assert resolve_url(None, page) is None

    def test_normalize_base_url(self):
        assert normalize_base_url("http://h:1/") == "http://h:1"
        assert normalize_base_url("http://h:1") == "http://h:1"
        assert normalize_base_url(None) == ""

    def test_safe_hostname(self):
        assert safe_hostname("https://news.example.com/a") == "news.example.com"
        assert safe_hostname("not a url") == "source"
