"""
PiRSS Configuration System
==========================

Configuration management with environment variables and Pydantic models.
Environment variables (prefix ``PIRSS_``, nested with ``__``) override
Field defaults.
"""

from pathlib import Path
from typing import List, Optional
from enum import Enum

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

from ..utils.exceptions import ConfigurationError, ErrorCode


class LogLevel(str, Enum):
    """Available log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class ServerSettings(BaseModel):
    """HTTP server binding."""
    host: str = Field(default="0.0.0.0", description="Interface to bind")
    port: int = Field(default=3000, ge=1, le=65535, description="Port to listen on")
    service_base_url: Optional[str] = Field(
        default=None,
        description="Public base URL used in proxy links and scheduled refreshes"
    )

    def resolve_base_url(self) -> str:
        """Public base URL, derived from host and port when not configured."""
        if self.service_base_url:
            return self.service_base_url.rstrip("/")

        host = "localhost" if self.host == "0.0.0.0" else self.host
        return f"http://{host}:{self.port}"


class PrimarySourceSettings(BaseModel):
    """Upstream feed rewritten with full article bodies."""
    feed_url: str = Field(default="https://sspai.com/feed", description="Upstream RSS feed")
    site_url: str = Field(default="https://sspai.com", description="Upstream site")
    cdn_domain: str = Field(default="cdnfile.sspai.com", description="Image CDN host allowed through the proxy")
    referer: str = Field(default="https://sspai.com/", description="Referer sent upstream")
    route: str = Field(default="/sspai", description="Route serving the feed")
    cache_id: str = Field(default="full-rss-feed", description="Feed cache namespace id")
    title: str = Field(default="SSPAI (少数派) - Full Text Feed")
    description: str = Field(default="Full-text RSS feed for SSPAI articles with image proxy")
    language: str = Field(default="zh-CN")
    ttl_minutes: int = Field(default=30, ge=1, description="Channel <ttl> advertised to readers")
    source_label: str = Field(default="SSPAI", description="Label used in placeholder links")


class SecondarySourceSettings(BaseModel):
    """Upstream feed rewritten with synthesized summaries."""
    feed_url: str = Field(default="https://news.ycombinator.com/rss")
    site_url: str = Field(default="https://news.ycombinator.com")
    route: str = Field(default="/ycombinator")
    cache_id: str = Field(default="hacker-news-feed")
    title: str = Field(default="Hacker News - Beautified Feed")
    description: str = Field(default="Beautified summaries with lead images for Hacker News stories")
    language: str = Field(default="en-US")
    ttl_minutes: int = Field(default=15, ge=1)
    discussion_label: str = Field(default="Hacker News", description="Name of the discussion site")
    article_timeout: float = Field(default=15.0, gt=0, description="Article fetch timeout in seconds")


class FetchSettings(BaseModel):
    """Outbound HTTP behaviour."""
    user_agent: str = Field(
        default=(
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
        )
    )
    accept: str = Field(
        default="text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8"
    )
    accept_language: str = Field(default="zh-CN,zh;q=0.9,en;q=0.8")
    max_attempts: int = Field(default=3, ge=1, le=10, description="Attempts per GET")
    retry_base_delay: float = Field(default=1.0, ge=0.0, description="Delay before the first retry, doubled after")
    feed_timeout: float = Field(default=30.0, gt=0, description="Feed fetch timeout in seconds")
    article_timeout: float = Field(default=20.0, gt=0, description="Article fetch timeout in seconds")
    image_timeout: float = Field(default=15.0, gt=0, description="Image fetch timeout in seconds")
    max_concurrent_articles: int = Field(default=10, ge=1, le=100, description="Concurrent article fetches per feed")
    allowed_content_types: List[str] = Field(
        default=[
            "text/html",
            "application/xhtml+xml",
            "text/plain",
            "text/xml",
            "application/xml",
        ],
        description="Content types accepted for article pages"
    )

    def default_headers(self) -> dict:
        return {
            "User-Agent": self.user_agent,
            "Accept": self.accept,
            "Accept-Language": self.accept_language,
        }


class CacheSettings(BaseModel):
    """TTLs and sweep periods per cache namespace, in seconds."""
    feed_ttl: int = Field(default=1800, ge=1)
    article_ttl: int = Field(default=3600, ge=1)
    image_ttl: int = Field(default=86400, ge=1)
    feed_check_period: int = Field(default=120, ge=1)
    article_check_period: int = Field(default=300, ge=1)
    image_check_period: int = Field(default=600, ge=1)


class SchedulerSettings(BaseModel):
    """Background refresh of the primary feed."""
    feed_refresh_enabled: bool = Field(default=True)
    feed_refresh_interval_minutes: float = Field(default=30, gt=0)
    prime_on_startup: bool = Field(default=True, description="Generate once when the server starts")


class ExtractionSettings(BaseModel):
    """Heuristic thresholds for content extraction and summaries."""
    min_text_length: int = Field(default=200, ge=0, description="Characters a sparse candidate must exceed")
    min_paragraph_count: int = Field(default=3, ge=0, description="Paragraphs the page-wide fallback must exceed")
    summary_min_first_paragraph: int = Field(default=40, ge=0)
    summary_max_paragraphs: int = Field(default=3, ge=1)
    summary_max_paragraph_length: int = Field(default=600, ge=10)
    image_proxy_path: str = Field(default="/image-proxy")
    tracking_attribute_prefix: str = Field(default="data-v-")

    @field_validator("image_proxy_path")
    @classmethod
    def validate_proxy_path(cls, v):
        if not v.startswith("/"):
            raise ValueError("image_proxy_path must start with '/'")
        return v


class LoggingSettings(BaseModel):
    """Logging configuration."""
    level: LogLevel = Field(default=LogLevel.INFO, description="Global log level")
    file_path: Optional[str] = Field(default="logs/pirss.log", description="Log file path")
    max_file_size_mb: int = Field(default=10, ge=1, le=100, description="Max log file size in MB")
    backup_count: int = Field(default=5, ge=1, le=20, description="Number of log backup files")
    structured_logging: bool = Field(default=False, description="Use structured JSON logging")
    console_logging: bool = Field(default=True, description="Enable console logging")


class PiRSSSettings(BaseSettings):
    """Main application settings."""

    server: ServerSettings = Field(default_factory=ServerSettings)
    primary: PrimarySourceSettings = Field(default_factory=PrimarySourceSettings)
    secondary: SecondarySourceSettings = Field(default_factory=SecondarySourceSettings)
    fetch: FetchSettings = Field(default_factory=FetchSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    extraction: ExtractionSettings = Field(default_factory=ExtractionSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    app_name: str = Field(default="PiRSS", description="Application name")
    version: str = Field(default="1.0.0", description="Application version")
    debug: bool = Field(default=False, description="Enable debug mode")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "env_nested_delimiter": "__",
        "env_prefix": "PIRSS_",
    }

    def validate_configuration(self) -> None:
        """Validate cross-field configuration."""
        errors = []

        if self.primary.route == self.secondary.route:
            errors.append("primary and secondary feeds must use different routes")

        if self.extraction.image_proxy_path in (self.primary.route, self.secondary.route):
            errors.append("image proxy path collides with a feed route")

        if self.logging.file_path:
            try:
                Path(self.logging.file_path).parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                errors.append(f"Invalid log file path: {e}")

        if errors:
            raise ConfigurationError(
                f"Configuration validation failed: {'; '.join(errors)}",
                error_code=ErrorCode.CONFIG_INVALID
            )

    @property
    def scheduler_interval_seconds(self) -> float:
        return self.scheduler.feed_refresh_interval_minutes * 60

    @property
    def scheduled_feed_ttl(self) -> int:
        """TTL for scheduler-written feeds, never shorter than one interval."""
        return int(max(self.cache.feed_ttl, self.scheduler_interval_seconds))

    def get_effective_log_level(self) -> str:
        """Get effective log level considering debug mode."""
        if self.debug:
            return "DEBUG"
        return self.logging.level.value


def load_settings() -> PiRSSSettings:
    """Load settings from environment variables and defaults.

    Returns:
        Loaded and validated settings

    Raises:
        ConfigurationError: If configuration is invalid
    """
    from dotenv import load_dotenv
    load_dotenv()

    try:
        settings = PiRSSSettings()
        settings.validate_configuration()
        return settings

    except ConfigurationError:
        raise
    except Exception as e:
        raise ConfigurationError(
            f"Failed to initialize settings: {e}",
            error_code=ErrorCode.CONFIG_INVALID
        ) from e


_settings: Optional[PiRSSSettings] = None


def get_settings(reload: bool = False) -> PiRSSSettings:
    """Get global settings instance (singleton pattern).

    Args:
        reload: Force reload of settings

    Returns:
        Global settings instance
    """
    global _settings

    if _settings is None or reload:
        _settings = load_settings()

    return _settings
