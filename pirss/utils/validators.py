"""
PiRSS Input Validators
======================

URL validation and normalization helpers shared by the fetcher,
the image proxy and the summary synthesizer.
"""

from typing import Optional
from urllib.parse import urljoin, urlparse

from .exceptions import ValidationError, ErrorCode


class URLValidator:
    """URL validation and normalization utilities."""

    ALLOWED_SCHEMES = {'http', 'https'}

    @classmethod
    def validate_http_url(cls, url: str) -> str:
        """Validate an absolute http(s) URL.

        Args:
            url: URL to validate

        Returns:
            The URL with surrounding whitespace removed

        Raises:
            ValidationError: If URL is missing, relative or not http(s)
        """
        if not url or not isinstance(url, str):
            raise ValidationError(
                "URL is required and must be a string",
                error_code=ErrorCode.VALIDATION_REQUIRED_FIELD,
                field_name="url"
            )

        url = url.strip()

        try:
            parsed = urlparse(url)
        except ValueError as e:
            raise ValidationError(
                f"Invalid URL format: {e}",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name="url"
            ) from e

        if parsed.scheme.lower() not in cls.ALLOWED_SCHEMES:
            raise ValidationError(
                f"URL scheme must be {' or '.join(sorted(cls.ALLOWED_SCHEMES))}",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name="url"
            )

        if not parsed.netloc:
            raise ValidationError(
                "URL must include a hostname",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name="url"
            )

        return url

    @classmethod
    def validate_image_url(cls, url: str, allowed_domain: str) -> str:
        """Validate an image URL against the proxy allow-list.

        Raises:
            ValidationError: VALIDATION_DOMAIN_NOT_ALLOWED when the host is
                not the allowed domain, other codes for malformed URLs
        """
        url = cls.validate_http_url(url)
        if not host_matches(url, allowed_domain):
            raise ValidationError(
                "Invalid image domain",
                error_code=ErrorCode.VALIDATION_DOMAIN_NOT_ALLOWED,
                field_name="url",
                user_message="Invalid image domain"
            )
        return url


def host_matches(url: Optional[str], domain: str) -> bool:
    """True when ``url`` (absolute or protocol-relative) is served by ``domain``."""
    if not url or not domain:
        return False
    try:
        hostname = urlparse(url.strip()).hostname
    except ValueError:
        return False
    return bool(hostname) and hostname.lower() == domain.lower()


def safe_hostname(url: str, default: str = "source") -> str:
    """Hostname of ``url`` or ``default`` when it cannot be parsed."""
    try:
        return urlparse(url).hostname or default
    except ValueError:
        return default


def resolve_url(candidate: Optional[str], page_url: str) -> Optional[str]:
    """Resolve a possibly relative resource URL against the page URL.

    Empty candidates and ``data:`` URIs resolve to None. Protocol-relative
    URLs are pinned to https.
    """
    if not candidate:
        return None

    trimmed = candidate.strip()
    if not trimmed or trimmed.lower().startswith("data:"):
        return None

    if trimmed.startswith("//"):
        return f"https:{trimmed}"

    try:
        return urljoin(page_url, trimmed)
    except ValueError:
        return trimmed


def normalize_base_url(base_url: Optional[str]) -> str:
    """Base URL with a single trailing slash removed."""
    normalized = base_url or ""
    if normalized.endswith("/"):
        normalized = normalized[:-1]
    return normalized

