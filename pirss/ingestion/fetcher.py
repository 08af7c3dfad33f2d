"""
Fetch Client
============

Retrying HTTP access for upstream feeds, article pages and images, with
per-class timeouts and content-type validation for article bodies.
"""

import asyncio
import codecs
import ssl
from dataclasses import dataclass
from typing import Dict, Iterable, Optional

import aiohttp
import certifi

from ..config.settings import PiRSSSettings, get_settings
from ..recovery.retry_logic import RetryConfig, RetryManager
from ..utils.exceptions import NetworkError, PiRSSError, UnsupportedContentTypeError
from ..utils.logging import get_logger_for_component
from ..utils.validators import URLValidator


DEFAULT_IMAGE_CONTENT_TYPE = "image/jpeg"

# Declared charsets that Python spells differently
_CHARSET_ALIASES = {
    "iso-8859-1": "latin-1",
    "iso8859-1": "latin-1",
    "latin1": "latin-1",
}


@dataclass(frozen=True)
class ImagePayload:
    """Raw image bytes as served upstream."""

    data: bytes
    content_type: str


def normalize_charset(charset: Optional[str]) -> str:
    """Map a declared charset to a Python codec name, defaulting to UTF-8."""
    if not charset:
        return "utf-8"

    name = charset.strip().strip('"').lower()
    name = _CHARSET_ALIASES.get(name, name)
    try:
        codecs.lookup(name)
    except LookupError:
        return "utf-8"
    return name


def decode_body(body: bytes, charset: Optional[str]) -> str:
    """Decode an article body with its declared charset, UTF-8 otherwise."""
    return body.decode(normalize_charset(charset), errors="replace")


class FetchClient:
    """Shared aiohttp session with bounded retries.

    Use as an async context manager or call ``close()`` when done. The
    session is created lazily on the first request.
    """

    def __init__(
        self,
        settings: Optional[PiRSSSettings] = None,
        retry_manager: Optional[RetryManager] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        """Initialize fetch client.

        Args:
            settings: Application settings (default: global settings)
            retry_manager: Retry policy (default: built from fetch settings)
            session: Externally owned session to reuse
        """
        self.settings = settings or get_settings()
        self.fetch_settings = self.settings.fetch
        self.logger = get_logger_for_component("fetcher")
        self.retry_manager = retry_manager or RetryManager(
            RetryConfig(
                max_attempts=self.fetch_settings.max_attempts,
                base_delay=self.fetch_settings.retry_base_delay,
            )
        )
        self._session = session
        self._owns_session = session is None
        self.ssl_context = ssl.create_default_context(cafile=certifi.where())

    async def __aenter__(self) -> "FetchClient":
        await self._get_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(
                ssl=self.ssl_context,
                limit=self.fetch_settings.max_concurrent_articles * 2,
                limit_per_host=self.fetch_settings.max_concurrent_articles,
                enable_cleanup_closed=True,
            )
            self._session = aiohttp.ClientSession(
                connector=connector,
                headers=self.fetch_settings.default_headers(),
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the underlying session if this client created it."""
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def fetch(
        self,
        url: str,
        *,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
        expected_content_types: Optional[Iterable[str]] = None,
    ) -> str:
        """GET ``url`` and return its decoded body.

        Args:
            url: Absolute http(s) URL
            headers: Extra request headers
            timeout: Total timeout per attempt in seconds
            expected_content_types: Allowed response MIME types; None accepts any

        Returns:
            Body decoded with the declared charset (UTF-8 fallback)

        Raises:
            NetworkError: Every attempt failed
            UnsupportedContentTypeError: Response type is not allowed (no retry)
        """
        allowed = (
            {ct.lower() for ct in expected_content_types}
            if expected_content_types is not None
            else None
        )

        async def read_text(response: aiohttp.ClientResponse) -> str:
            if allowed is not None:
                self._check_content_type(url, response, allowed)
            body = await response.read()
            return decode_body(body, response.charset)

        return await self._request(url, read_text, headers, timeout or self.fetch_settings.article_timeout)

    async def fetch_feed(self, url: str, headers: Optional[Dict[str, str]] = None) -> str:
        """Fetch an upstream syndication document."""
        return await self.fetch(url, headers=headers, timeout=self.fetch_settings.feed_timeout)

    async def fetch_article(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> str:
        """Fetch an article page, rejecting non-document content types."""
        return await self.fetch(
            url,
            headers=headers,
            timeout=timeout or self.fetch_settings.article_timeout,
            expected_content_types=self.fetch_settings.allowed_content_types,
        )

    async def fetch_image(self, url: str, headers: Optional[Dict[str, str]] = None) -> ImagePayload:
        """Fetch raw image bytes and their content type."""

        async def read_bytes(response: aiohttp.ClientResponse) -> ImagePayload:
            data = await response.read()
            content_type = response.headers.get("Content-Type") or DEFAULT_IMAGE_CONTENT_TYPE
            return ImagePayload(data=data, content_type=content_type)

        return await self._request(url, read_bytes, headers, self.fetch_settings.image_timeout)

    async def _request(self, url, reader, headers, timeout):
        url = URLValidator.validate_http_url(url)

        async def attempt():
            session = await self._get_session()
            client_timeout = aiohttp.ClientTimeout(total=timeout)
            async with session.get(url, headers=headers, timeout=client_timeout) as response:
                response.raise_for_status()
                return await reader(response)

        try:
            return await self.retry_manager.retry_async(attempt, operation=f"GET {url}")
        except PiRSSError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            self.logger.error(f"Error fetching {url}: {e}")
            raise NetworkError(f"Failed to fetch {url}: {e}", url=url, cause=e) from e

    def _check_content_type(self, url: str, response: aiohttp.ClientResponse, allowed: set) -> None:
        # A missing header is tolerated; aiohttp reports it as octet-stream
        if "Content-Type" not in response.headers:
            return

        content_type = response.content_type.lower()
        if content_type not in allowed:
            raise UnsupportedContentTypeError(
                f"Unsupported content type '{content_type}' for {url}",
                url=url,
                content_type=content_type,
            )
