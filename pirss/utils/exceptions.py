"""
PiRSS Custom Exceptions
=======================

Exception hierarchy for PiRSS with error codes, context information
and user-facing messages.
"""

from typing import Optional, Dict, Any
from enum import Enum


class ErrorCode(str, Enum):
    """Error codes for categorizing exceptions."""

    # Configuration errors (C001-C099)
    CONFIG_INVALID = "C001"
    CONFIG_MISSING = "C002"

    # Fetch errors (F001-F099)
    FETCH_INVALID_URL = "F001"
    FETCH_TIMEOUT = "F002"
    FETCH_NETWORK_ERROR = "F003"
    FETCH_UNSUPPORTED_CONTENT = "F004"

    # Content processing errors (P001-P099)
    CONTENT_INVALID = "P001"
    CONTENT_NOT_FOUND = "P002"

    # Feed generation errors (G001-G099)
    GENERATION_FAILED = "G001"

    # Validation errors (V001-V099)
    VALIDATION_REQUIRED_FIELD = "V001"
    VALIDATION_INVALID_FORMAT = "V002"
    VALIDATION_DOMAIN_NOT_ALLOWED = "V003"


class PiRSSError(Exception):
    """Base exception for all PiRSS errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[ErrorCode] = None,
        context: Optional[Dict[str, Any]] = None,
        user_message: Optional[str] = None,
        recoverable: bool = False,
    ):
        """Initialize PiRSS error.

        Args:
            message: Technical error message for logging
            error_code: Categorized error code
            context: Additional context information
            user_message: User-friendly error message
            recoverable: Whether retrying the operation may succeed
        """
        super().__init__(message)
        self.error_code = error_code
        self.context = context or {}
        self.user_message = user_message or message
        self.recoverable = recoverable

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code.value if self.error_code else None,
            "error_message": str(self),
            "user_message": self.user_message,
            "context": self.context,
            "recoverable": self.recoverable,
        }

    def __str__(self) -> str:
        """String representation with error code."""
        if self.error_code:
            return f"[{self.error_code.value}] {super().__str__()}"
        return super().__str__()


class ConfigurationError(PiRSSError):
    """Configuration-related errors."""

    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", {})
        if config_key:
            context["config_key"] = config_key

        super().__init__(
            message=message,
            error_code=kwargs.pop("error_code", ErrorCode.CONFIG_INVALID),
            context=context,
            user_message=kwargs.pop("user_message", f"Configuration error: {message}"),
            **kwargs,
        )


class ValidationError(PiRSSError):
    """Data validation errors."""

    def __init__(self, message: str, field_name: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", {})
        if field_name:
            context["field_name"] = field_name

        super().__init__(
            message=message,
            error_code=kwargs.pop("error_code", ErrorCode.VALIDATION_INVALID_FORMAT),
            context=context,
            user_message=kwargs.pop(
                "user_message", f"Invalid {field_name or 'input'}: {message}"
            ),
            recoverable=kwargs.pop("recoverable", False),
            **kwargs,
        )


class NetworkError(PiRSSError):
    """A fetch that failed after exhausting its retry budget."""

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        cause: Optional[BaseException] = None,
        **kwargs,
    ):
        """Initialize network error.

        Args:
            message: Error message
            url: URL that could not be fetched
            cause: Underlying transport exception
            **kwargs: Additional arguments for PiRSSError
        """
        context = kwargs.pop("context", {})
        if url:
            context["url"] = url
        if cause is not None:
            context["cause"] = f"{type(cause).__name__}: {cause}"

        super().__init__(
            message=message,
            error_code=kwargs.pop("error_code", ErrorCode.FETCH_NETWORK_ERROR),
            context=context,
            user_message=kwargs.pop("user_message", "Network request failed"),
            recoverable=kwargs.pop("recoverable", True),
            **kwargs,
        )
        self.url = url
        self.cause = cause


class UnsupportedContentTypeError(PiRSSError):
    """Response content type is not one the article reader accepts."""

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        content_type: Optional[str] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})
        if url:
            context["url"] = url
        if content_type:
            context["content_type"] = content_type

        super().__init__(
            message=message,
            error_code=ErrorCode.FETCH_UNSUPPORTED_CONTENT,
            context=context,
            user_message=kwargs.pop("user_message", "Unsupported content type"),
            recoverable=False,
            **kwargs,
        )
        self.url = url
        self.content_type = content_type


class ContentNotFoundError(PiRSSError):
    """No extraction rule located article content on a page."""

    def __init__(self, message: str, article_url: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", {})
        if article_url:
            context["article_url"] = article_url

        super().__init__(
            message=message,
            error_code=ErrorCode.CONTENT_NOT_FOUND,
            context=context,
            user_message=kwargs.pop("user_message", "Article content not found"),
            recoverable=False,
            **kwargs,
        )
        self.article_url = article_url


class GenerationError(PiRSSError):
    """Whole-feed generation failed."""

    def __init__(self, message: str, feed_id: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", {})
        if feed_id:
            context["feed_id"] = feed_id

        super().__init__(
            message=message,
            error_code=ErrorCode.GENERATION_FAILED,
            context=context,
            user_message=kwargs.pop("user_message", "Failed to generate RSS feed"),
            recoverable=kwargs.pop("recoverable", True),
            **kwargs,
        )
        self.feed_id = feed_id


def is_retryable_error(exception: PiRSSError) -> bool:
    """Check if an error is worth retrying.

    Args:
        exception: PiRSS exception to check

    Returns:
        True if the error is potentially retryable
    """
    if not exception.recoverable:
        return False

    retryable_codes = {
        ErrorCode.FETCH_NETWORK_ERROR,
        ErrorCode.FETCH_TIMEOUT,
    }

    return exception.error_code in retryable_codes
