"""
PiRSS Retry Logic
=================

Bounded retries with exponential backoff for idempotent network operations.
"""

import asyncio
import inspect
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

import aiohttp

from ..utils.exceptions import PiRSSError, is_retryable_error
from ..utils.logging import get_logger_for_component


T = TypeVar('T')


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_attempts: int = 3                  # Total attempts, including the first
    base_delay: float = 1.0                # Delay before the first retry
    exponential_base: float = 2.0          # Backoff multiplier
    max_delay: float = 60.0                # Upper bound on a single delay

    retry_on_exceptions: tuple = (
        aiohttp.ClientError,
        asyncio.TimeoutError,
        ConnectionError,
        TimeoutError,
    )


class RetryManager:
    """Retries async callables with exponential backoff."""

    def __init__(self, config: Optional[RetryConfig] = None):
        self.config = config or RetryConfig()
        self.logger = get_logger_for_component('retry_manager')
        self.total_attempts = 0
        self.total_failures = 0

    async def retry_async(self,
                          func: Callable[..., Awaitable[T]],
                          *args,
                          operation: Optional[str] = None,
                          config: Optional[RetryConfig] = None,
                          **kwargs) -> T:
        """
        Call ``func`` until it succeeds or the attempt ceiling is reached.

        Args:
            func: Async function to retry
            *args: Function arguments
            operation: Label used in log messages
            config: Override default retry configuration
            **kwargs: Function keyword arguments

        Returns:
            Function result if successful

        Raises:
            The last exception once all attempts failed, or the first
            non-retryable exception immediately
        """
        retry_config = config or self.config
        label = operation or getattr(func, "__name__", "operation")

        for attempt in range(1, retry_config.max_attempts + 1):
            self.total_attempts += 1
            try:
                result = func(*args, **kwargs)
                if inspect.isawaitable(result):
                    result = await result

                if attempt > 1:
                    self.logger.info(f"Retry successful for {label} on attempt {attempt}")
                return result

            except Exception as e:
                self.total_failures += 1

                if not self.should_retry(e, retry_config):
                    self.logger.debug(f"Not retrying {label}: {e}")
                    raise

                if attempt >= retry_config.max_attempts:
                    self.logger.error(
                        f"All {retry_config.max_attempts} attempts failed for {label}: {e}"
                    )
                    raise

                delay = self.calculate_delay(attempt, retry_config)
                self.logger.warning(
                    f"Attempt {attempt}/{retry_config.max_attempts} failed for {label}: {e}. "
                    f"Retrying in {delay:.2f}s"
                )
                await asyncio.sleep(delay)

        # max_attempts >= 1 guarantees the loop returned or raised
        raise RuntimeError(f"Retry loop exited without result for {label}")

    def should_retry(self, exception: BaseException, config: RetryConfig) -> bool:
        """Determine if an exception should trigger a retry."""
        if isinstance(exception, PiRSSError):
            return is_retryable_error(exception)

        return isinstance(exception, config.retry_on_exceptions)

    def calculate_delay(self, attempt: int, config: Optional[RetryConfig] = None) -> float:
        """Delay after failed attempt ``attempt`` (1-based): base * 2^(attempt-1)."""
        config = config or self.config
        delay = config.base_delay * (config.exponential_base ** (attempt - 1))
        return min(delay, config.max_delay)

    def get_retry_statistics(self) -> Dict[str, Any]:
        return {
            'total_attempts': self.total_attempts,
            'total_failures': self.total_failures,
        }
