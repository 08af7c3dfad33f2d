"""
PiRSS Recovery
==============

Retry policies for network operations.
"""

from .retry_logic import RetryConfig, RetryManager

__all__ = ["RetryConfig", "RetryManager"]
