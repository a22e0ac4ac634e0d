"""Resilience patterns for talking to the response store.

Provides retry logic with exponential backoff for caller-initiated
re-sync of writes that did not reach the store.
"""

from .retry import (
    RetryConfig,
    RetryContext,
    RetryExhausted,
)

__all__ = [
    "RetryConfig",
    "RetryContext",
    "RetryExhausted",
]
