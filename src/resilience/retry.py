"""Retry with exponential backoff.

The wizard engine never retries a failed write on its own; these helpers
are used when the caller explicitly asks for a re-sync of unsynced edits.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Callable, Optional, Tuple, Type, Union

logger = logging.getLogger(__name__)

ExceptionTypes = Union[Type[BaseException], Tuple[Type[BaseException], ...]]


class RetryExhausted(Exception):
    """Every allowed attempt failed."""

    def __init__(self, message: str, attempts: int, last_exception: Optional[BaseException] = None):
        super().__init__(message)
        self.attempts = attempts
        self.last_exception = last_exception


@dataclass
class RetryConfig:
    """Backoff policy.

    `max_attempts` counts the first try. The delay before attempt n+1 is
    base_delay * backoff_multiplier ** (n - 1), capped at max_delay, then
    spread by +/- jitter (a fraction of the delay).
    """
    max_attempts: int = 3
    base_delay: float = 0.5
    max_delay: float = 10.0
    backoff_multiplier: float = 2.0
    jitter: float = 0.1
    retryable_exceptions: ExceptionTypes = (Exception,)
    non_retryable_exceptions: ExceptionTypes = ()
    on_retry: Optional[Callable[[int, BaseException, float], None]] = None

    @classmethod
    def from_settings(cls, settings=None, **overrides: Any) -> "RetryConfig":
        """Build a policy from ResilienceSettings (RESILIENCE_* env when omitted)."""
        if settings is None:
            from config.settings import ResilienceSettings
            settings = ResilienceSettings()

        values = {
            "max_attempts": settings.retry_max_attempts,
            "base_delay": settings.retry_initial_delay,
            "max_delay": settings.retry_max_delay,
            "backoff_multiplier": settings.retry_backoff_multiplier,
        }
        values.update(overrides)
        return cls(**values)

    def calculate_delay(self, attempt: int) -> float:
        """Seconds to wait after the given (1-indexed) failed attempt."""
        delay = min(self.base_delay * self.backoff_multiplier ** (attempt - 1), self.max_delay)
        if self.jitter > 0:
            spread = delay * self.jitter
            delay = max(0.0, delay + random.uniform(-spread, spread))
        return delay

    def should_retry(self, exception: BaseException) -> bool:
        if self.non_retryable_exceptions and isinstance(exception, self.non_retryable_exceptions):
            return False
        return isinstance(exception, self.retryable_exceptions)


class RetryContext:
    """Attempt counter for hand-written retry loops.

    Usage:
        async with RetryContext(config) as ctx:
            while ctx.should_continue:
                try:
                    return await save()
                except SyncFailed as e:
                    await ctx.handle_exception(e)
    """

    def __init__(self, config: Optional[RetryConfig] = None, **kwargs: Any):
        self.config = config or RetryConfig(**kwargs)
        self.attempt = 0
        self.last_exception: Optional[BaseException] = None
        self._stopped = False

    @property
    def should_continue(self) -> bool:
        return not self._stopped and self.attempt < self.config.max_attempts

    async def handle_exception(self, exception: BaseException) -> None:
        """
        Account for a failed attempt and sleep before the next one.

        Raises:
            exception: unchanged, when it is not retryable
            RetryExhausted: when no attempts are left
        """
        self.attempt += 1
        self.last_exception = exception

        if not self.config.should_retry(exception):
            self._stopped = True
            raise exception

        if self.attempt >= self.config.max_attempts:
            self._stopped = True
            logger.warning(f"Giving up after {self.attempt} attempts: {exception}")
            raise RetryExhausted(
                f"Retry exhausted after {self.attempt} attempts",
                attempts=self.attempt,
                last_exception=exception,
            ) from exception

        delay = self.config.calculate_delay(self.attempt)
        logger.info(f"Attempt {self.attempt}/{self.config.max_attempts} failed ({exception}); retrying in {delay:.2f}s")
        if self.config.on_retry is not None:
            self.config.on_retry(self.attempt, exception, delay)
        await asyncio.sleep(delay)

    async def __aenter__(self) -> "RetryContext":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> bool:
        return False

