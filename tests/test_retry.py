"""Tests for the retry helpers."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from config.settings import ResilienceSettings
from resilience import RetryConfig, RetryContext, RetryExhausted
from wizard.errors import StoreUnavailable, UnknownStep


class TestRetryConfig:
    """Tests for RetryConfig."""

    def test_exponential_backoff_capped(self):
        config = RetryConfig(base_delay=1.0, backoff_multiplier=2.0, max_delay=5.0, jitter=0.0)
        assert [config.calculate_delay(n) for n in (1, 2, 3, 4)] == [1.0, 2.0, 4.0, 5.0]

    def test_jitter_stays_in_range(self):
        config = RetryConfig(base_delay=1.0, jitter=0.1)
        for _ in range(20):
            assert 0.9 <= config.calculate_delay(1) <= 1.1

    def test_should_retry(self):
        config = RetryConfig(
            retryable_exceptions=(StoreUnavailable,),
            non_retryable_exceptions=(UnknownStep,),
        )
        assert config.should_retry(StoreUnavailable("load_session"))
        assert not config.should_retry(UnknownStep("a"))
        assert not config.should_retry(ValueError("x"))

    def test_from_settings(self):
        settings = ResilienceSettings(retry_max_attempts=5, retry_initial_delay=0.1, retry_max_delay=1.0)
        config = RetryConfig.from_settings(settings, jitter=0.0)

        assert config.max_attempts == 5
        assert config.base_delay == 0.1
        assert config.max_delay == 1.0
        assert config.jitter == 0.0

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("RESILIENCE_RETRY_MAX_ATTEMPTS", "7")
        assert RetryConfig.from_settings().max_attempts == 7


class TestRetryContext:
    """Tests for RetryContext."""

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self):
        operation = AsyncMock(side_effect=[StoreUnavailable("op"), "ok"])
        on_retry = MagicMock()
        config = RetryConfig(base_delay=0.0, jitter=0.0, on_retry=on_retry)

        async with RetryContext(config) as ctx:
            while ctx.should_continue:
                try:
                    result = await operation()
                    break
                except StoreUnavailable as e:
                    await ctx.handle_exception(e)

        assert result == "ok"
        assert operation.await_count == 2
        on_retry.assert_called_once()

    @pytest.mark.asyncio
    async def test_non_retryable_is_reraised(self):
        config = RetryConfig(retryable_exceptions=(StoreUnavailable,))
        ctx = RetryContext(config)

        with pytest.raises(UnknownStep):
            await ctx.handle_exception(UnknownStep("a"))
        assert not ctx.should_continue

    @pytest.mark.asyncio
    async def test_exhaustion(self):
        ctx = RetryContext(max_attempts=2, base_delay=0.0, jitter=0.0)

        await ctx.handle_exception(StoreUnavailable("op"))
        with pytest.raises(RetryExhausted) as exc_info:
            await ctx.handle_exception(StoreUnavailable("op"))

        assert exc_info.value.attempts == 2
        assert isinstance(exc_info.value.last_exception, StoreUnavailable)

    @pytest.mark.asyncio
    async def test_sleeps_between_attempts(self):
        ctx = RetryContext(max_attempts=3, base_delay=0.25, jitter=0.0)
        with patch("resilience.retry.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            await ctx.handle_exception(StoreUnavailable("op"))
        mock_sleep.assert_awaited_once_with(0.25)

